# FILE: tests/test_response_processor.py

from conftest import make_image_b64

from portrait_backend.models.portrait import QualityTier, SizeClass
from portrait_backend.services.generation_client import GenerationResult
from portrait_backend.services.response_processor import (
    ValidationOptions,
    assess_quality,
    create_download_url,
    create_metrics,
    decode_base64_image,
    format_response_for_display,
    process_response,
)


def _metrics(size=SizeClass.PREVIEW, duration_s=2.0):
    return create_metrics(100.0, 100.0 + duration_s, "fake-model", size, 0.039)


def test_quality_scoring_thresholds():
    """Additive score maps to high/medium/low"""
    # 3 + 2 + 2 = 7
    assert assess_quality({"width": 2048, "height": 2048}, 1000, SizeClass.FULL) == QualityTier.HIGH
    # 2 + 1 + 1 = 4
    assert assess_quality({"width": 1024, "height": 1500}, 8000, SizeClass.PREVIEW) == QualityTier.MEDIUM
    # 0 + 0 + 1 = 1
    assert assess_quality({"width": 256, "height": 256}, 20000, SizeClass.PREVIEW) == QualityTier.LOW
    # 1 + 0 + 1 = 2
    assert assess_quality({"width": 512, "height": 900}, 15000, SizeClass.PREVIEW) == QualityTier.LOW
    # unknown dimensions: 0 + 2 + 2 = 4
    assert assess_quality(None, 100, SizeClass.FULL) == QualityTier.MEDIUM


def test_process_response_success_populates_metadata():
    data = make_image_b64(1024, 1024)
    result = GenerationResult(success=True, image_data=data, model="fake-model", cost=0.039)

    processed = process_response(result, _metrics())

    assert processed.success
    assert processed.image_data == data
    assert processed.metadata.dimensions == {"width": 1024, "height": 1024}
    assert processed.metadata.format == "image/png"
    assert processed.metadata.quality == QualityTier.MEDIUM
    assert processed.metadata.to_dict()["generationTime"] == 2000


def test_process_response_passes_upstream_failure_through():
    result = GenerationResult(success=False, error="Quota exceeded")
    processed = process_response(result, _metrics())

    assert not processed.success
    assert processed.error == "Quota exceeded"


def test_invalid_base64_is_rejected():
    result = GenerationResult(success=True, image_data="not base64 at all!!")
    processed = process_response(result, _metrics())

    assert not processed.success
    assert "Invalid base64" in processed.error


def test_oversize_output_is_rejected():
    result = GenerationResult(success=True, image_data=make_image_b64(1024, 1024))
    processed = process_response(result, _metrics(), ValidationOptions(max_file_size=100))

    assert not processed.success
    assert processed.error.startswith("Image validation failed")
    assert "too large" in processed.error


def test_undersized_output_is_rejected():
    """Dimensions are decoded from the pixels, not trusted"""
    result = GenerationResult(success=True, image_data=make_image_b64(300, 300))
    processed = process_response(result, _metrics())

    assert not processed.success
    assert "Width too small" in processed.error


def test_non_square_output_warns():
    result = GenerationResult(success=True, image_data=make_image_b64(1024, 768))
    processed = process_response(result, _metrics())

    assert processed.success
    assert any("Non-square" in w for w in processed.warnings)


def test_data_url_helpers():
    data = make_image_b64(8, 8)

    url = create_download_url(data)
    assert url.startswith("data:image/png;base64,")
    assert decode_base64_image(url) == decode_base64_image(data)


def test_display_formatting():
    ok = process_response(GenerationResult(success=True, image_data=make_image_b64(1024, 1024)), _metrics())
    assert format_response_for_display(ok)["type"] == "success"

    warned = process_response(GenerationResult(success=True, image_data=make_image_b64(1024, 700)), _metrics())
    assert format_response_for_display(warned)["type"] == "warning"

    failed = process_response(GenerationResult(success=False, error="boom"), _metrics())
    assert format_response_for_display(failed) == {"message": "boom", "type": "error"}
