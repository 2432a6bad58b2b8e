# FILE: portrait_backend/services/response_processor.py
"""
Validation and enrichment of provider output

Checks run in order (upstream failure, base64, byte size, format,
dimensions) and the result carries derived quality and metadata. Dimensions
are always decoded server-side with Pillow.
"""
import base64
import binascii
import io
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from PIL import Image, UnidentifiedImageError

from portrait_backend.constants import (
    ACCEPTED_IMAGE_TYPES,
    FULL_MAX_OUTPUT_SIZE,
    MAX_ASPECT_RATIO,
    MIN_ASPECT_RATIO,
    PREVIEW_SIZE,
    SQUARE_TOLERANCE,
)
from portrait_backend.models.portrait import QualityTier, SizeClass
from portrait_backend.services.correlation import get_correlation_id
from portrait_backend.services.generation_client import GenerationResult, strip_data_url

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationOptions:
    min_width: int = PREVIEW_SIZE
    min_height: int = PREVIEW_SIZE
    max_file_size: int = FULL_MAX_OUTPUT_SIZE
    allowed_formats: Tuple[str, ...] = tuple(ACCEPTED_IMAGE_TYPES)


@dataclass(frozen=True)
class GenerationMetrics:
    start_time: float
    end_time: float
    duration_ms: int
    cost: float
    model: str
    size: SizeClass


@dataclass
class ResponseMetadata:
    model: str
    generation_time: int
    cost: float
    size: SizeClass
    quality: QualityTier
    format: str
    timestamp: int
    dimensions: Optional[Dict[str, int]] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "model": self.model,
            "generationTime": self.generation_time,
            "cost": self.cost,
            "size": self.size.value,
            "quality": self.quality.value,
            "dimensions": self.dimensions,
            "format": self.format,
            "timestamp": self.timestamp,
        }


@dataclass
class ProcessedResponse:
    success: bool
    image_data: Optional[str] = None
    metadata: Optional[ResponseMetadata] = None
    error: Optional[str] = None
    warnings: List[str] = field(default_factory=list)


@dataclass
class ImageInspection:
    is_valid: bool
    errors: List[str]
    warnings: List[str]
    dimensions: Optional[Dict[str, int]] = None
    mime_type: Optional[str] = None
    byte_size: int = 0


def create_metrics(start_time: float, end_time: float, model: str, size: SizeClass, cost: float) -> GenerationMetrics:
    """Build metrics from wall-clock timestamps in seconds"""
    return GenerationMetrics(
        start_time=start_time,
        end_time=end_time,
        duration_ms=int((end_time - start_time) * 1000),
        cost=cost,
        model=model,
        size=size,
    )


def log_metrics(metrics: GenerationMetrics) -> None:
    logger.info(
        f"[{get_correlation_id()}] AI generation metrics: duration={metrics.duration_ms}ms "
        f"cost=${metrics.cost} model={metrics.model} size={metrics.size.value}"
    )


def decode_base64_image(image_data: str) -> Optional[bytes]:
    """Strict base64 decode; None when the payload is not valid base64"""
    payload = strip_data_url(image_data)
    if not payload:
        return None
    try:
        return base64.b64decode(payload, validate=True)
    except (binascii.Error, ValueError):
        return None


def inspect_image_bytes(raw: bytes) -> Tuple[Optional[str], Optional[Dict[str, int]]]:
    """(mime type, dimensions) as seen by Pillow; (None, None) if unreadable"""
    try:
        with Image.open(io.BytesIO(raw)) as img:
            mime = Image.MIME.get(img.format or "")
            width, height = img.size
    except (UnidentifiedImageError, OSError, ValueError):
        return None, None
    return mime, {"width": width, "height": height}


def validate_image_data(image_data: str, options: ValidationOptions) -> ImageInspection:
    errors: List[str] = []
    warnings: List[str] = []

    raw = decode_base64_image(image_data)
    if raw is None:
        return ImageInspection(is_valid=False, errors=["Invalid base64 image data"], warnings=warnings)

    if len(raw) > options.max_file_size:
        errors.append(f"Image too large: {len(raw) / 1024 / 1024:.1f}MB (maximum: {options.max_file_size // (1024 * 1024)}MB)")

    mime_type, dimensions = inspect_image_bytes(raw)
    if mime_type not in options.allowed_formats:
        errors.append(f"Unsupported format: {mime_type or 'unknown'}")

    if dimensions:
        width, height = dimensions["width"], dimensions["height"]
        if width < options.min_width:
            errors.append(f"Width too small: {width}px (minimum: {options.min_width}px)")
        if height < options.min_height:
            errors.append(f"Height too small: {height}px (minimum: {options.min_height}px)")

        if height > 0:
            aspect_ratio = width / height
            if aspect_ratio < MIN_ASPECT_RATIO or aspect_ratio > MAX_ASPECT_RATIO:
                warnings.append("Unusual aspect ratio may affect display quality")
            if abs(aspect_ratio - 1) > SQUARE_TOLERANCE:
                warnings.append("Non-square image may not be optimal for portrait use")

    return ImageInspection(
        is_valid=len(errors) == 0,
        errors=errors,
        warnings=warnings,
        dimensions=dimensions,
        mime_type=mime_type,
        byte_size=len(raw),
    )


def assess_quality(dimensions: Optional[Dict[str, int]], generation_time_ms: float, size: SizeClass) -> QualityTier:
    """
    Additive score over resolution, speed and size class.

    shorter side >= 2048: +3, >= 1024: +2, >= 512: +1
    generation < 5s: +2, < 15s: +1
    full: +2, preview: +1
    total >= 6 is high, >= 3 is medium, anything else low.
    """
    score = 0

    if dimensions:
        min_dimension = min(dimensions["width"], dimensions["height"])
        if min_dimension >= 2048:
            score += 3
        elif min_dimension >= 1024:
            score += 2
        elif min_dimension >= 512:
            score += 1

    if generation_time_ms < 5000:
        score += 2
    elif generation_time_ms < 15000:
        score += 1

    if size == SizeClass.FULL:
        score += 2
    elif size == SizeClass.PREVIEW:
        score += 1

    if score >= 6:
        return QualityTier.HIGH
    if score >= 3:
        return QualityTier.MEDIUM
    return QualityTier.LOW


def process_response(
    result: GenerationResult,
    metrics: GenerationMetrics,
    validation_options: Optional[ValidationOptions] = None
) -> ProcessedResponse:
    """Validate provider output and attach metadata"""
    options = validation_options or ValidationOptions()
    cid = get_correlation_id()

    if not result.success or not result.image_data:
        return ProcessedResponse(success=False, error=result.error or "No image data received")

    inspection = validate_image_data(result.image_data, options)
    if not inspection.is_valid:
        logger.warning(f"[{cid}] Generated image rejected: {inspection.errors}")
        return ProcessedResponse(
            success=False,
            error=f"Image validation failed: {', '.join(inspection.errors)}",
        )

    quality = assess_quality(inspection.dimensions, metrics.duration_ms, metrics.size)
    metadata = ResponseMetadata(
        model=metrics.model,
        generation_time=metrics.duration_ms,
        cost=metrics.cost,
        size=metrics.size,
        quality=quality,
        format=inspection.mime_type or "image/jpeg",
        timestamp=int(time.time() * 1000),
        dimensions=inspection.dimensions,
    )

    return ProcessedResponse(
        success=True,
        image_data=strip_data_url(result.image_data),
        metadata=metadata,
        warnings=inspection.warnings,
    )


def create_download_url(image_data: str, mime_type: str = "image/png") -> str:
    """Data URL for inline delivery (no object storage)"""
    if image_data.startswith("data:"):
        return image_data
    return f"data:{mime_type};base64,{image_data}"


def format_response_for_display(processed: ProcessedResponse) -> Dict[str, Any]:
    if not processed.success:
        return {"message": processed.error or "Generation failed", "type": "error"}

    if processed.warnings:
        return {
            "message": "Portrait generated successfully with some warnings",
            "type": "warning",
            "details": list(processed.warnings),
        }

    details = None
    if processed.metadata:
        dims = processed.metadata.dimensions or {}
        details = [
            f"Size: {dims.get('width')}x{dims.get('height')}",
            f"Quality: {processed.metadata.quality.value}",
            f"Generation time: {round(processed.metadata.generation_time / 1000)}s",
        ]
    return {"message": "Portrait generated successfully!", "type": "success", "details": details}
