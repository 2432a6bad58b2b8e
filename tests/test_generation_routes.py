# FILE: tests/test_generation_routes.py
"""End-to-end tests through the FastAPI app"""
import base64
import io

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from PIL import Image

from conftest import make_image_bytes

from portrait_backend.app import app
from portrait_backend.constants import ERROR_MESSAGES
from portrait_backend.middleware.body_limit import BodySizeLimitMiddleware
from portrait_backend.multimodal.watermark import WatermarkResult
from portrait_backend.providers.registry import set_image_provider
from portrait_backend.services import image_validation, orchestrator
from portrait_backend.services.errors import ProviderError, USER_MESSAGES
from portrait_backend.services.payments import (
    DevPaymentVerifier,
    InMemoryPaymentLedger,
    PaymentStatus,
    PaymentVerification,
    PaymentVerifier,
    set_payment_ledger,
    set_payment_verifier,
)
from portrait_backend.services.rate_limiter import RateLimiter, set_rate_limiter

NOW = 1_700_000_000.0


class StaticVerifier(PaymentVerifier):
    name = "static"

    def __init__(self, status: PaymentStatus, metadata=None):
        self.status = status
        self.metadata = metadata or {}

    def verify(self, transaction_id: str) -> PaymentVerification:
        return PaymentVerification(status=self.status, transaction_id=transaction_id, metadata=self.metadata)


@pytest.fixture
def limiter():
    return RateLimiter(max_attempts=3, window_seconds=86400, clock=lambda: NOW)


@pytest.fixture
def ledger():
    return InMemoryPaymentLedger()


@pytest.fixture
def client(fake_provider, limiter, ledger):
    set_image_provider(fake_provider)
    set_rate_limiter(limiter)
    set_payment_verifier(DevPaymentVerifier(amount=799))
    set_payment_ledger(ledger)
    with TestClient(app) as test_client:
        yield test_client
    set_image_provider(None)
    set_rate_limiter(None)
    set_payment_verifier(None)
    set_payment_ledger(None)


def _body(image_payload, options, **extra):
    body = {"image": image_payload(), "options": options}
    body.update(extra)
    return body


def test_scenario_a_preview_success(client, image_payload, sample_options):
    """Valid 1024x1024 image: watermarked preview with scored quality"""
    response = client.post("/api/generate-preview", json=_body(image_payload, sample_options))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["metadata"]["watermarked"] is True
    assert data["metadata"]["quality"] in {"high", "medium", "low"}
    assert data["metadata"]["dimensions"] == {"width": 1024, "height": 1024}
    assert data["previewUrl"].startswith("data:image/png;base64,")

    with Image.open(io.BytesIO(base64.b64decode(data["imageData"]))) as img:
        assert img.size == (1024, 1024)

    assert response.headers["X-RateLimit-Limit"] == "3"
    assert response.headers["X-RateLimit-Remaining"] == "2"
    assert "X-Request-ID" in response.headers


def test_scenario_b_fourth_request_rate_limited(client, image_payload, sample_options):
    """Ceiling 3 per 24h: the 4th request is denied with retry timing"""
    headers = {"x-forwarded-for": "203.0.113.7"}
    body = _body(image_payload, sample_options)

    for _ in range(3):
        assert client.post("/api/generate-preview", json=body, headers=headers).status_code == 200

    response = client.post("/api/generate-preview", json=body, headers=headers)

    assert response.status_code == 429
    data = response.json()
    assert data["success"] is False
    assert data["resetTime"] == int((NOW + 86400) * 1000)
    assert data["retryAfter"] == 86400
    assert response.headers["Retry-After"] == "86400"
    assert response.headers["X-RateLimit-Remaining"] == "0"

    # another client is unaffected
    other = client.post("/api/generate-preview", json=body, headers={"x-forwarded-for": "198.51.100.1"})
    assert other.status_code == 200


def test_scenario_c_small_image_rejected_before_provider(client, fake_provider, image_payload, sample_options):
    body = {"image": image_payload(256, 256), "options": sample_options}
    response = client.post("/api/generate-preview", json=body)

    assert response.status_code == 400
    assert response.json()["success"] is False
    assert "width" in response.json()["error"]
    assert fake_provider.calls == []


def test_invalid_base64_rejected_before_provider(client, fake_provider, image_payload, sample_options):
    image = image_payload()
    image["base64Data"] = "!!!not base64!!!"

    response = client.post("/api/generate-preview", json={"image": image, "options": sample_options})

    assert response.status_code == 400
    assert "not valid base64" in response.json()["error"]
    assert fake_provider.calls == []


def test_reported_dimensions_are_not_trusted(client, fake_provider, image_payload, sample_options):
    """A 64x64 photo claiming 1024x1024 and one byte is still rejected"""
    image = image_payload(64, 64, size=1)
    image["dimensions"] = {"width": 1024, "height": 1024}

    response = client.post("/api/generate-preview", json={"image": image, "options": sample_options})

    assert response.status_code == 400
    assert "got 64px" in response.json()["error"]
    assert fake_provider.calls == []


def test_gif_bytes_declared_as_png_rejected(client, fake_provider, image_payload, sample_options):
    image = image_payload()
    gif = base64.b64encode(make_image_bytes(1024, 1024, fmt="GIF")).decode("ascii")
    image["base64Data"] = f"data:image/png;base64,{gif}"

    response = client.post("/api/generate-preview", json={"image": image, "options": sample_options})

    assert response.status_code == 400
    assert "image/gif" in response.json()["error"]
    assert fake_provider.calls == []


def test_oversized_upload_rejected_on_decoded_bytes(client, fake_provider, image_payload, sample_options, monkeypatch):
    monkeypatch.setattr(image_validation, "UPLOAD_MAX_SIZE", 100)
    image = image_payload(size=10)

    response = client.post("/api/generate-preview", json={"image": image, "options": sample_options})

    assert response.status_code == 400
    assert "Image size must be less than" in response.json()["error"]
    assert fake_provider.calls == []


def test_non_image_upload_rejected(client, fake_provider, image_payload, sample_options):
    image = image_payload()
    image["base64Data"] = base64.b64encode(b"plain text, not a photo").decode("ascii")

    response = client.post("/api/generate-preview", json={"image": image, "options": sample_options})

    assert response.status_code == 400
    assert fake_provider.calls == []


def test_scenario_d_quota_error_is_user_facing(client, fake_provider, image_payload, sample_options):
    raw = "Failed to generate image: 429 Quota exceeded for this project"
    fake_provider.outcomes = [ProviderError(raw)]

    response = client.post("/api/generate-preview", json=_body(image_payload, sample_options))

    assert response.status_code == 500
    error = response.json()["error"]
    assert error == USER_MESSAGES["QUOTA_EXCEEDED"]
    assert error != raw
    assert len(fake_provider.calls) == 1


def test_invalid_options_listed_together(client, fake_provider, image_payload):
    options = {"background": "beach", "style": "goth"}
    response = client.post("/api/generate-preview", json=_body(image_payload, options))

    assert response.status_code == 400
    error = response.json()["error"]
    assert "Invalid style: goth" in error
    assert "Invalid background: beach" in error
    assert fake_provider.calls == []


def test_missing_fields_return_400(client):
    response = client.post("/api/generate-preview", json={"options": {"style": "professional"}})

    assert response.status_code == 400
    data = response.json()
    assert data["success"] is False
    assert data["error"].startswith("Missing or invalid fields")


def test_bad_provider_output_fails_processing(client, fake_provider, image_payload, sample_options):
    fake_provider.outcomes = ["bm90IGFuIGltYWdl"]

    response = client.post("/api/generate-preview", json=_body(image_payload, sample_options))

    assert response.status_code == 500
    assert "quality checks" in response.json()["error"]


def test_full_requires_successful_payment(client, fake_provider, image_payload, sample_options):
    set_payment_verifier(StaticVerifier(PaymentStatus.PENDING))

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    assert response.status_code == 402
    assert fake_provider.calls == []


def test_full_payment_lookup_failure(client, image_payload, sample_options):
    set_payment_verifier(StaticVerifier(PaymentStatus.ERROR))

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    assert response.status_code == 503


def test_full_generation_after_payment(client, image_payload, sample_options, generated_image):
    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    assert response.status_code == 200
    data = response.json()
    assert data["metadata"]["watermarked"] is False
    assert data["imageData"] == generated_image
    assert data["downloadUrl"].startswith("data:image/png;base64,")
    assert any("full-size" in w for w in data["warnings"])


def test_second_use_of_payment_is_refused(client, fake_provider, image_payload, sample_options):
    """One succeeded payment pays for one delivered full-size generation"""
    body = _body(image_payload, sample_options, paymentIntentId="pi_same")

    first = client.post("/api/generate-full", json=body)
    assert first.status_code == 200
    assert "X-RateLimit-Limit" not in first.headers

    second = client.post("/api/generate-full", json=body)
    assert second.status_code == 409
    assert second.json() == {"success": False, "error": ERROR_MESSAGES["PAYMENT_ALREADY_USED"]}
    assert "imageData" not in second.json()
    assert len(fake_provider.calls) == 1


def test_payment_released_after_failed_generation(client, fake_provider, ledger, image_payload, sample_options):
    """A failed full-size pass gives the payment back so the customer can retry"""
    fake_provider.outcomes = [ProviderError("boom")]
    body = _body(image_payload, sample_options, paymentIntentId="pi_retry")

    failed = client.post("/api/generate-full", json=body)
    assert failed.status_code == 500
    assert not ledger.is_claimed("pi_retry")

    retried = client.post("/api/generate-full", json=body)
    assert retried.status_code == 200
    assert ledger.is_claimed("pi_retry")
    assert len(fake_provider.calls) == 2


def test_payment_released_after_invalid_upload(client, ledger, image_payload, sample_options):
    body = {"image": image_payload(256, 256), "options": sample_options, "paymentIntentId": "pi_small"}

    assert client.post("/api/generate-full", json=body).status_code == 400
    assert not ledger.is_claimed("pi_small")


def test_payment_bound_to_other_image_is_refused(client, fake_provider, ledger, image_payload, sample_options):
    set_payment_verifier(StaticVerifier(PaymentStatus.SUCCEEDED, metadata={"image_id": "img-other"}))

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    assert response.status_code == 402
    assert response.json()["error"] == ERROR_MESSAGES["PAYMENT_IMAGE_MISMATCH"]
    assert fake_provider.calls == []
    assert not ledger.is_claimed("pi_123")


def test_payment_bound_to_same_image_is_accepted(client, image_payload, sample_options):
    set_payment_verifier(StaticVerifier(PaymentStatus.SUCCEEDED, metadata={"image_id": "img-1"}))

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    assert response.status_code == 200


def test_full_requires_payment_intent_id(client, image_payload, sample_options):
    response = client.post("/api/generate-full", json=_body(image_payload, sample_options))
    assert response.status_code == 400


def test_health_endpoints(client):
    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["provider"] == "fake"

    preview = client.get("/api/generate-preview")
    assert preview.json()["status"] == "healthy"
    assert preview.json()["model"] == "fake-image-model"

    assert client.get("/api/generate-full").json()["status"] == "healthy"


def test_price_endpoint(client):
    data = client.get("/api/payment/price").json()
    assert data == {"amount": 799, "currency": "usd", "formatted": "$7.99"}


def test_debug_endpoints_forbidden_outside_development(client):
    assert client.get("/api/debug/rate-limit").status_code == 403
    assert client.post("/api/debug/rate-limit", json={}).status_code == 403


def test_request_id_is_echoed(client):
    response = client.get("/health", headers={"X-Request-ID": "req-42"})
    assert response.headers["X-Request-ID"] == "req-42"


def test_body_size_limit():
    small_app = FastAPI()
    small_app.add_middleware(BodySizeLimitMiddleware, max_size=10)

    @small_app.post("/echo")
    async def echo():
        return {"ok": True}

    client = TestClient(small_app)
    assert client.post("/echo", content=b"x" * 5).status_code == 200

    response = client.post("/echo", content=b"x" * 50)
    assert response.status_code == 413
    assert response.json()["success"] is False


def test_debug_rate_limit_in_development(client, limiter, monkeypatch, settings):
    monkeypatch.setattr(settings, "environment", "development")
    headers = {"x-forwarded-for": "192.0.2.10"}
    limiter.check_rate_limit("192.0.2.10")
    limiter.check_rate_limit("192.0.2.99")

    info = client.get("/api/debug/rate-limit", headers=headers).json()
    assert info["clientIP"] == "192.0.2.10"
    assert info["debugInfo"]["entry"]["count"] == 1
    assert info["totalEntries"] == 2

    cleared = client.post("/api/debug/rate-limit", json={"ip": "192.0.2.10"}).json()
    assert cleared["cleared"] is True
    assert len(limiter.entries()) == 1

    client.post("/api/debug/rate-limit", json={})
    assert limiter.entries() == []


def test_full_subtle_watermark_when_enabled(client, image_payload, sample_options, generated_image, monkeypatch, settings):
    monkeypatch.setattr(settings, "full_watermark_enabled", True)

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    data = response.json()
    assert response.status_code == 200
    assert data["metadata"]["watermarked"] is True
    assert data["imageData"] != generated_image


def test_rate_limited_response_carries_cors_headers(client, image_payload, sample_options):
    """Browsers can read the 429 body and retry headers"""
    headers = {"x-forwarded-for": "203.0.113.9", "Origin": "http://localhost:3000"}
    body = _body(image_payload, sample_options)

    for _ in range(3):
        client.post("/api/generate-preview", json=body, headers=headers)
    response = client.post("/api/generate-preview", json=body, headers=headers)

    assert response.status_code == 429
    assert response.headers["access-control-allow-origin"] == "http://localhost:3000"
    assert "Retry-After" in response.headers["access-control-expose-headers"]


def test_preview_watermark_failure_returns_no_image(client, image_payload, sample_options, monkeypatch):
    """An unwatermarked preview is never delivered"""
    monkeypatch.setattr(
        orchestrator,
        "add_preview_watermark",
        lambda image_data, *args, **kwargs: WatermarkResult(success=False, error="font unavailable"),
    )

    response = client.post("/api/generate-preview", json=_body(image_payload, sample_options))

    assert response.status_code == 500
    data = response.json()
    assert data == {"success": False, "error": ERROR_MESSAGES["WATERMARK_FAILED"]}
    assert "imageData" not in data
    assert "previewUrl" not in data


def test_full_subtle_watermark_failure_delivers_clean_image(
    client, image_payload, sample_options, generated_image, monkeypatch, settings
):
    monkeypatch.setattr(settings, "full_watermark_enabled", True)
    monkeypatch.setattr(
        orchestrator,
        "add_subtle_watermark",
        lambda image_data, *args, **kwargs: WatermarkResult(success=False, error="font unavailable"),
    )

    response = client.post(
        "/api/generate-full",
        json=_body(image_payload, sample_options, paymentIntentId="pi_123"),
    )

    data = response.json()
    assert response.status_code == 200
    assert data["metadata"]["watermarked"] is False
    assert data["imageData"] == generated_image
