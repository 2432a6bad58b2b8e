# FILE: tests/conftest.py

import base64
import io
import os
import sys
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

# Settings are read once per process; pin them before any app import
os.environ["ENVIRONMENT"] = "test"
os.environ["TELEMETRY_ENABLED"] = "false"
os.environ["RATE_LIMIT_PROFILE"] = "production"
os.environ["PAYMENT_VERIFIER"] = "dev"
os.environ["DEV_MODE_SKIP_AI"] = "false"
os.environ["FULL_WATERMARK_ENABLED"] = "false"
os.environ.pop("GEMINI_API_KEY", None)

import pytest
from PIL import Image

from portrait_backend.config import get_settings
from portrait_backend.providers.base import ImageProvider
from portrait_backend.services.errors import ProviderError


def make_image_bytes(width: int = 1024, height: int = 1024, color=(70, 110, 160), fmt: str = "PNG") -> bytes:
    img = Image.new("RGB", (width, height), color)
    buffer = io.BytesIO()
    img.save(buffer, format=fmt)
    return buffer.getvalue()


def make_image_b64(width: int = 1024, height: int = 1024, color=(70, 110, 160), fmt: str = "PNG") -> str:
    return base64.b64encode(make_image_bytes(width, height, color, fmt)).decode("ascii")


class FakeImageProvider(ImageProvider):
    """Scripted provider: each call pops the next outcome (str result or Exception)"""

    name = "fake"
    billable = True

    def __init__(self, outcomes=None, default=None, model: str = "fake-image-model"):
        super().__init__(model)
        self.outcomes = list(outcomes or [])
        self.default = default
        self.calls = []

    def generate(self, prompt: str, image_base64: str, mime_type: str) -> str:
        self.calls.append({"prompt": prompt, "image_base64": image_base64, "mime_type": mime_type})
        outcome = self.outcomes.pop(0) if self.outcomes else self.default
        if isinstance(outcome, Exception):
            raise outcome
        if outcome is None:
            raise ProviderError("No image generated in response")
        return outcome


@pytest.fixture(scope="session")
def settings():
    """Provide settings for tests"""
    return get_settings()


@pytest.fixture
def image_factory():
    """Build base64 test images of a given size"""
    return make_image_b64


@pytest.fixture
def generated_image():
    """Provider output: a 1024x1024 PNG"""
    return make_image_b64(1024, 1024, color=(200, 180, 150))


@pytest.fixture
def fake_provider(generated_image):
    return FakeImageProvider(default=generated_image)


@pytest.fixture
def image_payload():
    """Request-shaped image payload"""
    def _payload(width: int = 1024, height: int = 1024, mime: str = "image/png", size: int = None):
        data = make_image_b64(width, height)
        return {
            "id": "img-1",
            "type": mime,
            "size": size if size is not None else len(base64.b64decode(data)),
            "dimensions": {"width": width, "height": height},
            "base64Data": f"data:{mime};base64,{data}",
            "uploadedAt": "2025-01-01T00:00:00Z",
        }
    return _payload


@pytest.fixture
def sample_options():
    return {"background": "office", "style": "professional"}
