# FILE: portrait_backend/providers/registry.py
"""
Image provider selection (done once, at startup)
"""
import logging
from typing import Optional

from portrait_backend.config import Settings, get_settings
from portrait_backend.providers.base import ImageProvider
from portrait_backend.providers.gemini import GeminiImageProvider
from portrait_backend.providers.passthrough import PassthroughImageProvider

logger = logging.getLogger(__name__)


def create_image_provider(settings: Settings) -> ImageProvider:
    """
    Pick the provider implementation from settings.

    The passthrough provider is refused in production so a misconfigured
    deployment cannot hand out the user's own photo as a paid result.
    """
    if settings.dev_mode_skip_ai:
        if settings.is_production():
            raise RuntimeError("DEV_MODE_SKIP_AI cannot be enabled when ENVIRONMENT=production")
        logger.warning("DEV_MODE_SKIP_AI active: provider calls will be skipped")
        return PassthroughImageProvider(model=settings.gemini_model)

    provider = GeminiImageProvider(
        api_key=settings.gemini_api_key,
        model=settings.gemini_model,
        timeout_seconds=settings.generation_timeout_seconds,
    )
    if not provider.is_configured():
        logger.warning("GEMINI_API_KEY not set; generation requests will fail")
    return provider


_provider: Optional[ImageProvider] = None


def get_image_provider() -> ImageProvider:
    """Get or create the process-wide image provider"""
    global _provider
    if _provider is None:
        _provider = create_image_provider(get_settings())
    return _provider


def set_image_provider(provider: Optional[ImageProvider]) -> None:
    """Replace the active provider (None forces re-selection on next use)"""
    global _provider
    _provider = provider
