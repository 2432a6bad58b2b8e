# FILE: portrait_backend/routes/health.py
"""
Health check endpoint
"""
import logging
from fastapi import APIRouter

from portrait_backend.config import get_settings
from portrait_backend.constants import APP_VERSION
from portrait_backend.providers.registry import get_image_provider

logger = logging.getLogger(__name__)
router = APIRouter()


@router.get("")
async def health_check():
    """
    Health check endpoint
    Reports which provider is active and whether it can be called
    """
    settings = get_settings()
    provider = get_image_provider()

    return {
        "status": "healthy",
        "version": APP_VERSION,
        "environment": settings.environment,
        "provider": provider.name,
        "model": provider.model,
        "provider_configured": provider.is_configured(),
        "rate_limit_profile": settings.rate_limit_profile,
    }
