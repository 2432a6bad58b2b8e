# FILE: portrait_backend/providers/passthrough.py
"""
Development provider that echoes the uploaded photo back
"""
import logging

from portrait_backend.providers.base import ImageProvider

logger = logging.getLogger(__name__)


class PassthroughImageProvider(ImageProvider):
    """Returns the source image unchanged at zero cost (DEV_MODE_SKIP_AI)"""

    name = "passthrough"
    billable = False

    def generate(self, prompt: str, image_base64: str, mime_type: str) -> str:
        logger.info("Development mode: skipping provider call, returning original image")
        return image_base64
