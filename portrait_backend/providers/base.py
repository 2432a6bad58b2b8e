# FILE: portrait_backend/providers/base.py
"""
Base class for image generation providers
"""
import logging

logger = logging.getLogger(__name__)


class ImageProvider:
    """
    Image-to-image generation capability.

    Implementations are synchronous; the generation client runs them off
    the event loop.
    """

    name: str = "base"
    billable: bool = True

    def __init__(self, model: str):
        self.model = model

    def generate(self, prompt: str, image_base64: str, mime_type: str) -> str:
        """Return the generated image as base64. Raise ProviderError on failure."""
        raise NotImplementedError

    def is_configured(self) -> bool:
        return True
