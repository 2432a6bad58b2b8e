# FILE: portrait_backend/providers/gemini.py
"""
Gemini (Google) image editing provider adapter
"""
import base64
import binascii
import logging
from typing import Optional

from google import genai
from google.genai import types

from portrait_backend.providers.base import ImageProvider
from portrait_backend.services.errors import ProviderError

logger = logging.getLogger(__name__)


class GeminiImageProvider(ImageProvider):
    """Gemini image provider: prompt + source photo in, edited photo out"""

    name = "gemini"
    billable = True

    def __init__(self, api_key: Optional[str], model: str, timeout_seconds: float = 300.0):
        super().__init__(model)
        self.api_key = api_key
        self.client = None
        if api_key:
            self.client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
            )
        logger.info(f"Gemini image provider: model={model} configured={self.is_configured()}")

    def is_configured(self) -> bool:
        return self.client is not None

    def generate(self, prompt: str, image_base64: str, mime_type: str) -> str:
        """Generate an edited portrait using Gemini"""
        if self.client is None:
            raise ProviderError("Gemini API key is not configured", code="INVALID_API_KEY")

        try:
            image_bytes = base64.b64decode(image_base64, validate=True)
        except (binascii.Error, ValueError) as e:
            raise ProviderError(f"Source image is not valid base64: {e}") from e

        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=[
                    prompt,
                    types.Part.from_bytes(data=image_bytes, mime_type=mime_type),
                ],
            )
        except Exception as e:
            # SDK raises a family of transport/API errors; keep the text for classification
            raise ProviderError(f"Failed to generate image: {e}") from e

        for candidate in response.candidates or []:
            content = candidate.content
            if content is None or not content.parts:
                continue
            for part in content.parts:
                if part.inline_data is not None and part.inline_data.data:
                    data = part.inline_data.data
                    logger.info(f"Gemini returned image part ({len(data)} bytes)")
                    if isinstance(data, str):
                        return data
                    return base64.b64encode(data).decode("ascii")

        raise ProviderError("No image generated in response")
