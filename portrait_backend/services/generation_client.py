# FILE: portrait_backend/services/generation_client.py
"""
Generation client: wraps the provider call with prompt resolution,
payload preparation, opt-in retries and an overall deadline
"""
import asyncio
import base64
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Any, BinaryIO, Dict, Optional

from portrait_backend.config import get_settings
from portrait_backend.constants import ACCEPTED_IMAGE_TYPES
from portrait_backend.models.portrait import CustomizationOptions, ImagePayload, SizeClass
from portrait_backend.providers.base import ImageProvider
from portrait_backend.services.correlation import get_correlation_id
from portrait_backend.services.errors import ProviderError, ProviderErrorInfo, parse_ai_error
from portrait_backend.services.prompt_builder import (
    build_context,
    build_detailed_prompt,
    get_prompt_for_use_case,
)

logger = logging.getLogger(__name__)

DATA_URL_PREFIX = re.compile(r"^data:image/[a-zA-Z0-9.+-]+;base64,")


def strip_data_url(data: str) -> str:
    return DATA_URL_PREFIX.sub("", data.strip())


@dataclass(frozen=True)
class SourceImage:
    """Source photo as the pipeline sees it"""
    id: str
    mime_type: str
    size: int
    width: int
    height: int
    base64_data: Optional[str] = None
    file: Optional[BinaryIO] = None

    @classmethod
    def from_payload(cls, payload: ImagePayload) -> "SourceImage":
        return cls(
            id=payload.id,
            mime_type=payload.type.lower(),
            size=payload.size,
            width=payload.dimensions.width,
            height=payload.dimensions.height,
            base64_data=strip_data_url(payload.base64_data),
        )


@dataclass(frozen=True)
class GenerationRequest:
    image: SourceImage
    options: CustomizationOptions
    size: SizeClass
    prompt: Optional[str] = None
    use_case: Optional[str] = None


@dataclass
class GenerationResult:
    success: bool
    image_data: Optional[str] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    retryable: bool = False
    cost: float = 0.0
    generation_time_ms: int = 0
    model: str = ""
    attempts: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)


class GenerationClient:
    """Client around a single ImageProvider"""

    def __init__(
        self,
        provider: ImageProvider,
        max_retries: Optional[int] = None,
        retry_base_delay: Optional[float] = None,
        timeout_seconds: Optional[float] = None,
        preview_cost: Optional[float] = None,
        full_cost: Optional[float] = None,
    ):
        settings = get_settings()
        self.provider = provider
        self.max_retries = settings.generation_max_retries if max_retries is None else max_retries
        self.retry_base_delay = (
            settings.generation_retry_base_delay_ms / 1000.0
            if retry_base_delay is None else retry_base_delay
        )
        self.timeout_seconds = settings.generation_timeout_seconds if timeout_seconds is None else timeout_seconds
        self.costs = {
            SizeClass.PREVIEW: settings.generation_preview_cost if preview_cost is None else preview_cost,
            SizeClass.FULL: settings.generation_full_cost if full_cost is None else full_cost,
        }
        if self.max_retries < 0:
            raise ValueError("max_retries must be at least 0")

    def calculate_cost(self, size: SizeClass) -> float:
        """Configured price for the size class; zero for non-billable providers"""
        if not self.provider.billable:
            return 0.0
        return self.costs[size]

    def resolve_prompt(self, request: GenerationRequest) -> str:
        if request.prompt:
            return request.prompt
        context = build_context(request.options)
        if request.use_case:
            return get_prompt_for_use_case(request.use_case, context)
        return build_detailed_prompt(context)

    @staticmethod
    def ensure_base64(image: SourceImage) -> str:
        """Return the embeddable payload, reading the raw handle if none is attached"""
        if image.base64_data:
            return image.base64_data
        if image.file is None:
            raise ValueError("Source image has neither base64 data nor a file handle")
        raw = image.file.read()
        if not raw:
            raise ValueError("Source image file is empty")
        return base64.b64encode(raw).decode("ascii")

    async def _call_with_retries(self, prompt: str, image_b64: str, mime_type: str, state: Dict[str, int]) -> str:
        cid = get_correlation_id()
        while True:
            state["attempts"] += 1
            attempt = state["attempts"]
            try:
                return await asyncio.to_thread(self.provider.generate, prompt, image_b64, mime_type)
            except ProviderError as e:
                info = parse_ai_error(e)
                logger.warning(f"[{cid}] Provider attempt {attempt} failed ({info.code}): {e}")
                retries_used = attempt - 1
                if not info.retryable or retries_used >= self.max_retries:
                    raise
                delay = self.retry_base_delay * attempt
                logger.info(f"[{cid}] Retrying generation (attempt {attempt + 1}/{self.max_retries + 1}) in {delay:.1f}s")
                await asyncio.sleep(delay)

    async def generate_portrait(self, request: GenerationRequest) -> GenerationResult:
        """Generate a portrait; never raises for provider failures"""
        cid = get_correlation_id()
        start = time.monotonic()
        model = self.provider.model

        try:
            prompt = self.resolve_prompt(request)
            image_b64 = self.ensure_base64(request.image)
        except (ValueError, OSError) as e:
            logger.error(f"[{cid}] Could not prepare generation request: {e}")
            return GenerationResult(
                success=False,
                error=str(e),
                error_code="INVALID_REQUEST",
                retryable=False,
                model=model,
            )

        mime_type = request.image.mime_type if request.image.mime_type in ACCEPTED_IMAGE_TYPES else "image/jpeg"
        state = {"attempts": 0}
        info: Optional[ProviderErrorInfo] = None
        error_text = ""

        try:
            image_data = await asyncio.wait_for(
                self._call_with_retries(prompt, image_b64, mime_type, state),
                timeout=self.timeout_seconds,
            )
        except asyncio.TimeoutError:
            error_text = f"Generation timeout after {self.timeout_seconds:.0f}s"
            info = parse_ai_error(error_text)
        except ProviderError as e:
            error_text = str(e)
            info = parse_ai_error(e)

        duration_ms = int((time.monotonic() - start) * 1000)

        if info is not None:
            logger.error(f"[{cid}] Generation failed after {state['attempts']} attempt(s): {error_text}")
            return GenerationResult(
                success=False,
                error=error_text,
                error_code=info.code,
                retryable=info.retryable,
                generation_time_ms=duration_ms,
                model=model,
                attempts=state["attempts"],
            )

        if not image_data:
            return GenerationResult(
                success=False,
                error="No image data received",
                error_code="UNKNOWN_ERROR",
                retryable=True,
                generation_time_ms=duration_ms,
                model=model,
                attempts=state["attempts"],
            )

        logger.info(f"[{cid}] Generation succeeded in {duration_ms}ms ({state['attempts']} attempt(s))")
        return GenerationResult(
            success=True,
            image_data=image_data,
            cost=self.calculate_cost(request.size),
            generation_time_ms=duration_ms,
            model=model,
            attempts=state["attempts"],
            metadata={"provider": self.provider.name, "prompt_length": len(prompt)},
        )

    def validate_config(self) -> bool:
        return bool(self.provider.model) and self.provider.is_configured()

    def get_service_info(self) -> Dict[str, Any]:
        return {
            "model": self.provider.model,
            "provider": self.provider.name,
            "maxRetries": self.max_retries,
            "isConfigured": self.validate_config(),
        }
