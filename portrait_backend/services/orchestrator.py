# FILE: portrait_backend/services/orchestrator.py
"""
Generation orchestrator for preview and full-resolution requests

validate -> prompt -> generate -> process -> watermark -> response body.
Every stage returns a value; an expected failure short-circuits into a
PipelineFailure which becomes a {success: false, error} body. Admission
control happens earlier, in the rate limit middleware. A full-size pass
claims its payment in the ledger and gives it back if nothing is delivered.
"""
import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple, Union

from portrait_backend.config import get_settings
from portrait_backend.constants import (
    ERROR_MESSAGES,
    FULL_MAX_OUTPUT_SIZE,
    PREVIEW_MAX_OUTPUT_SIZE,
)
from portrait_backend.models.portrait import (
    FullGenerationRequest,
    PreviewGenerationRequest,
    SizeClass,
    UseCase,
)
from portrait_backend.multimodal.watermark import add_preview_watermark, add_subtle_watermark
from portrait_backend.services.correlation import get_correlation_id
from portrait_backend.services.errors import ErrorKind, PipelineFailure, get_user_message_for_code
from portrait_backend.services.generation_client import GenerationClient, GenerationRequest, SourceImage
from portrait_backend.services.image_validation import validate_generation_request
from portrait_backend.services.payments import (
    InMemoryPaymentLedger,
    PaymentLedger,
    PaymentStatus,
    PaymentVerifier,
)
from portrait_backend.services.prompt_builder import build_context, validate_context, validate_prompt
from portrait_backend.services.response_processor import (
    ProcessedResponse,
    ValidationOptions,
    create_download_url,
    create_metrics,
    log_metrics,
    process_response,
)
from portrait_backend.services.telemetry import record_event

logger = logging.getLogger(__name__)

OUTPUT_VALIDATION = {
    SizeClass.PREVIEW: ValidationOptions(max_file_size=PREVIEW_MAX_OUTPUT_SIZE),
    SizeClass.FULL: ValidationOptions(max_file_size=FULL_MAX_OUTPUT_SIZE),
}


@dataclass
class PipelineOutcome:
    """HTTP status plus JSON body for the route to return"""
    status_code: int
    body: Dict[str, Any]

    @classmethod
    def from_failure(cls, failure: PipelineFailure) -> "PipelineOutcome":
        return cls(
            status_code=failure.status_code,
            body={"success": False, "error": failure.message, **failure.extra},
        )


class GenerationOrchestrator:
    """Runs the preview and full-size generation pipelines"""

    def __init__(
        self,
        client: GenerationClient,
        verifier: Optional[PaymentVerifier] = None,
        ledger: Optional[PaymentLedger] = None,
    ):
        self.client = client
        self.verifier = verifier
        self.ledger = ledger or InMemoryPaymentLedger()

    # ------------------------------------------------------------------
    # Stages
    # ------------------------------------------------------------------

    def validate_request(
        self,
        body: PreviewGenerationRequest,
        size: SizeClass
    ) -> Union[PipelineFailure, List[str]]:
        """Image policy, option enums, use case and override prompt; returns warnings on success"""
        errors: List[str] = []

        image_check = validate_generation_request(body.image, size)
        errors.extend(image_check["errors"])
        warnings = list(image_check["warnings"])

        context_check = validate_context(build_context(body.options))
        if not context_check["is_valid"]:
            errors.append(f"Invalid prompt context: {', '.join(context_check['errors'])}")

        if body.use_case and body.use_case not in UseCase._value2member_map_:
            errors.append(f"Invalid use case: {body.use_case}")

        if body.prompt:
            prompt_check = validate_prompt(body.prompt)
            errors.extend(prompt_check["errors"])
            warnings.extend(prompt_check["warnings"])

        if errors:
            return PipelineFailure(
                kind=ErrorKind.VALIDATION,
                status_code=400,
                message="; ".join(errors),
            )
        return warnings

    async def run_generation(
        self,
        body: PreviewGenerationRequest,
        size: SizeClass
    ) -> Union[PipelineFailure, ProcessedResponse]:
        """Provider call plus output validation"""
        cid = get_correlation_id()
        request = GenerationRequest(
            image=SourceImage.from_payload(body.image),
            options=body.options,
            size=size,
            prompt=body.prompt,
            use_case=body.use_case,
        )

        start = time.time()
        result = await self.client.generate_portrait(request)
        end = time.time()

        if not result.success:
            logger.error(f"[{cid}] {size.value} generation failed ({result.error_code}): {result.error}")
            record_event(
                "generation_failed",
                size=size.value,
                stage=ErrorKind.PROVIDER.value,
                error_code=result.error_code,
                attempts=result.attempts,
            )
            return PipelineFailure(
                kind=ErrorKind.PROVIDER,
                status_code=500,
                message=get_user_message_for_code(result.error_code),
                detail=result.error,
            )

        metrics = create_metrics(start, end, result.model, size, result.cost)
        log_metrics(metrics)

        processed = process_response(result, metrics, OUTPUT_VALIDATION[size])
        if not processed.success:
            logger.error(f"[{cid}] {size.value} output rejected: {processed.error}")
            record_event(
                "generation_failed",
                size=size.value,
                stage=ErrorKind.PROCESSING.value,
            )
            return PipelineFailure(
                kind=ErrorKind.PROCESSING,
                status_code=500,
                message=ERROR_MESSAGES["PROCESSING_FAILED"],
                detail=processed.error,
            )
        return processed

    async def check_payment(self, transaction_id: str, image_id: str) -> Optional[PipelineFailure]:
        """Succeeded payment for this image, or the failure to return"""
        cid = get_correlation_id()
        if self.verifier is None:
            logger.error(f"[{cid}] No payment verifier configured; refusing full-size generation")
            return PipelineFailure(
                kind=ErrorKind.PAYMENT,
                status_code=503,
                message=ERROR_MESSAGES["PAYMENT_CHECK_FAILED"],
            )

        verification = await asyncio.to_thread(self.verifier.verify, transaction_id)
        if verification.succeeded and not verification.covers_image(image_id):
            logger.warning(f"[{cid}] Payment {transaction_id} is bound to another image, not {image_id}")
            return PipelineFailure(
                kind=ErrorKind.PAYMENT,
                status_code=402,
                message=ERROR_MESSAGES["PAYMENT_IMAGE_MISMATCH"],
            )
        if verification.succeeded:
            logger.info(f"[{cid}] Payment {transaction_id} confirmed ({verification.amount} {verification.currency})")
            return None

        logger.warning(f"[{cid}] Payment {transaction_id} not accepted: {verification.status.value} ({verification.reason})")
        if verification.status == PaymentStatus.ERROR:
            return PipelineFailure(
                kind=ErrorKind.PAYMENT,
                status_code=503,
                message=ERROR_MESSAGES["PAYMENT_CHECK_FAILED"],
                detail=verification.reason,
            )
        return PipelineFailure(
            kind=ErrorKind.PAYMENT,
            status_code=402,
            message=ERROR_MESSAGES["PAYMENT_REQUIRED"],
            detail=verification.reason,
        )

    # ------------------------------------------------------------------
    # Pipelines
    # ------------------------------------------------------------------

    async def generate_preview(self, body: PreviewGenerationRequest) -> PipelineOutcome:
        """Watermarked preview; the watermark cannot be skipped"""
        cid = get_correlation_id()
        logger.info(f"[{cid}] Preview generation requested for image {body.image.id}")

        validated = self.validate_request(body, SizeClass.PREVIEW)
        if isinstance(validated, PipelineFailure):
            return PipelineOutcome.from_failure(validated)
        warnings = validated

        processed = await self.run_generation(body, SizeClass.PREVIEW)
        if isinstance(processed, PipelineFailure):
            return PipelineOutcome.from_failure(processed)

        watermarked = add_preview_watermark(processed.image_data)
        if not watermarked.success:
            logger.error(f"[{cid}] Preview watermark failed: {watermarked.error}")
            record_event("generation_failed", size=SizeClass.PREVIEW.value, stage=ErrorKind.WATERMARK.value)
            return PipelineOutcome.from_failure(PipelineFailure(
                kind=ErrorKind.WATERMARK,
                status_code=500,
                message=ERROR_MESSAGES["WATERMARK_FAILED"],
                detail=watermarked.error,
            ))

        body_out = self._success_body(
            "previewUrl",
            watermarked.image_data,
            watermarked.mime_type,
            processed,
            watermarked=True,
            warnings=warnings + processed.warnings,
        )
        self._record_completed(SizeClass.PREVIEW, processed)
        return PipelineOutcome(status_code=200, body=body_out)

    async def generate_full(self, body: FullGenerationRequest) -> PipelineOutcome:
        """Full-resolution deliverable, only after a confirmed payment"""
        cid = get_correlation_id()
        logger.info(f"[{cid}] Full generation requested for image {body.image.id}")

        transaction_id = body.payment_intent_id
        payment_failure = await self.check_payment(transaction_id, body.image.id)
        if payment_failure is not None:
            return PipelineOutcome.from_failure(payment_failure)

        if not self.ledger.claim(transaction_id):
            logger.warning(f"[{cid}] Payment {transaction_id} was already used for a download")
            return PipelineOutcome.from_failure(PipelineFailure(
                kind=ErrorKind.PAYMENT,
                status_code=409,
                message=ERROR_MESSAGES["PAYMENT_ALREADY_USED"],
            ))

        delivered = False
        try:
            outcome = await self._generate_full_claimed(body)
            delivered = outcome.status_code == 200
            return outcome
        finally:
            if not delivered:
                logger.info(f"[{cid}] Releasing payment {transaction_id} after a failed generation")
                self.ledger.release(transaction_id)

    async def _generate_full_claimed(self, body: FullGenerationRequest) -> PipelineOutcome:
        validated = self.validate_request(body, SizeClass.FULL)
        if isinstance(validated, PipelineFailure):
            return PipelineOutcome.from_failure(validated)
        warnings = validated

        processed = await self.run_generation(body, SizeClass.FULL)
        if isinstance(processed, PipelineFailure):
            return PipelineOutcome.from_failure(processed)

        image_data, mime_type, is_watermarked = self._apply_full_watermark(processed)

        body_out = self._success_body(
            "downloadUrl",
            image_data,
            mime_type,
            processed,
            watermarked=is_watermarked,
            warnings=warnings + processed.warnings,
        )
        self._record_completed(SizeClass.FULL, processed)
        return PipelineOutcome(status_code=200, body=body_out)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _apply_full_watermark(self, processed: ProcessedResponse) -> Tuple[str, str, bool]:
        """Optional attribution mark; on failure the clean image is delivered"""
        original_mime = processed.metadata.format if processed.metadata else "image/png"
        if not get_settings().full_watermark_enabled:
            return processed.image_data, original_mime, False

        marked = add_subtle_watermark(processed.image_data)
        if not marked.success:
            logger.warning(f"[{get_correlation_id()}] Subtle watermark failed, delivering unmarked image: {marked.error}")
            return processed.image_data, original_mime, False
        return marked.image_data, marked.mime_type, True

    @staticmethod
    def _success_body(
        url_key: str,
        image_data: str,
        mime_type: str,
        processed: ProcessedResponse,
        watermarked: bool,
        warnings: List[str],
    ) -> Dict[str, Any]:
        metadata = processed.metadata
        body: Dict[str, Any] = {
            "success": True,
            url_key: create_download_url(image_data, mime_type),
            "imageData": image_data,
            "metadata": {
                "generationTime": metadata.generation_time,
                "cost": metadata.cost,
                "dimensions": metadata.dimensions,
                "quality": metadata.quality.value,
                "watermarked": watermarked,
            },
        }
        if warnings:
            body["warnings"] = warnings
        return body

    @staticmethod
    def _record_completed(size: SizeClass, processed: ProcessedResponse) -> None:
        metadata = processed.metadata
        record_event(
            "generation_completed",
            size=size.value,
            duration_ms=metadata.generation_time,
            cost=metadata.cost,
            quality=metadata.quality.value,
            model=metadata.model,
        )
