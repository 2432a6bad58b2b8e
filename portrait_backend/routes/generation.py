# FILE: portrait_backend/routes/generation.py
"""
Portrait generation endpoints (preview and post-payment full size)
"""
import logging
import time

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse

from portrait_backend.constants import APP_NAME
from portrait_backend.models.portrait import FullGenerationRequest, PreviewGenerationRequest
from portrait_backend.providers.registry import get_image_provider
from portrait_backend.services.generation_client import GenerationClient
from portrait_backend.services.orchestrator import GenerationOrchestrator
from portrait_backend.services.payments import get_payment_ledger, get_payment_verifier

logger = logging.getLogger(__name__)
router = APIRouter()


def get_orchestrator() -> GenerationOrchestrator:
    """Orchestrator bound to the active provider, payment verifier and ledger"""
    return GenerationOrchestrator(
        client=GenerationClient(get_image_provider()),
        verifier=get_payment_verifier(),
        ledger=get_payment_ledger(),
    )


def _service_health(service: str) -> dict:
    return {
        "status": "healthy",
        "service": service,
        "model": get_image_provider().model,
        "timestamp": int(time.time() * 1000),
    }


@router.post("/generate-preview")
async def generate_preview_endpoint(
    request: PreviewGenerationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate a watermarked preview portrait"""
    outcome = await orchestrator.generate_preview(request)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/generate-preview")
async def preview_health():
    return _service_health(f"{APP_NAME} - Preview")


@router.post("/generate-full")
async def generate_full_endpoint(
    request: FullGenerationRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
):
    """Generate the full-resolution portrait after payment"""
    outcome = await orchestrator.generate_full(request)
    return JSONResponse(status_code=outcome.status_code, content=outcome.body)


@router.get("/generate-full")
async def full_health():
    return _service_health(f"{APP_NAME} - Full")
