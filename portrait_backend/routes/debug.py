# FILE: portrait_backend/routes/debug.py
"""
Development-only debug endpoints (rate limit state, telemetry)
"""
import logging
from dataclasses import asdict
from typing import Optional

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from portrait_backend.config import get_settings
from portrait_backend.services.rate_limiter import get_client_identity, get_rate_limiter
from portrait_backend.services.telemetry import get_telemetry_summary

logger = logging.getLogger(__name__)
router = APIRouter()

DEV_ONLY_ERROR = "This endpoint is only available in development mode"


class ClearRateLimitRequest(BaseModel):
    """Clear one identity, or every entry when ip is omitted"""
    ip: Optional[str] = Field(default=None)


def _forbidden() -> Optional[JSONResponse]:
    if get_settings().is_development():
        return None
    return JSONResponse(status_code=403, content={"success": False, "error": DEV_ONLY_ERROR})


@router.get("/rate-limit")
async def rate_limit_info(request: Request):
    """Rate limit state for the calling client plus every tracked entry"""
    forbidden = _forbidden()
    if forbidden:
        return forbidden

    limiter = get_rate_limiter()
    identity = get_client_identity(request.headers)
    entries = [asdict(entry) for entry in limiter.entries()]

    return {
        "clientIP": identity,
        "debugInfo": limiter.debug_info(identity),
        "allEntries": entries,
        "totalEntries": len(entries),
    }


@router.post("/rate-limit")
async def clear_rate_limit(payload: Optional[ClearRateLimitRequest] = None):
    """Clear rate limit state for one identity or all of them"""
    forbidden = _forbidden()
    if forbidden:
        return forbidden

    limiter = get_rate_limiter()
    if payload and payload.ip:
        cleared = limiter.reset(payload.ip)
        logger.info(f"Rate limit cleared for {payload.ip} (existed={cleared})")
        return {"success": True, "message": f"Rate limit cleared for IP: {payload.ip}", "cleared": cleared}

    limiter.clear_all()
    logger.info("All rate limits cleared")
    return {"success": True, "message": "All rate limits cleared"}


@router.get("/telemetry")
async def telemetry_summary():
    forbidden = _forbidden()
    if forbidden:
        return forbidden
    return get_telemetry_summary()
