# FILE: portrait_backend/services/errors.py
"""
Error taxonomy for the generation pipeline

Provider failures are classified from their message text into a small set
of codes, each tagged retryable or not, and mapped to a user-facing message
that never echoes the raw provider text.
"""
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Union

logger = logging.getLogger(__name__)


class ErrorKind(str, Enum):
    VALIDATION = "validation"
    ADMISSION = "admission"
    PROVIDER = "provider"
    PROCESSING = "processing"
    WATERMARK = "watermark"
    PAYMENT = "payment"


class ProviderError(Exception):
    """Raised by provider adapters when the external call fails"""

    def __init__(self, message: str, code: Optional[str] = None):
        super().__init__(message)
        self.code = code


@dataclass(frozen=True)
class ProviderErrorInfo:
    code: str
    message: str
    retryable: bool


@dataclass
class PipelineFailure:
    """Typed failure returned by a pipeline stage"""
    kind: ErrorKind
    status_code: int
    message: str
    detail: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


# Ordered: first match wins
_ERROR_PATTERNS = [
    ("api key", ProviderErrorInfo("INVALID_API_KEY", "Invalid or missing API key", False)),
    ("quota", ProviderErrorInfo("QUOTA_EXCEEDED", "API quota exceeded", True)),
    ("timeout", ProviderErrorInfo("TIMEOUT", "Request timed out", True)),
    ("timed out", ProviderErrorInfo("TIMEOUT", "Request timed out", True)),
    ("rate limit", ProviderErrorInfo("RATE_LIMITED", "Rate limit exceeded", True)),
]

USER_MESSAGES = {
    "INVALID_API_KEY": "There was a problem with the AI service configuration. Please try again later.",
    "QUOTA_EXCEEDED": "The AI service is temporarily unavailable. Please try again in a few minutes.",
    "TIMEOUT": "The request took too long to process. Please try again.",
    "RATE_LIMITED": "Too many requests. Please wait a moment and try again.",
    "UNKNOWN_ERROR": "Something went wrong while generating your portrait. Please try again.",
}


def parse_ai_error(error: Union[BaseException, str, None]) -> ProviderErrorInfo:
    """Classify a provider error by inspecting its text"""
    code = getattr(error, "code", None)
    if code in USER_MESSAGES:
        for _, info in _ERROR_PATTERNS:
            if info.code == code:
                return info

    text = str(error or "")
    lowered = text.lower()
    for needle, info in _ERROR_PATTERNS:
        if needle in lowered:
            return info

    return ProviderErrorInfo("UNKNOWN_ERROR", text or "Unknown error occurred", True)


def is_retryable_error(error: Union[BaseException, str, None]) -> bool:
    return parse_ai_error(error).retryable


def get_user_friendly_message(error: Union[BaseException, str, None]) -> str:
    parsed = parse_ai_error(error)
    return USER_MESSAGES.get(parsed.code, USER_MESSAGES["UNKNOWN_ERROR"])


def get_user_message_for_code(code: Optional[str]) -> str:
    """User-facing message for an already classified error code"""
    return USER_MESSAGES.get(code or "", USER_MESSAGES["UNKNOWN_ERROR"])
