# FILE: tests/test_errors.py

import pytest

from portrait_backend.services.errors import (
    ProviderError,
    USER_MESSAGES,
    get_user_friendly_message,
    get_user_message_for_code,
    is_retryable_error,
    parse_ai_error,
)


@pytest.mark.parametrize("text,code,retryable", [
    ("Invalid API key provided", "INVALID_API_KEY", False),
    ("Quota exceeded for project", "QUOTA_EXCEEDED", True),
    ("Request timeout while waiting", "TIMEOUT", True),
    ("The read operation timed out", "TIMEOUT", True),
    ("Rate limit reached", "RATE_LIMITED", True),
    ("Something odd happened", "UNKNOWN_ERROR", True),
])
def test_classification_by_text(text, code, retryable):
    info = parse_ai_error(ProviderError(text))

    assert info.code == code
    assert info.retryable is retryable
    assert is_retryable_error(text) is retryable


def test_explicit_code_wins_over_text():
    """Adapters can tag an error directly"""
    info = parse_ai_error(ProviderError("missing credentials", code="INVALID_API_KEY"))
    assert info.code == "INVALID_API_KEY"


def test_user_message_never_echoes_provider_text():
    raw = "429 RESOURCE_EXHAUSTED: Quota exceeded for metric generate_content_requests"
    message = get_user_friendly_message(raw)

    assert message == USER_MESSAGES["QUOTA_EXCEEDED"]
    assert raw not in message


def test_unknown_code_falls_back():
    assert get_user_message_for_code(None) == USER_MESSAGES["UNKNOWN_ERROR"]
    assert get_user_message_for_code("INVALID_REQUEST") == USER_MESSAGES["UNKNOWN_ERROR"]
    assert get_user_message_for_code("TIMEOUT") == USER_MESSAGES["TIMEOUT"]
