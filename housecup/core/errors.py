"""Error types and classification utilities."""

from enum import Enum
from typing import Literal


class DatabaseError(Exception):
    """Raised when a store operation fails."""


class RecordNotFoundError(DatabaseError, KeyError):
    """Raised when a record does not exist in a collection."""


class ErrorCategory(Enum):
    """Categories of errors that can occur while generating a narrative."""

    SERVICE_QUOTA_EXCEEDED = "service_quota_exceeded"
    RATE_LIMIT_EXCEEDED = "rate_limit_exceeded"
    AUTHENTICATION_FAILED = "authentication_failed"
    NETWORK_ERROR = "network_error"
    MALFORMED_RESPONSE = "malformed_response"
    STORE_ERROR = "store_error"
    UNKNOWN = "unknown"


_ERROR_PATTERNS: dict[
    Literal["quota", "rate_limit", "auth", "network", "malformed"],
    dict[str, list[str] | set[str]],
] = {
    "quota": {
        "phrases": [
            "quota exceeded",
            "insufficient credits",
            "credit limit",
            "credits exhausted",
            "out of credits",
        ],
        "exception_types": set(),
    },
    "rate_limit": {
        "phrases": [
            "rate limit",
            "too many requests",
            "rate_limit_exceeded",
            "throttled",
        ],
        "exception_types": set(),
    },
    "auth": {
        "phrases": [
            "authentication failed",
            "invalid api key",
            "unauthorized",
            "invalid token",
            "api key",
            "401",
        ],
        "exception_types": {"AuthenticationError", "PermissionError"},
    },
    "network": {
        "phrases": [
            "connection",
            "timeout",
            "network",
            "503",
            "502",
            "504",
            "unreachable",
        ],
        "exception_types": {"ConnectionError", "TimeoutError", "ConnectError", "ReadTimeout"},
    },
    "malformed": {
        "phrases": [
            "validation error",
            "invalid json",
            "exceeded maximum retries for output validation",
        ],
        "exception_types": {"ValidationError", "JSONDecodeError", "UnexpectedModelBehavior"},
    },
}


def _match_error_pattern(
    *,
    error_str: str,
    exception_type: str,
    pattern_type: Literal["quota", "rate_limit", "auth", "network", "malformed"],
) -> bool:
    """Return True if the error matches the configured pattern type."""
    patterns = _ERROR_PATTERNS[pattern_type]
    return any(phrase in error_str for phrase in patterns["phrases"]) or exception_type in patterns["exception_types"]


def classify_narrative_error(exception: Exception) -> ErrorCategory:
    """Classify a failure raised while generating or storing a narrative.

    Args:
        exception: The exception raised during generation

    Returns:
        The matching ErrorCategory
    """
    if isinstance(exception, DatabaseError):
        return ErrorCategory.STORE_ERROR

    error_str = str(exception).lower()
    exception_type = type(exception).__name__

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="quota"):
        return ErrorCategory.SERVICE_QUOTA_EXCEEDED

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="rate_limit"):
        return ErrorCategory.RATE_LIMIT_EXCEEDED

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="auth"):
        return ErrorCategory.AUTHENTICATION_FAILED

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="malformed"):
        return ErrorCategory.MALFORMED_RESPONSE

    if _match_error_pattern(error_str=error_str, exception_type=exception_type, pattern_type="network"):
        return ErrorCategory.NETWORK_ERROR

    return ErrorCategory.UNKNOWN
