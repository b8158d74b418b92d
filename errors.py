from __future__ import annotations

import re
from typing import Any, Dict, Optional


class RedraftError(Exception):
    """Base error with a standardized HTTP-friendly shape."""

    status_code: int = 500
    error_code: str = "INTERNAL_ERROR"

    def __init__(self, message: str, status_code: Optional[int] = None,
                 error_code: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.details = details or {}
        super().__init__(self.message)


class ConfigurationError(RedraftError):
    """The generation service has no usable credentials or endpoint."""
    status_code = 503
    error_code = "NOT_CONFIGURED"


class ValidationError(RedraftError):
    """Malformed request shape, rejected before any network activity."""
    status_code = 400
    error_code = "VALIDATION_ERROR"


class PayloadTooLargeError(ValidationError):
    status_code = 413
    error_code = "PAYLOAD_TOO_LARGE"


class GenerationTimeoutError(RedraftError, TimeoutError):
    """The generation call exceeded its deadline and was abandoned."""
    status_code = 504
    error_code = "UPSTREAM_TIMEOUT"


class EmptyResponseError(RedraftError):
    status_code = 502
    error_code = "EMPTY_RESPONSE"


class UpstreamError(RedraftError):
    """The generation service answered with a non-success status."""
    status_code = 502
    error_code = "UPSTREAM_ERROR"

    def __init__(self, message: str, upstream_status: Optional[int] = None, **kwargs: Any):
        self.upstream_status = upstream_status
        super().__init__(message, **kwargs)


class RefineInProgressError(RedraftError):
    """A second refinement was requested while one is still outstanding."""
    status_code = 409
    error_code = "REFINE_IN_PROGRESS"


def sanitize_error(message: str, secret: Optional[str]) -> str:
    """Replace every occurrence of ``secret`` in ``message`` with [REDACTED]."""
    if not message:
        return message or ""
    if secret and secret in message:
        message = re.sub(re.escape(secret), "[REDACTED]", message)
    return message


def mask_key(key: Optional[str]) -> str:
    """Mask an API key for display: first 3 chars, ellipsis, last 4."""
    if not key or len(key) < 8:
        return "****"
    return f"{key[:3]}...{key[-4:]}"
