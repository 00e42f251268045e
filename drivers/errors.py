"""Driver exceptions and their normalization into OperationResult.

Inside a driver, failures are raised as ``DriverError`` subclasses. The
``driver_operation`` boundary (see ``drivers.base``) converts them with
``normalize_exception`` so callers only ever see an ``OperationResult``.
"""

import asyncio
import json
import logging
from typing import Optional

import aiohttp

from core.models.results import OperationResult

logger = logging.getLogger(__name__)

MAX_LOGGED_BODY = 2000


class DriverError(Exception):
    """Base exception for provider call failures."""
    def __init__(self, message: str, status_code: int = 0, response_body: str = ""):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.response_body = response_body


class AuthenticationError(DriverError):
    """Credentials rejected or token expired (401/403)."""
    pass


class RateLimitExceededError(DriverError):
    """Local budget exhausted, or provider answered 429."""
    def __init__(self, message: str, retry_after: int = 60, status_code: int = 429):
        super().__init__(message, status_code)
        self.retry_after = retry_after


class ProviderRejectedError(DriverError):
    """Provider understood the request and refused it."""
    def __init__(self, message: str, code: Optional[str] = None, status_code: int = 0, response_body: str = ""):
        super().__init__(message, status_code, response_body)
        self.code = code


class TransientNetworkError(DriverError):
    """Timeout, connection failure or 5xx. Safe to retry later."""
    pass


class SchemaMismatchError(DriverError):
    """Response body did not have the expected shape."""
    pass


class PayloadValidationError(DriverError):
    """Request payload failed local validation; nothing was sent."""
    def __init__(self, message: str, field: Optional[str] = None):
        super().__init__(message)
        self.field = field


class ConfigurationError(ValueError):
    """Driver cannot be constructed (missing credential field, bad URL).

    Raised at construction time, before any operation, so it is not
    converted into an OperationResult.
    """
    pass


def classify_response(status: int, body: str = "", message: Optional[str] = None) -> DriverError:
    """Map a non-2xx HTTP status to the matching DriverError."""
    text = message or _summarize_body(body) or f"HTTP {status}"
    if status in (401, 403):
        return AuthenticationError(f"Authentication failed: {text}", status, body)
    if status == 429:
        return RateLimitExceededError(f"Provider rate limit reached: {text}", status_code=status)
    if status == 408 or status >= 500:
        return TransientNetworkError(f"Provider unavailable (HTTP {status}): {text}", status, body)
    return ProviderRejectedError(f"Provider rejected the request: {text}", str(status), status, body)


def _summarize_body(body: str) -> str:
    """Pull a readable message out of a JSON error body."""
    if not body:
        return ""
    try:
        data = json.loads(body)
    except json.JSONDecodeError:
        return body.strip()[:300]
    if isinstance(data, dict):
        for key in ("message", "detail", "error_description", "error", "Message", "ErrorMessage"):
            value = data.get(key)
            if isinstance(value, str) and value:
                return value
        errors = data.get("errors")
        if isinstance(errors, list) and errors:
            first = errors[0]
            if isinstance(first, dict):
                return str(first.get("detail") or first.get("title") or first)
            return str(first)
    return body.strip()[:300]


def normalize_exception(exc: BaseException, operation: str = "operation") -> OperationResult:
    """Convert any exception raised inside a driver operation into a result."""
    if isinstance(exc, PayloadValidationError):
        return OperationResult.validation_error(exc.message, field=exc.field)
    if isinstance(exc, AuthenticationError):
        return OperationResult.auth_error(exc.message)
    if isinstance(exc, RateLimitExceededError):
        return OperationResult.rate_limited(exc.message, retry_after=exc.retry_after)
    if isinstance(exc, ProviderRejectedError):
        return OperationResult.provider_rejected(exc.message, error_code=exc.code)
    if isinstance(exc, TransientNetworkError):
        return OperationResult.transient(exc.message)
    if isinstance(exc, SchemaMismatchError):
        logger.warning(
            f"{operation}: unexpected response shape: {exc.response_body[:MAX_LOGGED_BODY]}"
        )
        return OperationResult.schema_mismatch(exc.message)
    if isinstance(exc, DriverError):
        return OperationResult.provider_rejected(exc.message, error_code=str(exc.status_code or "error"))
    if isinstance(exc, ConfigurationError):
        return OperationResult.validation_error(str(exc))
    if isinstance(exc, (aiohttp.ClientError, asyncio.TimeoutError, OSError)):
        return OperationResult.transient(f"Network error during {operation}: {exc!r}")
    if isinstance(exc, (ValueError, KeyError, TypeError, IndexError, AttributeError)):
        logger.warning(f"{operation}: could not interpret provider data: {exc!r}")
        return OperationResult.schema_mismatch(f"Unexpected provider data during {operation}: {exc}")

    logger.exception(f"{operation}: unexpected error")
    return OperationResult.provider_rejected(
        f"Unexpected error during {operation}: {exc}",
        error_code="unexpected_error",
    )
