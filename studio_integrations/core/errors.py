"""
Error taxonomy for the integration layer.

Every failure that crosses a platform boundary is expressed as one of these
exceptions. Orchestration services catch ``IntegrationError`` and copy
``message``/``code`` into their result objects, so raw ``httpx`` errors never
leave the package.
"""
from enum import Enum
from typing import Optional

import httpx


class ErrorType(str, Enum):
    """Machine-readable classification of a platform HTTP failure."""
    TOKEN = "TOKEN"
    SCOPE = "SCOPE"
    PAYLOAD = "PAYLOAD"
    RATE_LIMIT = "RATE_LIMIT"
    UPSTREAM = "UPSTREAM"
    UNKNOWN = "UNKNOWN"


class IntegrationError(Exception):
    """Base class for all integration failures."""

    default_code = "INTEGRATION_ERROR"

    def __init__(self, message: str, *, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.code = code or self.default_code

    def to_dict(self) -> dict:
        return {"error": self.message, "code": self.code}


class NotConfigured(IntegrationError):
    """No usable credential exists for a provider and workspace."""

    default_code = "MISSING_API_KEY"

    def __init__(
        self,
        message: str,
        *,
        provider_id: Optional[str] = None,
        workspace_id: Optional[str] = None,
        code: Optional[str] = None,
    ):
        super().__init__(message, code=code)
        self.provider_id = provider_id
        self.workspace_id = workspace_id


class ProviderError(IntegrationError):
    """The platform rejected the call."""

    default_code = ErrorType.UNKNOWN.value

    def __init__(
        self,
        message: str,
        *,
        status: Optional[int] = None,
        code: Optional[str] = None,
        provider_id: Optional[str] = None,
    ):
        super().__init__(message, code=code)
        self.status = status
        self.provider_id = provider_id

    def to_dict(self) -> dict:
        data = super().to_dict()
        data["status"] = self.status
        return data


class TransientNetworkError(IntegrationError):
    """Timeout or connection failure. Safe for the caller to retry."""

    default_code = "NETWORK_ERROR"


class ValidationError(IntegrationError):
    """Content violates platform constraints; nothing was sent."""

    default_code = "VALIDATION_FAILED"


class BudgetExceeded(IntegrationError):
    """Estimated cost is above the workspace cap."""

    default_code = "BUDGET_EXCEEDED"


class UnknownProviderError(IntegrationError, KeyError):
    """Lookup of a provider id that is not in a static registry."""

    default_code = "UNKNOWN_PROVIDER"

    def __str__(self) -> str:
        return self.message


class InvalidTransition(IntegrationError):
    """A render job was asked to move to a status its current status forbids."""

    default_code = "INVALID_TRANSITION"


class JobNotFound(IntegrationError, KeyError):
    """No render job with the given id."""

    default_code = "JOB_NOT_FOUND"

    def __str__(self) -> str:
        return self.message


def classify_http_error(status: Optional[int], body: str, platform: str) -> tuple[ErrorType, str]:
    """
    Classify a platform HTTP error into a typed category.

    Args:
        status: HTTP status code (None when unknown)
        body: Response body text
        platform: Display name used in the message

    Returns:
        Tuple of (ErrorType, human-readable message)
    """
    lower = body.lower()
    snippet = body[:200]

    if status == 401:
        return ErrorType.TOKEN, f"{platform} token expired or revoked, reconnect required"
    if status == 403:
        if "scope" in lower or "permission" in lower:
            return ErrorType.SCOPE, f"{platform} is missing a required OAuth scope, re-authorize"
        return ErrorType.SCOPE, f"{platform} permission denied: {snippet}"
    if status in (400, 422):
        return ErrorType.PAYLOAD, f"{platform} rejected the payload: {snippet}"
    if status == 429:
        return ErrorType.RATE_LIMIT, f"{platform} API rate limit exceeded, retry later"
    if status is not None and status >= 500:
        return ErrorType.UPSTREAM, f"{platform} server error ({status}): {snippet}"
    return ErrorType.UNKNOWN, f"{platform} API error: {body[:300]}"


def provider_error_from_response(response: httpx.Response, platform: str) -> ProviderError:
    """Build a ProviderError from a non-2xx response."""
    error_type, message = classify_http_error(response.status_code, response.text, platform)
    return ProviderError(message, status=response.status_code, code=error_type.value)


def transient_from_httpx(exc: httpx.HTTPError, platform: str) -> TransientNetworkError:
    """Wrap a transport-level httpx failure."""
    if isinstance(exc, httpx.TimeoutException):
        return TransientNetworkError(f"{platform} request timed out", code="TIMEOUT")
    return TransientNetworkError(f"{platform} connection failed: {exc}")


def json_object(response: httpx.Response, platform: str, provider_id: Optional[str] = None) -> dict:
    """
    Parse a successful response body that must be a JSON object.

    Raises:
        ProviderError: code ``INVALID_RESPONSE`` when the body is not JSON or not an object
    """
    try:
        data = response.json()
    except ValueError:
        data = None
    if not isinstance(data, dict):
        raise ProviderError(
            f"{platform} returned an unreadable response",
            status=response.status_code,
            code="INVALID_RESPONSE",
            provider_id=provider_id,
        )
    return data


def invalid_response(platform: str, detail: str, status: Optional[int], provider_id: Optional[str] = None) -> ProviderError:
    """A 2xx response that is missing a field the caller needs."""
    return ProviderError(
        f"{platform} {detail}",
        status=status,
        code="INVALID_RESPONSE",
        provider_id=provider_id,
    )
