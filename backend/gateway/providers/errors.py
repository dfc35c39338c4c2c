from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import httpx


@dataclass(frozen=True)
class ErrorClassification:
    error_code: str
    reason_code: str
    retryable: bool
    severity: str


class ProviderError(Exception):
    def __init__(
        self,
        message: str,
        *,
        error_code: str,
        reason_code: str,
        retryable: bool,
        severity: str,
        status_code: int | None = None,
        upstream_payload: Any = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.error_code = error_code
        self.reason_code = reason_code
        self.retryable = retryable
        self.severity = severity
        self.status_code = status_code
        self.upstream_payload = upstream_payload
        self.attempts = 0


class ProviderNotFoundError(ProviderError):
    def __init__(self, provider_name: str) -> None:
        super().__init__(
            f"Provider '{provider_name}' is not configured.",
            error_code="provider_not_found",
            reason_code="not_found",
            retryable=False,
            severity="error",
            status_code=404,
        )
        self.provider_name = provider_name


class ProviderInactiveError(ProviderError):
    def __init__(self, provider_name: str, status: str) -> None:
        super().__init__(
            f"Provider '{provider_name}' is not accepting requests (status: {status}).",
            error_code="provider_inactive",
            reason_code="inactive",
            retryable=False,
            severity="warning",
            status_code=503,
        )
        self.provider_name = provider_name
        self.status = status


class EndpointNotFoundError(ProviderError):
    def __init__(self, provider_name: str, endpoint_name: str) -> None:
        super().__init__(
            "Endpoint not found",
            error_code="endpoint_not_found",
            reason_code="not_found",
            retryable=False,
            severity="error",
            status_code=404,
        )
        self.provider_name = provider_name
        self.endpoint_name = endpoint_name


class MethodNotAllowedError(ProviderError):
    def __init__(self, endpoint_name: str, method: str, allowed: str) -> None:
        super().__init__(
            f"Endpoint '{endpoint_name}' only accepts {allowed}, got {method}.",
            error_code="method_not_allowed",
            reason_code="bad_request",
            retryable=False,
            severity="error",
            status_code=405,
        )


class UnresolvedPathParameterError(ProviderError):
    def __init__(self, endpoint_name: str, placeholders: list[str]) -> None:
        super().__init__(
            f"Endpoint '{endpoint_name}' path has unresolved parameters: {', '.join(placeholders)}.",
            error_code="path_parameter_missing",
            reason_code="bad_request",
            retryable=False,
            severity="error",
            status_code=400,
        )
        self.placeholders = placeholders


class RateLimitExceededError(ProviderError):
    def __init__(self, retry_after_seconds: float, *, period: str | None = None) -> None:
        super().__init__(
            "Rate limit exceeded",
            error_code="rate_limit_exceeded",
            reason_code="rate_limited",
            retryable=False,
            severity="warning",
            status_code=429,
        )
        self.retry_after_seconds = retry_after_seconds
        self.period = period


class TransportError(ProviderError):
    def __init__(
        self,
        message: str = "Provider transport failed.",
        *,
        error_code: str = "provider_transport",
        reason_code: str = "transport_error",
    ) -> None:
        super().__init__(
            message,
            error_code=error_code,
            reason_code=reason_code,
            retryable=True,
            severity="error",
        )


class TransportTimeoutError(TransportError):
    def __init__(self, message: str = "Connection timeout") -> None:
        super().__init__(message, error_code="provider_timeout", reason_code="timeout")


class TransportConnectionError(TransportError):
    def __init__(self, message: str = "Connection refused") -> None:
        super().__init__(message, error_code="provider_connection", reason_code="connection_error")


class UpstreamError(ProviderError):
    def __init__(
        self,
        message: str,
        *,
        status_code: int,
        retryable: bool = False,
        upstream_payload: Any = None,
    ) -> None:
        super().__init__(
            message,
            error_code="provider_upstream_error",
            reason_code=_reason_for_status(status_code),
            retryable=retryable,
            severity="critical" if status_code in {401, 403} else "error",
            status_code=status_code,
            upstream_payload=upstream_payload,
        )


class MappingError(ProviderError):
    def __init__(self, message: str = "Provider response format is invalid.", *, upstream_payload: Any = None) -> None:
        super().__init__(
            message,
            error_code="provider_response_invalid",
            reason_code="response_invalid",
            retryable=False,
            severity="error",
            upstream_payload=upstream_payload,
        )


class RequestCancelledError(ProviderError):
    def __init__(self, message: str = "Provider request was cancelled.") -> None:
        super().__init__(
            message,
            error_code="request_cancelled",
            reason_code="cancelled",
            retryable=False,
            severity="warning",
            status_code=499,
        )


def _reason_for_status(status_code: int) -> str:
    if status_code in {401, 403}:
        return "auth_failed"
    if status_code == 429:
        return "rate_limited"
    if status_code in {408, 504}:
        return "timeout"
    if 400 <= status_code < 500:
        return "bad_request"
    if status_code >= 500:
        return "dependency_unavailable"
    return "unexpected_status"


def classification_from_exception(exc: Exception) -> ErrorClassification:
    if isinstance(exc, ProviderError):
        return ErrorClassification(
            error_code=exc.error_code,
            reason_code=exc.reason_code,
            retryable=exc.retryable,
            severity=exc.severity,
        )
    if isinstance(exc, TimeoutError | httpx.TimeoutException):
        return ErrorClassification("provider_timeout", "timeout", True, "error")
    if isinstance(exc, ConnectionError | httpx.ConnectError):
        return ErrorClassification("provider_connection", "connection_error", True, "error")
    if isinstance(exc, httpx.HTTPStatusError):
        status_code = exc.response.status_code if exc.response is not None else 0
        return ErrorClassification(
            "provider_upstream_error",
            _reason_for_status(status_code),
            status_code in {408, 429, 500, 502, 503, 504},
            "critical" if status_code in {401, 403} else "error",
        )
    if isinstance(exc, httpx.HTTPError):
        return ErrorClassification("provider_transport", "transport_error", True, "error")
    return ErrorClassification("provider_internal_error", "internal_error", False, "critical")


def classify_provider_error(exc: Exception) -> ProviderError:
    if isinstance(exc, ProviderError):
        return exc
    classification = classification_from_exception(exc)
    status_code = None
    if isinstance(exc, httpx.HTTPStatusError) and exc.response is not None:
        status_code = exc.response.status_code
    return ProviderError(
        str(exc) or classification.reason_code,
        error_code=classification.error_code,
        reason_code=classification.reason_code,
        retryable=classification.retryable,
        severity=classification.severity,
        status_code=status_code,
    )
