from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Iterable, Mapping

from gateway.core.metrics import provider_status
from gateway.observability.events import emit_health_transition
from gateway.providers.errors import MappingError, ProviderError, RateLimitExceededError
from gateway.providers.execution_types import Failure, RawResult, Success
from gateway.providers.mapping import FieldMapping, apply_field_mapping
from gateway.providers.models import EXTERNALLY_MANAGED_STATUSES, Provider, ProviderStatus
from gateway.providers.registry import ProviderRegistry


logger = logging.getLogger("gateway.provider.processor")


class ResponseProcessor:
    """Turns raw transport results and errors into caller-facing outcomes."""

    def __init__(self, registry: ProviderRegistry, *, critical_error_markers: Iterable[str] = ()) -> None:
        self._registry = registry
        self._critical_error_markers = tuple(critical_error_markers)

    def process(self, raw: RawResult, endpoint_name: str, provider: Provider, *, elapsed_ms: int | None = None) -> Success:
        data: Any = raw.body
        endpoint = provider.endpoint(endpoint_name)
        if endpoint is not None and endpoint.response_mapping:
            data = _map_payload(data, endpoint.response_mapping)
        if provider.response_mapping:
            data = _map_payload(data, provider.response_mapping)

        duration_ms = raw.elapsed_ms if elapsed_ms is None else elapsed_ms
        return Success(
            data=data,
            status_code=raw.status_code,
            metadata={
                "provider": provider.name,
                "endpoint": endpoint_name,
                "attempts": raw.attempts,
                "response_time_ms": duration_ms,
            },
            elapsed_ms=duration_ms,
        )

    def is_critical(self, error: ProviderError) -> bool:
        return any(marker in error.message for marker in self._critical_error_markers)

    def process_failure(self, error: ProviderError, provider_name: str, *, attempts: int = 0) -> Failure:
        provider = self._registry.get(provider_name) if provider_name in self._registry else None
        message = error.message
        if provider is not None:
            if self.is_critical(error):
                self._escalate(provider, error)
            message = provider.error_handling.rewrite(message)

        retry_after = error.retry_after_seconds if isinstance(error, RateLimitExceededError) else None
        return Failure(
            error_code=error.error_code,
            message=message,
            status_code=error.status_code,
            provider=provider_name,
            timestamp=datetime.now(UTC).isoformat(),
            retry_after_seconds=retry_after,
            attempts=attempts,
        )

    def _escalate(self, provider: Provider, error: ProviderError) -> None:
        previous, current = self._registry.transition_status(
            provider.name,
            ProviderStatus.ERROR,
            unless=EXTERNALLY_MANAGED_STATUSES,
        )
        if previous == current:
            return
        logger.warning(
            "Provider escalated to error after a critical failure.",
            extra={"event": "provider.status.escalated", "provider": provider.name, "status": current.value},
        )
        provider_status.labels(provider=provider.name, status=previous.value).set(0)
        provider_status.labels(provider=provider.name, status=current.value).set(1)
        emit_health_transition(
            provider=provider.name,
            prior_status=previous.value,
            new_status=current.value,
            reason=error.reason_code,
        )


def _map_payload(data: Any, mapping: FieldMapping) -> dict[str, Any]:
    if not isinstance(data, Mapping):
        raise MappingError(
            f"Response mapping requires a JSON object, got {type(data).__name__}.",
            upstream_payload=data,
        )
    return apply_field_mapping(data, mapping)
