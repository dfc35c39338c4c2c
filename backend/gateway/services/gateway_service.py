"""
Integration gateway: every outbound call to a configured provider goes
through ``IntegrationGateway.invoke``.

Pipeline per call:
  - status gate (inactive / maintenance providers fail fast)
  - rate-limit admission (fail fast, no retry)
  - request building (endpoint lookup, path template, header and payload merge)
  - resilient execution (retry with capped exponential backoff)
  - response processing (field mapping, error classification)

Callers always get an ``Outcome`` back: ``Success`` or ``Failure``. Gateway
errors are never raised out of ``invoke``.

Thread safety: one gateway instance can be shared by any number of threads.
Rate-limit counters and provider status are the only shared mutable state
and both are lock-guarded (or Redis-atomic for the counters).
"""

from __future__ import annotations

import logging
import time
from functools import lru_cache
from typing import Any, Mapping

from gateway.core.settings import Settings, get_settings
from gateway.db.redis_client import get_redis_client
from gateway.observability.events import emit_rate_limited, emit_request_failed, emit_request_succeeded
from gateway.providers.builder import RequestBuilder
from gateway.providers.cancellation import CancellationToken
from gateway.providers.errors import (
    EndpointNotFoundError,
    ProviderError,
    ProviderInactiveError,
    RateLimitExceededError,
    classify_provider_error,
)
from gateway.providers.execution_types import Failure, HealthResult, Outcome, RawResult
from gateway.providers.executor import ResilientExecutor
from gateway.providers.health import HealthMonitor
from gateway.providers.models import EXTERNALLY_MANAGED_STATUSES, Provider, ProviderStatus
from gateway.providers.processor import ResponseProcessor
from gateway.providers.rate_limit import Admission, InMemoryCounterStore, RateLimiter, RedisCounterStore
from gateway.providers.registry import ProviderRegistry
from gateway.providers.telemetry import ProviderStatistics, ProviderTelemetry
from gateway.providers.transport import HttpxTransport, Transport


logger = logging.getLogger("gateway.service")


class IntegrationGateway:
    def __init__(
        self,
        registry: ProviderRegistry,
        transport: Transport,
        *,
        rate_limiter: RateLimiter | None = None,
        settings: Settings | None = None,
        telemetry: ProviderTelemetry | None = None,
    ) -> None:
        settings = settings or get_settings()
        self.registry = registry
        self.rate_limiter = rate_limiter or RateLimiter(
            key_prefix=settings.rate_limit_key_prefix,
            count_failed_requests=settings.rate_limit_count_failed_requests,
        )
        self.builder = RequestBuilder(strict_path_templates=settings.strict_path_templates)
        self.executor = ResilientExecutor(
            transport,
            rate_limiter=self.rate_limiter,
            delay_unit_seconds=settings.retry_delay_unit_seconds,
            max_delay_units=settings.retry_max_delay_units,
            max_workers=settings.transport_max_workers,
        )
        self.processor = ResponseProcessor(registry, critical_error_markers=settings.critical_error_markers)
        self.telemetry = telemetry or ProviderTelemetry()
        self.health_monitor = HealthMonitor(registry, self._probe_call)
        self._transport = transport

    def invoke(
        self,
        provider_name: str,
        endpoint_name: str,
        data: Mapping[str, Any] | None = None,
        method: str | None = None,
        *,
        cancel_token: CancellationToken | None = None,
    ) -> Outcome:
        return self._run(provider_name, endpoint_name, data, method, cancel_token=cancel_token, enforce_status=True)

    def probe_health(self, provider_name: str) -> HealthResult:
        return self.health_monitor.probe(provider_name)

    def probe_all(self) -> list[HealthResult]:
        return self.health_monitor.probe_all()

    def test_connection(self, provider_name: str, *, cancel_token: CancellationToken | None = None) -> Outcome:
        """Call the health-check endpoint, or the first endpoint when none is set."""
        try:
            provider = self.registry.get(provider_name)
        except ProviderError as exc:
            return self.processor.process_failure(exc, provider_name)
        endpoint_name = _test_endpoint(provider)
        if endpoint_name is None:
            return self.processor.process_failure(EndpointNotFoundError(provider_name, ""), provider_name)
        return self._run(provider_name, endpoint_name, None, None, cancel_token=cancel_token, enforce_status=True)

    def statistics(self, provider_name: str) -> dict[str, Any]:
        snapshot = self.registry.snapshot(provider_name)
        stats: ProviderStatistics = self.telemetry.statistics(provider_name)
        return {
            "provider": stats.provider,
            "total_requests": stats.total_requests,
            "successful_requests": stats.successful_requests,
            "failed_requests": stats.failed_requests,
            "success_rate": stats.success_rate,
            "average_response_time_ms": stats.average_response_time_ms,
            "rate_limit_hits": stats.rate_limit_hits,
            "last_request_at": stats.last_request_at,
            "error_breakdown": stats.error_breakdown,
            "status": snapshot.status.value,
            "last_health_check": snapshot.last_health_check_at,
            "rate_limit_usage": [
                {"period": usage.period, "count": usage.count, "limit": usage.limit, "resets_in_seconds": usage.resets_in_seconds}
                for usage in self.rate_limiter.usage(self.registry.get(provider_name))
            ],
        }

    def set_status(self, provider_name: str, status: ProviderStatus | str) -> ProviderStatus:
        return self.registry.set_status(provider_name, status)

    def close(self) -> None:
        self.executor.close()
        close = getattr(self._transport, "close", None)
        if callable(close):
            close()

    def _probe_call(self, provider_name: str, endpoint_name: str) -> Outcome:
        return self._run(provider_name, endpoint_name, None, None, cancel_token=None, enforce_status=False)

    def _run(
        self,
        provider_name: str,
        endpoint_name: str,
        data: Mapping[str, Any] | None,
        method: str | None,
        *,
        cancel_token: CancellationToken | None,
        enforce_status: bool,
    ) -> Outcome:
        started_at = time.perf_counter()
        admission: Admission | None = None
        raw: RawResult | None = None
        provider: Provider | None = None
        try:
            provider = self.registry.get(provider_name)
            if enforce_status:
                self._ensure_accepting(provider)
            admission = self.rate_limiter.try_admit(provider)
            descriptor = self.builder.build(provider, endpoint_name, data, method=method)
            raw = self.executor.execute(descriptor, provider, admission=admission, cancel_token=cancel_token)
            outcome: Outcome = self.processor.process(raw, endpoint_name, provider, elapsed_ms=_elapsed_ms(started_at))
        except Exception as exc:  # noqa: BLE001
            error = classify_provider_error(exc)
            if admission is not None and raw is None:
                self.rate_limiter.record_failure(admission)
            if isinstance(error, RateLimitExceededError):
                self.telemetry.record_rate_limited(provider_name, error.period)
                emit_rate_limited(provider=provider_name, period=error.period, retry_after_seconds=error.retry_after_seconds)
            if error.reason_code == "internal_error":
                logger.exception("Unexpected error while calling provider %s", provider_name)
            outcome = self.processor.process_failure(error, provider_name, attempts=raw.attempts if raw else error.attempts)

        elapsed_ms = _elapsed_ms(started_at)
        self.telemetry.record_outcome(provider_name, endpoint_name, outcome, elapsed_ms=elapsed_ms)
        self._log_outcome(provider, endpoint_name, method, data, outcome, elapsed_ms)
        return outcome

    def _ensure_accepting(self, provider: Provider) -> None:
        status = self.registry.status(provider.name)
        if not provider.is_active or status in EXTERNALLY_MANAGED_STATUSES:
            raise ProviderInactiveError(provider.name, status.value)

    def _log_outcome(
        self,
        provider: Provider | None,
        endpoint_name: str,
        method: str | None,
        data: Mapping[str, Any] | None,
        outcome: Outcome,
        elapsed_ms: int,
    ) -> None:
        provider_name = provider.name if provider is not None else ""
        if isinstance(outcome, Failure):
            emit_request_failed(
                provider=outcome.provider,
                endpoint=endpoint_name,
                method=method,
                error_code=outcome.error_code,
                message=outcome.message,
                status_code=outcome.status_code,
                duration_ms=elapsed_ms,
            )
            return
        if provider is None or not provider.request_log.enabled:
            return
        emit_request_succeeded(
            provider=provider_name,
            endpoint=endpoint_name,
            method=method,
            status_code=outcome.status_code,
            duration_ms=elapsed_ms,
            request_data=dict(data or {}) if provider.request_log.include_payload else None,
        )


def _elapsed_ms(started_at: float) -> int:
    return int((time.perf_counter() - started_at) * 1000)


def _test_endpoint(provider: Provider) -> str | None:
    if provider.health_check is not None:
        return provider.health_check.endpoint
    return next(iter(provider.endpoints), None)


def build_rate_limiter(settings: Settings) -> RateLimiter:
    if settings.rate_limit_backend == "redis":
        client = get_redis_client()
        store = RedisCounterStore(client) if client is not None else InMemoryCounterStore()
    else:
        store = InMemoryCounterStore()
    return RateLimiter(
        store,
        key_prefix=settings.rate_limit_key_prefix,
        count_failed_requests=settings.rate_limit_count_failed_requests,
    )


def build_gateway(settings: Settings | None = None, *, transport: Transport | None = None) -> IntegrationGateway:
    settings = settings or get_settings()
    path = settings.providers_config_path.strip()
    registry = ProviderRegistry.from_file(path) if path else ProviderRegistry()
    if not path:
        logger.warning("PROVIDERS_CONFIG_PATH is empty; gateway starts with no providers.")
    return IntegrationGateway(
        registry,
        transport or HttpxTransport(),
        rate_limiter=build_rate_limiter(settings),
        settings=settings,
    )


@lru_cache
def get_gateway() -> IntegrationGateway:
    return build_gateway()


__all__ = [
    "IntegrationGateway",
    "build_gateway",
    "build_rate_limiter",
    "get_gateway",
]
