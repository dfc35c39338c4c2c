from __future__ import annotations

import threading
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime

from gateway.core.metrics import (
    provider_rate_limit_rejections_total,
    provider_request_duration_seconds,
    provider_requests_total,
)
from gateway.providers.execution_types import Failure, Outcome


@dataclass(frozen=True)
class ProviderStatistics:
    provider: str
    total_requests: int
    successful_requests: int
    failed_requests: int
    success_rate: float
    average_response_time_ms: float
    rate_limit_hits: int
    last_request_at: datetime | None
    error_breakdown: dict[str, int] = field(default_factory=dict)


@dataclass
class _Counters:
    total: int = 0
    successful: int = 0
    failed: int = 0
    total_elapsed_ms: int = 0
    rate_limit_hits: int = 0
    last_request_at: datetime | None = None
    errors: Counter = field(default_factory=Counter)


class ProviderTelemetry:
    """Process-local request statistics, mirrored into Prometheus metrics."""

    def __init__(self) -> None:
        self._counters: dict[str, _Counters] = {}
        self._lock = threading.Lock()

    def record_outcome(self, provider_name: str, endpoint_name: str, outcome: Outcome, *, elapsed_ms: int) -> None:
        outcome_label = "success" if outcome.success else "failure"
        provider_requests_total.labels(provider=provider_name, endpoint=endpoint_name, outcome=outcome_label).inc()
        provider_request_duration_seconds.labels(provider=provider_name, endpoint=endpoint_name).observe(elapsed_ms / 1000.0)
        with self._lock:
            counters = self._counters.setdefault(provider_name, _Counters())
            counters.total += 1
            counters.total_elapsed_ms += elapsed_ms
            counters.last_request_at = datetime.now(UTC)
            if outcome.success:
                counters.successful += 1
            else:
                counters.failed += 1
                if isinstance(outcome, Failure):
                    counters.errors[outcome.error_code] += 1

    def record_rate_limited(self, provider_name: str, period: str | None) -> None:
        provider_rate_limit_rejections_total.labels(provider=provider_name, period=period or "unknown").inc()
        with self._lock:
            self._counters.setdefault(provider_name, _Counters()).rate_limit_hits += 1

    def statistics(self, provider_name: str) -> ProviderStatistics:
        with self._lock:
            counters = self._counters.get(provider_name) or _Counters()
            total = counters.total
            return ProviderStatistics(
                provider=provider_name,
                total_requests=total,
                successful_requests=counters.successful,
                failed_requests=counters.failed,
                success_rate=round(counters.successful / total * 100, 2) if total else 0.0,
                average_response_time_ms=round(counters.total_elapsed_ms / total, 2) if total else 0.0,
                rate_limit_hits=counters.rate_limit_hits,
                last_request_at=counters.last_request_at,
                error_breakdown=dict(counters.errors),
            )
