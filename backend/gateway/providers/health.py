from __future__ import annotations

import logging
from datetime import UTC, datetime
from typing import Any, Callable, Mapping

from gateway.core.metrics import provider_status
from gateway.observability.events import emit_health_probe, emit_health_transition
from gateway.providers.errors import ProviderNotFoundError
from gateway.providers.execution_types import HealthResult, Outcome, Success
from gateway.providers.models import EXTERNALLY_MANAGED_STATUSES, HealthCheckConfig, ProviderStatus
from gateway.providers.registry import ProviderRegistry


logger = logging.getLogger("gateway.provider.health")

ProbeCall = Callable[[str, str], Outcome]


def _strict_equals(left: Any, right: Any) -> bool:
    return type(left) is type(right) and left == right


def evaluate_health_response(outcome: Outcome, check: HealthCheckConfig) -> list[str]:
    """Return the names of the checks the probe outcome failed."""
    if not isinstance(outcome, Success):
        return ["request_failed"]

    failed: list[str] = []
    if check.expected_status is not None and outcome.status_code != check.expected_status:
        failed.append("status_code")

    data = outcome.data if isinstance(outcome.data, Mapping) else {}
    for field in check.expected_fields:
        if data.get(field) is None:
            failed.append(f"missing_field:{field}")
    for field, expected in check.expected_values.items():
        if not _strict_equals(data.get(field), expected):
            failed.append(f"unexpected_value:{field}")
    return failed


class HealthMonitor:
    """Probes providers and moves their status between active and error.

    ``inactive`` and ``maintenance`` are set by operators and are never
    changed by a probe. The last-probe time is updated on every probe of a
    provider that has a health check configured.
    """

    def __init__(
        self,
        registry: ProviderRegistry,
        probe_call: ProbeCall,
        *,
        clock: Callable[[], datetime] = lambda: datetime.now(UTC),
    ) -> None:
        self._registry = registry
        self._probe_call = probe_call
        self._clock = clock

    def probe(self, provider_name: str) -> HealthResult:
        try:
            provider = self._registry.get(provider_name)
        except ProviderNotFoundError as exc:
            logger.warning(
                "Health probe requested for an unknown provider.",
                extra={"event": "provider.health.unknown", "provider": provider_name},
            )
            return HealthResult(
                provider=provider_name,
                status="unhealthy",
                message=exc.message,
                failed_checks=(exc.error_code,),
            )
        check = provider.health_check
        if check is None:
            return HealthResult(
                provider=provider_name,
                status="skipped",
                message="No health check configured",
                provider_status=self._registry.status(provider_name),
            )

        outcome = self._probe_call(provider_name, check.endpoint)
        failed_checks = evaluate_health_response(outcome, check)
        healthy = not failed_checks

        checked_at = self._clock()
        self._registry.mark_health_checked(provider_name, checked_at)
        if healthy:
            previous, current = self._registry.transition_status(
                provider_name,
                ProviderStatus.ACTIVE,
                only_from=(ProviderStatus.ERROR,),
            )
        else:
            previous, current = self._registry.transition_status(
                provider_name,
                ProviderStatus.ERROR,
                unless=EXTERNALLY_MANAGED_STATUSES,
            )

        if previous != current:
            provider_status.labels(provider=provider_name, status=previous.value).set(0)
            provider_status.labels(provider=provider_name, status=current.value).set(1)
            emit_health_transition(
                provider=provider_name,
                prior_status=previous.value,
                new_status=current.value,
                reason="health_check_passed" if healthy else "health_check_failed",
            )
        result = "healthy" if healthy else "unhealthy"
        emit_health_probe(provider=provider_name, result=result, failed_checks=failed_checks)

        message = "Health check passed" if healthy else "Health check failed: " + ", ".join(failed_checks)
        return HealthResult(
            provider=provider_name,
            status=result,
            message=message,
            checked_at=checked_at,
            previous_status=previous,
            provider_status=current,
            failed_checks=tuple(failed_checks),
            outcome=outcome,
        )

    def probe_all(self) -> list[HealthResult]:
        results: list[HealthResult] = []
        for provider in self._registry.providers():
            results.append(self.probe(provider.name))
        return results
