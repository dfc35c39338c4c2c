from __future__ import annotations

import logging
from datetime import UTC, datetime

from gateway.providers.execution_types import HealthResult
from gateway.services.gateway_service import get_gateway
from gateway.tasks.celery_app import celery_app


logger = logging.getLogger("gateway.tasks")


def _serialize_health_result(result: HealthResult) -> dict:
    return {
        "provider": result.provider,
        "status": result.status,
        "message": result.message,
        "checked_at": result.checked_at.isoformat() if result.checked_at else None,
        "previous_status": result.previous_status.value if result.previous_status else None,
        "provider_status": result.provider_status.value if result.provider_status else None,
        "failed_checks": list(result.failed_checks),
    }


@celery_app.task(name="providers.health.probe")
def probe_provider_health(provider_name: str) -> dict:
    return _serialize_health_result(get_gateway().probe_health(provider_name))


@celery_app.task(name="providers.health.probe_all")
def probe_all_provider_health() -> dict:
    results = [_serialize_health_result(result) for result in get_gateway().probe_all()]
    summary = {
        "timestamp": datetime.now(UTC).isoformat(),
        "probed": sum(1 for row in results if row["status"] != "skipped"),
        "unhealthy": sorted(row["provider"] for row in results if row["status"] == "unhealthy"),
        "results": results,
    }
    if summary["unhealthy"]:
        logger.warning("Providers failed their health check: %s", ", ".join(summary["unhealthy"]))
    return summary
