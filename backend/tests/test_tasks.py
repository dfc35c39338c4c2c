import pytest

from conftest import make_provider
from gateway.tasks import tasks
from gateway.tasks.celery_app import celery_app


def test_celery_runs_eagerly_in_tests() -> None:
    assert celery_app.conf.task_always_eager is True
    assert celery_app.conf.beat_schedule["providers-health-probe-all"]["task"] == "providers.health.probe_all"


def test_health_tasks_route_to_health_queue() -> None:
    assert celery_app.conf.task_routes["providers.health.*"] == {"queue": "health_queue"}


def test_probe_all_task_summarises_results(gateway_factory, monkeypatch) -> None:
    healthy = make_provider(health_check={"endpoint": "status", "expected_status": 200})
    broken = make_provider(name="beta", retry_attempts=1, health_check={"endpoint": "status", "expected_status": 200})
    skipped = make_provider(name="gamma")
    gateway, _ = gateway_factory(healthy, broken, skipped, actions=[200, 500])
    monkeypatch.setattr(tasks, "get_gateway", lambda: gateway)

    summary = tasks.probe_all_provider_health.run()

    assert summary["probed"] == 2
    assert summary["unhealthy"] == ["beta"]
    statuses = {row["provider"]: row["status"] for row in summary["results"]}
    assert statuses == {"acme": "healthy", "beta": "unhealthy", "gamma": "skipped"}
    beta = next(row for row in summary["results"] if row["provider"] == "beta")
    assert beta["provider_status"] == "error"
    assert beta["failed_checks"] == ["request_failed"]


def test_probe_task_returns_serialisable_result(gateway_factory, monkeypatch) -> None:
    gateway, _ = gateway_factory(make_provider(health_check={"endpoint": "status"}), actions=[200])
    monkeypatch.setattr(tasks, "get_gateway", lambda: gateway)

    result = tasks.probe_provider_health.delay("acme").get()

    assert result["status"] == "healthy"
    assert result["previous_status"] == "active"
    assert result["checked_at"] is not None


def test_health_task_for_unknown_provider_reports_unhealthy(gateway_factory, monkeypatch) -> None:
    gateway, _ = gateway_factory()
    monkeypatch.setattr(tasks, "get_gateway", lambda: gateway)

    result = tasks.probe_provider_health.delay("nope").get()

    assert result["status"] == "unhealthy"
    assert result["failed_checks"] == ["provider_not_found"]


def test_task_errors_propagate_in_eager_mode(monkeypatch) -> None:
    def _broken_gateway():
        raise RuntimeError("provider file missing")

    monkeypatch.setattr(tasks, "get_gateway", _broken_gateway)

    with pytest.raises(RuntimeError, match="provider file missing"):
        tasks.probe_all_provider_health.delay()
