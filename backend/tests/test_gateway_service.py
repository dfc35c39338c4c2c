import threading
from unittest.mock import Mock

import pytest

from conftest import FakeTransport, make_provider, respond
from gateway.core.settings import Settings
from gateway.providers.cancellation import CancellationToken
from gateway.providers.errors import TransportConnectionError, TransportTimeoutError
from gateway.providers.models import ProviderStatus
from gateway.providers.rate_limit import RateLimiter
from gateway.providers.registry import ProviderRegistry
from gateway.services import gateway_service
from gateway.services.gateway_service import IntegrationGateway, build_gateway


def test_invoke_returns_mapped_success(gateway_factory, provider_factory) -> None:
    provider = provider_factory(
        endpoints={"orders": {"path": "/orders/{id}", "response_mapping": {"order_id": "id", "amount": "amount"}}},
    )
    gateway, transport = gateway_factory(provider, actions=[respond(200, {"order_id": "o_9", "amount": 500, "noise": True})])

    outcome = gateway.invoke("acme", "orders", {"id": "o_9"})

    assert outcome.success is True
    assert outcome.data == {"id": "o_9", "amount": 500}
    assert outcome.metadata["attempts"] == 1
    assert transport.calls[0]["url"] == "https://api.acme.test/v1/orders/o_9"
    assert transport.calls[0]["method"] == "GET"


def test_unknown_provider_is_a_failure_not_an_exception(gateway_factory) -> None:
    gateway, transport = gateway_factory()
    outcome = gateway.invoke("ghost", "orders")
    assert outcome.success is False
    assert outcome.error_code == "provider_not_found"
    assert transport.calls == []


def test_unknown_endpoint_fails_without_consuming_quota(gateway_factory, provider_factory) -> None:
    gateway, transport = gateway_factory(provider_factory(rate_limits={"minute": 1}))
    outcome = gateway.invoke("acme", "refunds")
    assert outcome.error_code == "endpoint_not_found"
    assert outcome.message == "Endpoint not found"
    assert transport.calls == []
    assert gateway.rate_limiter.usage(gateway.registry.get("acme"))[0].count == 0


def test_rate_limit_rejects_without_sending(gateway_factory, provider_factory) -> None:
    gateway, transport = gateway_factory(provider_factory(rate_limits={"minute": 2}), default=200)

    outcomes = [gateway.invoke("acme", "status") for _ in range(3)]

    assert [outcome.success for outcome in outcomes] == [True, True, False]
    assert outcomes[2].error_code == "rate_limit_exceeded"
    assert outcomes[2].status_code == 429
    assert outcomes[2].retry_after_seconds is not None
    assert len(transport.calls) == 2
    assert gateway.statistics("acme")["rate_limit_hits"] == 1


def test_failed_send_does_not_consume_quota(gateway_factory, provider_factory) -> None:
    gateway, transport = gateway_factory(provider_factory(rate_limits={"minute": 1}, retry_attempts=1), actions=[respond(404), 200])
    assert gateway.invoke("acme", "status").success is False
    assert gateway.invoke("acme", "status").success is True
    assert len(transport.calls) == 2


def test_server_errors_are_retried_to_exhaustion(gateway_factory) -> None:
    gateway, transport = gateway_factory(actions=[503, 503, 503])
    outcome = gateway.invoke("acme", "status")
    assert outcome.success is False
    assert outcome.status_code == 503
    assert outcome.attempts == 3
    assert len(transport.calls) == 3


def test_inactive_and_maintenance_providers_fail_fast(gateway_factory, provider_factory) -> None:
    gateway, transport = gateway_factory(provider_factory(), provider_factory(name="beta", is_active=False), default=200)
    gateway.set_status("acme", "maintenance")

    for name in ("acme", "beta"):
        outcome = gateway.invoke(name, "status")
        assert outcome.error_code == "provider_inactive"
        assert outcome.status_code == 503
    assert transport.calls == []


def test_provider_in_error_still_accepts_calls(gateway_factory, provider_factory) -> None:
    gateway, _ = gateway_factory(provider_factory(status="error"), default=200)
    assert gateway.invoke("acme", "status").success is True


def test_connection_refused_escalates_provider(gateway_factory, provider_factory) -> None:
    gateway, _ = gateway_factory(provider_factory(retry_attempts=1), actions=[TransportConnectionError("Connection refused: api.acme.test")])
    outcome = gateway.invoke("acme", "status")
    assert outcome.error_code == "provider_connection"
    assert gateway.registry.status("acme") == ProviderStatus.ERROR


def test_method_mismatch_is_reported(gateway_factory) -> None:
    gateway, transport = gateway_factory()
    outcome = gateway.invoke("acme", "create_order", {"amount": 1}, "DELETE")
    assert outcome.error_code == "method_not_allowed"
    assert transport.calls == []


def test_unexpected_errors_become_failures(gateway_factory) -> None:
    gateway, _ = gateway_factory(actions=[RuntimeError("socket exploded")])
    outcome = gateway.invoke("acme", "status")
    assert outcome.success is False
    assert outcome.error_code == "provider_internal_error"


def test_cancelled_call_returns_cancelled_failure(gateway_factory) -> None:
    gateway, transport = gateway_factory(default=200)
    token = CancellationToken()
    token.cancel()
    outcome = gateway.invoke("acme", "status", cancel_token=token)
    assert outcome.error_code == "request_cancelled"
    assert transport.calls == []


def test_health_probe_bypasses_status_gate(gateway_factory, provider_factory) -> None:
    provider = provider_factory(status="maintenance", health_check={"endpoint": "status", "expected_status": 200})
    gateway, transport = gateway_factory(provider, actions=[respond(200, {"ok": True})])
    result = gateway.probe_health("acme")
    assert result.healthy
    assert len(transport.calls) == 1
    assert gateway.registry.status("acme") == ProviderStatus.MAINTENANCE


def test_failed_probe_then_recovery(gateway_factory, provider_factory) -> None:
    provider = provider_factory(retry_attempts=1, health_check={"endpoint": "status", "expected_status": 200})
    gateway, _ = gateway_factory(provider, actions=[500, 200])
    assert gateway.probe_health("acme").status == "unhealthy"
    assert gateway.registry.status("acme") == ProviderStatus.ERROR
    assert gateway.probe_health("acme").status == "healthy"
    assert gateway.registry.status("acme") == ProviderStatus.ACTIVE


def test_test_connection_prefers_health_endpoint(gateway_factory, provider_factory) -> None:
    gateway, transport = gateway_factory(provider_factory(health_check={"endpoint": "status"}), default=200)
    assert gateway.test_connection("acme").success is True
    assert transport.calls[0]["url"].endswith("/status")


def test_test_connection_falls_back_to_first_endpoint(gateway_factory) -> None:
    gateway, transport = gateway_factory(default=200)
    gateway.test_connection("acme")
    assert transport.calls[0]["url"].endswith("/orders/{id}")


def test_test_connection_without_endpoints(gateway_factory, provider_factory) -> None:
    gateway, _ = gateway_factory(provider_factory(endpoints={}))
    outcome = gateway.test_connection("acme")
    assert outcome.error_code == "endpoint_not_found"


def test_statistics_summarise_outcomes(gateway_factory, provider_factory) -> None:
    gateway, _ = gateway_factory(provider_factory(retry_attempts=1, rate_limits={"hour": 100}), actions=[200, 200, respond(400)])
    for _ in range(3):
        gateway.invoke("acme", "status")
    stats = gateway.statistics("acme")
    assert stats["total_requests"] == 3
    assert stats["successful_requests"] == 2
    assert stats["failed_requests"] == 1
    assert stats["success_rate"] == 66.67
    assert stats["error_breakdown"] == {"provider_upstream_error": 1}
    assert stats["status"] == "active"
    assert stats["rate_limit_usage"][0]["count"] == 2


def test_concurrent_invocations_respect_quota(settings: Settings) -> None:
    provider = make_provider(rate_limits={"minute": 20})
    transport = FakeTransport(default=200)
    lock = threading.Lock()

    class _LockedTransport:
        def send(self, *args, **kwargs):
            with lock:
                return transport.send(*args, **kwargs)

    gateway = IntegrationGateway(ProviderRegistry([provider]), _LockedTransport(), rate_limiter=RateLimiter(), settings=settings)
    results: list[bool] = []

    def _worker() -> None:
        for _ in range(5):
            outcome = gateway.invoke("acme", "status")
            with lock:
                results.append(outcome.success)

    threads = [threading.Thread(target=_worker) for _ in range(10)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert results.count(True) == 20
    assert len(transport.calls) == 20


def test_close_closes_transport(settings: Settings) -> None:
    transport = Mock()
    IntegrationGateway(ProviderRegistry(), transport, settings=settings).close()
    transport.close.assert_called_once_with()


def test_build_gateway_loads_provider_file(tmp_path, monkeypatch: pytest.MonkeyPatch) -> None:
    config = tmp_path / "providers.json"
    config.write_text('{"providers": [{"name": "acme", "base_url": "https://api.acme.test"}]}', encoding="utf-8")
    monkeypatch.setattr(gateway_service, "get_redis_client", lambda: None)
    gateway = build_gateway(
        Settings(app_env="test", providers_config_path=str(config), rate_limit_backend="redis"),
        transport=FakeTransport(),
    )
    assert "acme" in gateway.registry
    assert gateway.rate_limiter is not None


def test_caller_deadline_does_not_escalate_provider(provider_factory) -> None:
    released = threading.Event()

    class _HangingTransport:
        def send(self, method, url, headers, body, timeout):
            released.wait(timeout)
            raise TransportTimeoutError(f"Connection timeout: no answer within {timeout}s")

    gateway = IntegrationGateway(
        ProviderRegistry([provider_factory(retry_attempts=1)]),
        _HangingTransport(),
        settings=Settings(app_env="test", retry_delay_unit_seconds=0.0),
    )
    try:
        outcome = gateway.invoke("acme", "status", cancel_token=CancellationToken(timeout_seconds=0.05))
    finally:
        released.set()
    assert outcome.error_code == "request_cancelled"
    assert gateway.registry.status("acme") == ProviderStatus.ACTIVE


def test_health_check_of_unknown_provider_returns_unhealthy_result(gateway_factory) -> None:
    gateway, transport = gateway_factory()
    result = gateway.probe_health("nope")
    assert result.status == "unhealthy"
    assert result.provider == "nope"
    assert result.failed_checks == ("provider_not_found",)
    assert "not configured" in result.message
    assert transport.calls == []
