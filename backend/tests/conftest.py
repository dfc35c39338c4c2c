import os
os.environ["APP_ENV"] = "test"

# THEN import anything else
from typing import Any, Callable

import pytest

from gateway.core.settings import Settings
from gateway.providers.models import Provider
from gateway.providers.rate_limit import RateLimiter
from gateway.providers.registry import ProviderRegistry
from gateway.providers.transport import TransportResponse
from gateway.services.gateway_service import IntegrationGateway


class FakeTransport:
    """Replays scripted responses; exceptions in the script are raised."""

    def __init__(self, actions: list[Any] | None = None, *, default: Any = None) -> None:
        self.actions = list(actions or [])
        self.default = default
        self.calls: list[dict[str, Any]] = []

    def send(self, method: str, url: str, headers: dict[str, str], body: dict[str, Any], timeout: float) -> TransportResponse:
        self.calls.append({"method": method, "url": url, "headers": headers, "body": body, "timeout": timeout})
        action = self.actions.pop(0) if self.actions else self.default
        if action is None:
            raise AssertionError("FakeTransport ran out of scripted responses.")
        if isinstance(action, Exception):
            raise action
        if isinstance(action, int):
            return TransportResponse(status_code=action, headers={}, body=None)
        return action


def respond(status_code: int = 200, body: Any = None, headers: dict[str, str] | None = None) -> TransportResponse:
    return TransportResponse(status_code=status_code, headers=headers or {}, body=body)


def make_provider(**overrides: Any) -> Provider:
    config: dict[str, Any] = {
        "name": "acme",
        "category": "payment",
        "base_url": "https://api.acme.test/v1/",
        "endpoints": {
            "orders": {"path": "/orders/{id}", "method": "GET"},
            "create_order": {"path": "/orders", "method": "POST"},
            "status": {"path": "/status", "method": "GET"},
        },
        "retry_attempts": 3,
    }
    config.update(overrides)
    return Provider.model_validate(config)


@pytest.fixture
def settings() -> Settings:
    return Settings(app_env="test", retry_delay_unit_seconds=0.0)


@pytest.fixture
def provider_factory() -> Callable[..., Provider]:
    return make_provider


@pytest.fixture
def gateway_factory(settings: Settings) -> Callable[..., tuple[IntegrationGateway, FakeTransport]]:
    def _build(*providers: Provider, actions: list[Any] | None = None, default: Any = None, rate_limiter: RateLimiter | None = None, **setting_overrides: Any):
        transport = FakeTransport(actions, default=default)
        gateway_settings = settings.model_copy(update=setting_overrides) if setting_overrides else settings
        registry = ProviderRegistry(providers or (make_provider(),))
        gateway = IntegrationGateway(registry, transport, rate_limiter=rate_limiter, settings=gateway_settings)
        return gateway, transport

    return _build
