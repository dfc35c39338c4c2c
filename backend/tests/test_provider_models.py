import pytest
from pydantic import ValidationError

from gateway.providers.models import Provider, ProviderStatus, period_seconds


def test_provider_parses_stored_record_shape() -> None:
    provider = Provider.model_validate(
        {
            "name": "sendgrid",
            "display_name": "SendGrid",
            "category": "email",
            "base_url": "https://api.sendgrid.com/v3",
            "authentication": {"type": "bearer_token", "token": "sg-token"},
            "timeout": 12,
            "rate_limits": {"minute": {"max_requests": 10}, "day": 500},
            "request_log_config": {"enabled": True},
            "error_handling": {"message_mapping": {"timeout": "Email service is slow, try again."}},
            "response_mapping": {"id": "message_id"},
            "endpoints": {"send_email": {"path": "/mail/send", "method": "post"}},
        }
    )
    assert provider.auth.type == "bearer"
    assert provider.timeout_seconds == 12
    assert provider.rate_limits["minute"].max_requests == 10
    assert provider.rate_limits["day"].max_requests == 500
    assert provider.request_log.enabled is True
    assert provider.error_handling.rewrite("Connection timeout after 12s") == "Email service is slow, try again."
    assert provider.response_mapping.as_table() == {"id": "message_id"}
    assert provider.endpoint("send_email").method == "POST"
    assert provider.status == ProviderStatus.ACTIVE


def test_provider_is_frozen() -> None:
    provider = Provider(name="acme", base_url="https://acme.test")
    with pytest.raises(ValidationError):
        provider.base_url = "https://other.test"


def test_unknown_http_method_is_rejected() -> None:
    with pytest.raises(ValidationError):
        Provider.model_validate(
            {"name": "acme", "base_url": "https://acme.test", "endpoints": {"x": {"path": "/x", "method": "FETCH"}}}
        )


def test_empty_health_check_is_treated_as_absent() -> None:
    provider = Provider.model_validate({"name": "acme", "base_url": "https://acme.test", "health_check": {}})
    assert provider.health_check is None


def test_max_attempts_honours_auto_retry_flag() -> None:
    assert Provider(name="a", base_url="https://a.test", retry_attempts=4).max_attempts == 4
    assert Provider(name="a", base_url="https://a.test", retry_attempts=4, auto_retry=False).max_attempts == 1
    assert Provider(name="a", base_url="https://a.test", retry_attempts=0).max_attempts == 1


def test_period_seconds_falls_back_to_one_hour() -> None:
    assert period_seconds("minute") == 60
    assert period_seconds("month") == 2592000
    assert period_seconds("fortnight") == 3600


def test_nested_tables_are_read_only_after_load() -> None:
    provider = Provider.model_validate(
        {
            "name": "acme",
            "base_url": "https://acme.test",
            "headers": {"Accept": "application/json"},
            "endpoints": {"ping": {"path": "/ping", "parameters": {"live": True}}},
        }
    )
    with pytest.raises(TypeError):
        provider.endpoints["pong"] = provider.endpoints["ping"]
    with pytest.raises(TypeError):
        provider.headers["Accept"] = "text/html"
    with pytest.raises(TypeError):
        provider.endpoint("ping").parameters["live"] = False
    with pytest.raises(TypeError):
        Provider(name="bare", base_url="https://bare.test").parameters["x"] = 1
