import os
import sys
from functools import lru_cache

from pydantic import Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_CRITICAL_ERROR_MARKERS = (
    "Connection refused",
    "Connection timeout",
    "SSL certificate problem",
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    app_name: str = "Integration Gateway"
    app_env: str = "local"
    log_level: str = "INFO"

    redis_url: str = "redis://localhost:6379/0"
    celery_broker_url: str = "redis://localhost:6379/0"
    celery_result_backend: str = "redis://localhost:6379/1"
    celery_task_always_eager: bool = False
    celery_task_eager_propagates: bool = False

    providers_config_path: str = ""
    rate_limit_backend: str = "memory"
    rate_limit_key_prefix: str = "api_rate_limit"
    rate_limit_count_failed_requests: bool = False
    retry_delay_unit_seconds: float = 1.0
    retry_max_delay_units: int = 60
    strict_path_templates: bool = False
    critical_error_markers: list[str] = Field(default_factory=lambda: list(DEFAULT_CRITICAL_ERROR_MARKERS))
    transport_max_workers: int = 32
    health_check_interval_seconds: int = 300
    metrics_enabled: bool = False

    @model_validator(mode="after")
    def validate_production_guardrails(self) -> "Settings":
        if self.rate_limit_backend not in {"memory", "redis"}:
            raise ValueError("RATE_LIMIT_BACKEND must be 'memory' or 'redis'.")
        if self.retry_delay_unit_seconds < 0:
            raise ValueError("RETRY_DELAY_UNIT_SECONDS must not be negative.")
        if self.retry_max_delay_units < 0:
            raise ValueError("RETRY_MAX_DELAY_UNITS must not be negative.")
        if self.health_check_interval_seconds <= 0:
            raise ValueError("HEALTH_CHECK_INTERVAL_SECONDS must be greater than 0.")
        if self.transport_max_workers < 1:
            raise ValueError("TRANSPORT_MAX_WORKERS must be at least 1.")

        if self.app_env.lower() != "production":
            return self

        if self.rate_limit_backend == "memory":
            raise ValueError("Production requires RATE_LIMIT_BACKEND=redis so quotas are shared across workers.")
        if not self.providers_config_path.strip():
            raise ValueError("Production requires PROVIDERS_CONFIG_PATH.")
        if not self.redis_url.strip():
            raise ValueError("Production requires REDIS_URL.")
        return self


@lru_cache
def get_settings() -> Settings:
    app_env = os.getenv("APP_ENV", "").lower()
    is_pytest_runtime = "pytest" in sys.modules
    if app_env == "test" or (not app_env and is_pytest_runtime):
        def _env_or_default(name: str, default: str) -> str:
            value = os.getenv(name)
            if value is None:
                return default
            stripped = value.strip()
            return stripped if stripped else default

        return Settings(
            app_env="test",
            providers_config_path=_env_or_default("PROVIDERS_CONFIG_PATH", ""),
            rate_limit_backend="memory",
            retry_delay_unit_seconds=0.0,
            celery_task_always_eager=True,
            celery_task_eager_propagates=True,
            celery_broker_url="memory://",
            celery_result_backend="cache+memory://",
        )
    return Settings()
