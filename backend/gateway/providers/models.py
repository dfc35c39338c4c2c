from __future__ import annotations

from enum import Enum
from types import MappingProxyType
from typing import Annotated, Any, Literal, Mapping, TypeVar

from pydantic import AfterValidator, BaseModel, ConfigDict, Field, field_validator, model_validator

from gateway.providers.mapping import FieldMapping


PERIOD_SECONDS = {
    "minute": 60,
    "hour": 3600,
    "day": 86400,
    "month": 2592000,
}
DEFAULT_PERIOD_SECONDS = 3600
HTTP_METHODS = {"GET", "POST", "PUT", "PATCH", "DELETE", "HEAD", "OPTIONS"}


def period_seconds(period: str) -> int:
    return PERIOD_SECONDS.get(period, DEFAULT_PERIOD_SECONDS)


V = TypeVar("V")


def _read_only(value: Mapping[str, Any]) -> Mapping[str, Any]:
    return MappingProxyType(dict(value))


def _empty_map() -> Mapping[str, Any]:
    return MappingProxyType({})


# Loaded records are immutable, nested tables included.
ReadOnlyMap = Annotated[Mapping[str, V], AfterValidator(_read_only)]


class ProviderStatus(str, Enum):
    ACTIVE = "active"
    INACTIVE = "inactive"
    ERROR = "error"
    MAINTENANCE = "maintenance"


EXTERNALLY_MANAGED_STATUSES = frozenset({ProviderStatus.INACTIVE, ProviderStatus.MAINTENANCE})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, extra="ignore", populate_by_name=True)


class AuthConfig(_Frozen):
    type: Literal["none", "bearer", "api_key", "basic"] = "none"
    token: str = ""
    header_name: str = "X-API-Key"
    api_key: str = ""
    username: str = ""
    password: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _normalize_type(cls, value: Any) -> Any:
        aliases = {"bearer_token": "bearer", "basic_auth": "basic", "apikey": "api_key", "": "none", None: "none"}
        if value in aliases:
            return aliases[value]
        return value


class RateLimitRule(_Frozen):
    max_requests: int = Field(ge=0)

    @model_validator(mode="before")
    @classmethod
    def _coerce_int(cls, value: Any) -> Any:
        if isinstance(value, int):
            return {"max_requests": value}
        return value


class HealthCheckConfig(_Frozen):
    endpoint: str
    expected_status: int | None = None
    expected_fields: tuple[str, ...] = ()
    expected_values: ReadOnlyMap[Any] = Field(default_factory=_empty_map)


class MessageRule(_Frozen):
    pattern: str
    replacement: str


class ErrorHandlingConfig(_Frozen):
    message_mapping: tuple[MessageRule, ...] = ()

    @field_validator("message_mapping", mode="before")
    @classmethod
    def _coerce_table(cls, value: Any) -> Any:
        if isinstance(value, Mapping):
            return [{"pattern": str(pattern), "replacement": str(replacement)} for pattern, replacement in value.items()]
        return value

    def rewrite(self, message: str) -> str:
        for rule in self.message_mapping:
            if rule.pattern in message:
                return rule.replacement
        return message


class RequestLogConfig(_Frozen):
    enabled: bool = False
    include_payload: bool = True


class EndpointConfig(_Frozen):
    path: str | None = None
    method: str | None = None
    headers: ReadOnlyMap[str] = Field(default_factory=_empty_map)
    parameters: ReadOnlyMap[Any] = Field(default_factory=_empty_map)
    parameter_mapping: FieldMapping = Field(default_factory=FieldMapping)
    response_mapping: FieldMapping = Field(default_factory=FieldMapping)

    @field_validator("method", mode="before")
    @classmethod
    def _normalize_method(cls, value: Any) -> Any:
        if value is None:
            return None
        method = str(value).strip().upper()
        if method not in HTTP_METHODS:
            raise ValueError(f"Unsupported HTTP method: {value}")
        return method


class Provider(_Frozen):
    name: str = Field(min_length=1)
    display_name: str = ""
    category: str = "general"
    type: str = "rest"
    base_url: str = Field(min_length=1)
    version: str | None = None
    endpoints: ReadOnlyMap[EndpointConfig] = Field(default_factory=_empty_map)
    auth: AuthConfig = Field(default_factory=AuthConfig, alias="authentication")
    headers: ReadOnlyMap[str] = Field(default_factory=_empty_map)
    parameters: ReadOnlyMap[Any] = Field(default_factory=_empty_map)
    timeout_seconds: float = Field(default=30.0, gt=0, alias="timeout")
    retry_attempts: int = Field(default=3, ge=0)
    auto_retry: bool = True
    rate_limits: ReadOnlyMap[RateLimitRule] = Field(default_factory=_empty_map)
    health_check: HealthCheckConfig | None = None
    error_handling: ErrorHandlingConfig = Field(default_factory=ErrorHandlingConfig)
    response_mapping: FieldMapping = Field(default_factory=FieldMapping)
    request_log: RequestLogConfig = Field(default_factory=RequestLogConfig, alias="request_log_config")
    status: ProviderStatus = ProviderStatus.ACTIVE
    is_active: bool = True
    is_sandbox: bool = False
    metadata: ReadOnlyMap[Any] = Field(default_factory=_empty_map)

    @field_validator("health_check", mode="before")
    @classmethod
    def _empty_health_check(cls, value: Any) -> Any:
        if isinstance(value, Mapping) and not value.get("endpoint"):
            return None
        return value

    def endpoint(self, endpoint_name: str) -> EndpointConfig | None:
        return self.endpoints.get(endpoint_name)

    @property
    def max_attempts(self) -> int:
        if not self.auto_retry:
            return 1
        return max(1, self.retry_attempts)

    @property
    def label(self) -> str:
        return self.display_name or self.name
