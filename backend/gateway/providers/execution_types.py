from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Literal, Union

from gateway.providers.models import ProviderStatus


@dataclass(frozen=True)
class RequestDescriptor:
    provider_name: str
    endpoint_name: str
    method: str
    url: str
    headers: dict[str, str]
    body: dict[str, Any]
    timeout_seconds: float


@dataclass(frozen=True)
class RawResult:
    status_code: int
    headers: dict[str, str]
    body: Any
    attempts: int
    elapsed_ms: int


@dataclass(frozen=True)
class Success:
    data: Any
    status_code: int
    metadata: dict[str, Any]
    elapsed_ms: int
    success: Literal[True] = True


@dataclass(frozen=True)
class Failure:
    error_code: str
    message: str
    status_code: int | None
    provider: str
    timestamp: str
    retry_after_seconds: float | None = None
    attempts: int = 0
    success: Literal[False] = False


Outcome = Union[Success, Failure]


@dataclass(frozen=True)
class HealthResult:
    provider: str
    status: Literal["healthy", "unhealthy", "skipped"]
    message: str = ""
    checked_at: datetime | None = None
    previous_status: ProviderStatus | None = None
    provider_status: ProviderStatus | None = None
    failed_checks: tuple[str, ...] = field(default_factory=tuple)
    outcome: Outcome | None = None

    @property
    def healthy(self) -> bool:
        return self.status == "healthy"
