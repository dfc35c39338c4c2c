from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Iterable

from pydantic import ValidationError

from gateway.providers.errors import ProviderNotFoundError
from gateway.providers.models import Provider, ProviderStatus


logger = logging.getLogger("gateway.provider.registry")


@dataclass(frozen=True)
class ProviderStateSnapshot:
    name: str
    status: ProviderStatus
    is_active: bool
    last_health_check_at: datetime | None


@dataclass
class _ProviderState:
    status: ProviderStatus
    last_health_check_at: datetime | None = None


class ProviderRegistry:
    """Read-mostly store of provider records.

    Records are frozen once loaded. Only the runtime status and the time of
    the last health probe change, and both are guarded by a lock so probes
    and request paths can update them from any thread.
    """

    def __init__(self, providers: Iterable[Provider] = ()) -> None:
        self._providers: dict[str, Provider] = {}
        self._states: dict[str, _ProviderState] = {}
        self._lock = threading.Lock()
        for provider in providers:
            if provider.name in self._providers:
                raise ValueError(f"Duplicate provider name: {provider.name}")
            self._providers[provider.name] = provider
            status = provider.status if provider.is_active else ProviderStatus.INACTIVE
            self._states[provider.name] = _ProviderState(status=status)

    @classmethod
    def from_file(cls, path: str | Path) -> "ProviderRegistry":
        return cls(load_providers(path))

    def __contains__(self, provider_name: object) -> bool:
        return provider_name in self._providers

    def __len__(self) -> int:
        return len(self._providers)

    def get(self, provider_name: str) -> Provider:
        provider = self._providers.get(provider_name)
        if provider is None:
            raise ProviderNotFoundError(provider_name)
        return provider

    def providers(self) -> list[Provider]:
        return list(self._providers.values())

    def by_category(self, category: str) -> list[Provider]:
        return [provider for provider in self._providers.values() if provider.category == category]

    def active(self) -> list[Provider]:
        return [provider for provider in self._providers.values() if self.status(provider.name) == ProviderStatus.ACTIVE]

    def status(self, provider_name: str) -> ProviderStatus:
        self.get(provider_name)
        with self._lock:
            return self._states[provider_name].status

    def set_status(self, provider_name: str, status: ProviderStatus | str) -> ProviderStatus:
        """Store ``status`` and return the previous one."""
        self.get(provider_name)
        new_status = ProviderStatus(status)
        with self._lock:
            state = self._states[provider_name]
            previous = state.status
            state.status = new_status
        if previous != new_status:
            logger.info(
                "Provider status changed.",
                extra={"event": "provider.status.changed", "provider": provider_name, "status": new_status.value},
            )
        return previous

    def transition_status(
        self,
        provider_name: str,
        status: ProviderStatus,
        *,
        unless: Iterable[ProviderStatus] = (),
        only_from: Iterable[ProviderStatus] | None = None,
    ) -> tuple[ProviderStatus, ProviderStatus]:
        """Atomically move to ``status`` when the current status allows it.

        Returns ``(previous, current)``.
        """
        self.get(provider_name)
        blocked = set(unless)
        allowed = set(only_from) if only_from is not None else None
        with self._lock:
            state = self._states[provider_name]
            previous = state.status
            if previous not in blocked and (allowed is None or previous in allowed):
                state.status = status
            return previous, state.status

    def last_health_check_at(self, provider_name: str) -> datetime | None:
        self.get(provider_name)
        with self._lock:
            return self._states[provider_name].last_health_check_at

    def mark_health_checked(self, provider_name: str, checked_at: datetime) -> None:
        self.get(provider_name)
        with self._lock:
            self._states[provider_name].last_health_check_at = checked_at

    def snapshot(self, provider_name: str) -> ProviderStateSnapshot:
        provider = self.get(provider_name)
        with self._lock:
            state = self._states[provider_name]
            return ProviderStateSnapshot(
                name=provider.name,
                status=state.status,
                is_active=provider.is_active,
                last_health_check_at=state.last_health_check_at,
            )


def parse_providers(raw: Any) -> list[Provider]:
    if isinstance(raw, dict):
        raw = raw.get("providers", [])
    if not isinstance(raw, list):
        raise ValueError("Provider configuration must be a list or an object with a 'providers' list.")
    providers: list[Provider] = []
    for index, item in enumerate(raw):
        try:
            providers.append(Provider.model_validate(item))
        except ValidationError as exc:
            raise ValueError(f"Invalid provider configuration at index {index}: {exc}") from exc
    return providers


def load_providers(path: str | Path) -> list[Provider]:
    config_path = Path(path)
    try:
        raw = json.loads(config_path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as exc:
        raise ValueError(f"Provider configuration at {config_path} is not valid JSON.") from exc
    providers = parse_providers(raw)
    logger.info(
        "Loaded provider configuration.",
        extra={"event": "provider.registry.loaded", "path": str(config_path), "count": len(providers)},
    )
    return providers
