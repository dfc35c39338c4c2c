from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from gateway.providers.errors import TransportConnectionError, TransportError, TransportTimeoutError


_QUERY_METHODS = {"GET", "DELETE", "HEAD", "OPTIONS"}


@dataclass(frozen=True)
class TransportResponse:
    status_code: int
    headers: dict[str, str]
    body: Any


class Transport(Protocol):
    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        timeout: float,
    ) -> TransportResponse:
        ...


class HttpxTransport:
    def __init__(self, client: httpx.Client | None = None) -> None:
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client()
        return self._client

    def send(
        self,
        method: str,
        url: str,
        headers: dict[str, str],
        body: dict[str, Any],
        timeout: float,
    ) -> TransportResponse:
        kwargs: dict[str, Any] = {"headers": headers, "timeout": timeout}
        if method.upper() in _QUERY_METHODS:
            if body:
                kwargs["params"] = _query_params(body)
        else:
            kwargs["json"] = body
        try:
            response = self.client.request(method, url, **kwargs)
        except httpx.TimeoutException as exc:
            raise TransportTimeoutError(f"Connection timeout: {exc}") from exc
        except httpx.ConnectError as exc:
            if "certificate" in str(exc).lower():
                raise TransportError(
                    f"SSL certificate problem: {exc}",
                    error_code="provider_tls",
                    reason_code="tls_error",
                ) from exc
            raise TransportConnectionError(f"Connection refused: {exc}") from exc
        except httpx.HTTPError as exc:
            raise TransportError(str(exc) or "Provider transport failed.") from exc
        return TransportResponse(
            status_code=response.status_code,
            headers=dict(response.headers),
            body=_decode_body(response),
        )

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None


def _query_params(body: dict[str, Any]) -> dict[str, Any]:
    params: dict[str, Any] = {}
    for key, value in body.items():
        if value is None:
            continue
        if isinstance(value, dict | list):
            params[key] = json.dumps(value, separators=(",", ":"))
        elif isinstance(value, bool):
            params[key] = "true" if value else "false"
        else:
            params[key] = value
    return params


def _decode_body(response: httpx.Response) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError:
        return response.text
