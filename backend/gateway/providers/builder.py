from __future__ import annotations

import logging
import re
from typing import Any, Mapping
from urllib.parse import quote

from gateway.providers.auth import auth_headers
from gateway.providers.errors import EndpointNotFoundError, MethodNotAllowedError, UnresolvedPathParameterError
from gateway.providers.execution_types import RequestDescriptor
from gateway.providers.mapping import apply_field_mapping
from gateway.providers.models import EndpointConfig, Provider


logger = logging.getLogger("gateway.provider.builder")

_PLACEHOLDER = re.compile(r"\{([^{}/]+)\}")


def resolve_path(template: str, data: Mapping[str, Any]) -> str:
    """Substitute ``{key}`` placeholders with values from ``data``.

    Placeholders without a matching key are left in place.
    """

    def _replace(match: re.Match[str]) -> str:
        key = match.group(1)
        if key not in data:
            return match.group(0)
        return quote(str(data[key]), safe="")

    return _PLACEHOLDER.sub(_replace, template)


def unresolved_placeholders(path: str) -> list[str]:
    return _PLACEHOLDER.findall(path)


def join_url(base_url: str, path: str) -> str:
    return base_url.rstrip("/") + "/" + path.lstrip("/")


class RequestBuilder:
    def __init__(self, *, strict_path_templates: bool = False) -> None:
        self.strict_path_templates = strict_path_templates

    def build(
        self,
        provider: Provider,
        endpoint_name: str,
        data: Mapping[str, Any] | None = None,
        *,
        method: str | None = None,
    ) -> RequestDescriptor:
        endpoint = provider.endpoint(endpoint_name)
        if endpoint is None:
            raise EndpointNotFoundError(provider.name, endpoint_name)
        data = dict(data or {})

        path = resolve_path(endpoint.path or endpoint_name, data)
        missing = unresolved_placeholders(path)
        if missing:
            if self.strict_path_templates:
                raise UnresolvedPathParameterError(endpoint_name, missing)
            logger.warning(
                "Endpoint path has unresolved placeholders.",
                extra={"event": "provider.request.unresolved_path", "provider": provider.name, "endpoint": endpoint_name},
            )

        headers = {**provider.headers, **endpoint.headers, **auth_headers(provider.auth)}

        body = {**provider.parameters, **endpoint.parameters, **data}
        if endpoint.parameter_mapping:
            body = apply_field_mapping(body, endpoint.parameter_mapping, keep_unmapped=True)

        return RequestDescriptor(
            provider_name=provider.name,
            endpoint_name=endpoint_name,
            method=_resolve_method(endpoint_name, endpoint, method),
            url=join_url(provider.base_url, path),
            headers=headers,
            body=body,
            timeout_seconds=provider.timeout_seconds,
        )


def _resolve_method(endpoint_name: str, endpoint: EndpointConfig, method: str | None) -> str:
    if method is None:
        return endpoint.method or "GET"
    requested = method.strip().upper()
    if endpoint.method and requested != endpoint.method:
        raise MethodNotAllowedError(endpoint_name, requested, endpoint.method)
    return requested
