from __future__ import annotations

import base64

from gateway.providers.errors import ProviderError
from gateway.providers.models import AuthConfig


class AuthConfigurationError(ProviderError):
    def __init__(self, message: str) -> None:
        super().__init__(
            message,
            error_code="provider_auth_config",
            reason_code="auth_failed",
            retryable=False,
            severity="critical",
            status_code=401,
        )


def auth_headers(auth: AuthConfig) -> dict[str, str]:
    if auth.type == "none":
        return {}
    if auth.type == "bearer":
        if not auth.token:
            raise AuthConfigurationError("Bearer authentication requires a token.")
        return {"Authorization": f"Bearer {auth.token}"}
    if auth.type == "api_key":
        if not auth.api_key:
            raise AuthConfigurationError("API key authentication requires an api_key.")
        return {auth.header_name or "X-API-Key": auth.api_key}
    if auth.type == "basic":
        if not auth.username:
            raise AuthConfigurationError("Basic authentication requires a username.")
        encoded = base64.b64encode(f"{auth.username}:{auth.password}".encode("utf-8")).decode("ascii")
        return {"Authorization": f"Basic {encoded}"}
    raise AuthConfigurationError(f"Unsupported authentication type: {auth.type}")
