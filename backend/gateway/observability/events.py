from __future__ import annotations

import json
import logging
from typing import Any

logger = logging.getLogger('gateway.observability')

_SENSITIVE_KEYS = {'api_key', 'apikey', 'authorization', 'password', 'secret', 'token'}


def _emit(event_name: str, payload: dict[str, Any], *, level: int = logging.INFO) -> None:
    message = {
        'event': event_name,
        **payload,
    }
    logger.log(level, json.dumps(message, sort_keys=True, separators=(',', ':'), default=str))


def redact(payload: Any) -> Any:
    if isinstance(payload, dict):
        redacted: dict[Any, Any] = {}
        for key, value in payload.items():
            key_text = str(key).lower()
            if any(marker in key_text for marker in _SENSITIVE_KEYS):
                redacted[key] = '***redacted***'
            else:
                redacted[key] = redact(value)
        return redacted
    if isinstance(payload, list):
        return [redact(value) for value in payload]
    return payload


def emit_request_attempted(*, provider: str, endpoint: str, method: str, attempt: int, max_attempts: int) -> None:
    _emit(
        'provider.request.attempted',
        {
            'provider': provider,
            'endpoint': endpoint,
            'method': method,
            'attempt': attempt,
            'max_attempts': max_attempts,
        },
        level=logging.DEBUG,
    )


def emit_request_retrying(*, provider: str, endpoint: str, attempt: int, reason_code: str, delay_seconds: float) -> None:
    _emit(
        'provider.request.retrying',
        {
            'provider': provider,
            'endpoint': endpoint,
            'attempt': attempt,
            'reason_code': reason_code,
            'delay_seconds': delay_seconds,
        },
    )


def emit_request_succeeded(
    *,
    provider: str,
    endpoint: str,
    method: str | None,
    status_code: int,
    duration_ms: int,
    request_data: dict[str, Any] | None = None,
) -> None:
    payload: dict[str, Any] = {
        'provider': provider,
        'endpoint': endpoint,
        'method': method,
        'status_code': status_code,
        'duration_ms': duration_ms,
    }
    if request_data is not None:
        payload['data'] = redact(request_data)
    _emit('provider.request.succeeded', payload)


def emit_request_failed(
    *,
    provider: str,
    endpoint: str,
    method: str | None,
    error_code: str,
    message: str,
    status_code: int | None,
    duration_ms: int,
) -> None:
    _emit(
        'provider.request.failed',
        {
            'provider': provider,
            'endpoint': endpoint,
            'method': method,
            'error_code': error_code,
            'message': message,
            'status_code': status_code,
            'duration_ms': duration_ms,
        },
        level=logging.WARNING,
    )


def emit_rate_limited(*, provider: str, period: str | None, retry_after_seconds: float) -> None:
    _emit(
        'provider.rate_limited',
        {
            'provider': provider,
            'period': period,
            'retry_after_seconds': retry_after_seconds,
        },
    )


def emit_health_transition(*, provider: str, prior_status: str, new_status: str, reason: str) -> None:
    _emit(
        'provider.health.transitioned',
        {
            'provider': provider,
            'prior_status': prior_status,
            'new_status': new_status,
            'reason': reason,
        },
    )


def emit_health_probe(*, provider: str, result: str, failed_checks: list[str]) -> None:
    _emit(
        'provider.health.probed',
        {
            'provider': provider,
            'result': result,
            'failed_checks': sorted(failed_checks),
        },
    )
