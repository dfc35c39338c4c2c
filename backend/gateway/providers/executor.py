from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor

from gateway.core.metrics import provider_retries_total
from gateway.observability.events import emit_request_attempted, emit_request_retrying
from gateway.providers.cancellation import CancellationToken
from gateway.providers.errors import (
    RequestCancelledError,
    TransportError,
    TransportTimeoutError,
    UpstreamError,
    classify_provider_error,
)
from gateway.providers.execution_types import RawResult, RequestDescriptor
from gateway.providers.models import Provider
from gateway.providers.rate_limit import Admission, RateLimiter
from gateway.providers.retry import RetryPolicy
from gateway.providers.transport import Transport, TransportResponse


logger = logging.getLogger("gateway.provider.executor")


class ResilientExecutor:
    """Sends a request descriptor through the transport with retries.

    Attempts for one call run strictly one after another. Each send runs on a
    worker thread while the caller waits for either the response or the
    cancellation token, so cancelling aborts the attempt in flight. Backoff
    waits go through the token too, and the transport timeout never outlives
    the token's deadline. A send abandoned on cancellation finishes in the
    background and its result is discarded.
    """

    def __init__(
        self,
        transport: Transport,
        *,
        rate_limiter: RateLimiter | None = None,
        delay_unit_seconds: float = 1.0,
        max_delay_units: int = 60,
        max_workers: int = 32,
    ) -> None:
        self._transport = transport
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="provider-send")
        self._rate_limiter = rate_limiter
        self._delay_unit_seconds = delay_unit_seconds
        self._max_delay_units = max_delay_units

    def policy_for(self, provider: Provider) -> RetryPolicy:
        return RetryPolicy.for_provider(
            provider,
            delay_unit_seconds=self._delay_unit_seconds,
            max_delay_units=self._max_delay_units,
        )

    def execute(
        self,
        descriptor: RequestDescriptor,
        provider: Provider,
        *,
        admission: Admission | None = None,
        cancel_token: CancellationToken | None = None,
    ) -> RawResult:
        policy = self.policy_for(provider)
        token = cancel_token or CancellationToken()
        started_at = time.perf_counter()
        attempt = 0
        while True:
            token.raise_if_cancelled()
            attempt += 1
            emit_request_attempted(
                provider=descriptor.provider_name,
                endpoint=descriptor.endpoint_name,
                method=descriptor.method,
                attempt=attempt,
                max_attempts=policy.max_attempts,
            )
            try:
                response = self._send(descriptor, token)
            except Exception as exc:  # noqa: BLE001
                error = classify_provider_error(exc)
                error.attempts = attempt
                if not isinstance(error, TransportError) and not error.retryable:
                    raise error from exc
                if not policy.has_attempts_left(attempt):
                    raise error from exc
                self._backoff(policy, attempt, error.reason_code, descriptor, token)
                continue

            if 200 <= response.status_code < 300:
                if self._rate_limiter is not None and admission is not None:
                    self._rate_limiter.record_success(admission)
                return RawResult(
                    status_code=response.status_code,
                    headers=response.headers,
                    body=response.body,
                    attempts=attempt,
                    elapsed_ms=int((time.perf_counter() - started_at) * 1000),
                )

            retryable = policy.is_retryable_status(response.status_code)
            if retryable and policy.has_attempts_left(attempt):
                self._backoff(policy, attempt, f"status_{response.status_code}", descriptor, token)
                continue
            if retryable:
                message = f"API request failed after {attempt} attempts (status {response.status_code})."
            else:
                message = f"API request failed with status {response.status_code}."
            error = UpstreamError(
                message,
                status_code=response.status_code,
                retryable=retryable,
                upstream_payload=response.body,
            )
            error.attempts = attempt
            raise error

    def _send(self, descriptor: RequestDescriptor, token: CancellationToken) -> TransportResponse:
        timeout = descriptor.timeout_seconds
        remaining = token.remaining()
        if remaining is not None:
            timeout = min(timeout, remaining)
        future = self._pool.submit(
            self._transport.send,
            descriptor.method,
            descriptor.url,
            dict(descriptor.headers),
            dict(descriptor.body),
            timeout,
        )
        wake = threading.Event()
        future.add_done_callback(lambda _: wake.set())
        unregister = token.add_cancel_callback(wake.set)
        try:
            wake.wait(token.remaining())
        finally:
            unregister()

        if not future.done():
            future.cancel()
            token.raise_if_cancelled()
            raise RequestCancelledError("Provider request deadline exceeded.")
        try:
            response = future.result()
        except TransportTimeoutError as exc:
            # Expiry of the caller's deadline is a cancellation, never a provider timeout.
            if token.expired:
                raise RequestCancelledError("Provider request deadline exceeded.") from exc
            raise
        token.raise_if_cancelled()
        return response

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def _backoff(
        self,
        policy: RetryPolicy,
        attempt: int,
        reason_code: str,
        descriptor: RequestDescriptor,
        token: CancellationToken,
    ) -> None:
        delay = policy.delay_for_attempt(attempt)
        provider_retries_total.labels(provider=descriptor.provider_name, reason_code=reason_code).inc()
        emit_request_retrying(
            provider=descriptor.provider_name,
            endpoint=descriptor.endpoint_name,
            attempt=attempt,
            reason_code=reason_code,
            delay_seconds=delay,
        )
        token.wait(delay)

