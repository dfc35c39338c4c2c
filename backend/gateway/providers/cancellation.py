from __future__ import annotations

import threading
import time
from typing import Callable

from gateway.providers.errors import RequestCancelledError


class CancellationToken:
    """Cancellation signal shared between a caller and one logical call.

    ``cancel()`` may be called from any thread. An optional deadline turns
    the token into a timeout budget; once it passes the token reports itself
    as cancelled.
    """

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._callbacks: list[Callable[[], None]] = []
        self._clock = clock
        self._deadline = None if timeout_seconds is None else clock() + timeout_seconds

    def cancel(self) -> None:
        with self._lock:
            self._event.set()
            callbacks, self._callbacks = self._callbacks, []
        for callback in callbacks:
            callback()

    def add_cancel_callback(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Run ``callback`` on ``cancel()``; returns a function that unregisters it.

        Runs ``callback`` immediately when the token is already cancelled.
        """
        with self._lock:
            if not self._event.is_set():
                self._callbacks.append(callback)
                return lambda: self._remove_callback(callback)
        callback()
        return lambda: None

    def _remove_callback(self, callback: Callable[[], None]) -> None:
        with self._lock:
            if callback in self._callbacks:
                self._callbacks.remove(callback)

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self.expired

    @property
    def expired(self) -> bool:
        return self._deadline is not None and self._clock() >= self._deadline

    def remaining(self) -> float | None:
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - self._clock())

    def raise_if_cancelled(self) -> None:
        if self._event.is_set():
            raise RequestCancelledError()
        if self.expired:
            raise RequestCancelledError("Provider request deadline exceeded.")

    def wait(self, seconds: float) -> None:
        """Sleep for ``seconds`` unless cancelled first."""
        self.raise_if_cancelled()
        if seconds <= 0:
            return
        remaining = self.remaining()
        if remaining is not None and seconds >= remaining:
            raise RequestCancelledError("Provider request deadline would expire during backoff.")
        if self._event.wait(seconds):
            raise RequestCancelledError()
