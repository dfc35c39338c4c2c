from __future__ import annotations

from gateway.providers.models import Provider


RETRYABLE_STATUS_CODES = frozenset({408, 429, 500, 502, 503, 504})


class RetryPolicy:
    """Attempt budget and exponential backoff for one provider call.

    The wait after attempt ``n`` is ``min(2 ** n, max_delay_units)`` units,
    each unit lasting ``delay_unit_seconds``.
    """

    def __init__(
        self,
        *,
        max_attempts: int = 3,
        delay_unit_seconds: float = 1.0,
        max_delay_units: int = 60,
    ) -> None:
        self.max_attempts = max(1, max_attempts)
        self.delay_unit_seconds = delay_unit_seconds
        self.max_delay_units = max_delay_units

    @classmethod
    def for_provider(
        cls,
        provider: Provider,
        *,
        delay_unit_seconds: float = 1.0,
        max_delay_units: int = 60,
    ) -> "RetryPolicy":
        return cls(
            max_attempts=provider.max_attempts,
            delay_unit_seconds=delay_unit_seconds,
            max_delay_units=max_delay_units,
        )

    def delay_units(self, attempt_number: int) -> int:
        return min(2**attempt_number, self.max_delay_units)

    def delay_for_attempt(self, attempt_number: int) -> float:
        return self.delay_units(attempt_number) * self.delay_unit_seconds

    def is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS_CODES

    def has_attempts_left(self, attempt_number: int) -> bool:
        return attempt_number < self.max_attempts
