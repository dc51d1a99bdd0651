"""Bounded retry with exponential backoff and jitter for store writes."""

from __future__ import annotations

import logging
import random
import time
from dataclasses import dataclass
from typing import Callable, Tuple, Type, TypeVar

from sqlalchemy.exc import DBAPIError, OperationalError

from app.core.errors import TransientStoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TRANSIENT_ERRORS: Tuple[Type[BaseException], ...] = (OperationalError,)


def is_transient(exc: BaseException) -> bool:
    """OperationalError, or any DBAPIError flagged as a dropped connection."""
    if isinstance(exc, TRANSIENT_ERRORS):
        return True
    return isinstance(exc, DBAPIError) and bool(exc.connection_invalidated)


@dataclass(frozen=True)
class RetryPolicy:
    """Retry policy configuration."""

    max_attempts: int = 3
    """Maximum number of attempts (including initial attempt)."""

    base_delay_seconds: float = 0.2
    """Base delay in seconds for exponential backoff."""

    max_delay_seconds: float = 5.0
    """Maximum delay in seconds between retries."""

    jitter_factor: float = 0.3
    """Jitter factor (0.0 to 1.0) for randomizing backoff delay."""

    def calculate_backoff(self, attempt_number: int) -> float:
        """
        Delay before ``attempt_number`` (1-indexed, so 2 = first retry).

        base_delay * 2 ** (retries - 1), capped at max_delay, with jitter.
        """
        if attempt_number <= 1 or self.base_delay_seconds <= 0:
            return 0.0
        retry_number = attempt_number - 1
        delay = min(
            self.base_delay_seconds * (2 ** (retry_number - 1)),
            self.max_delay_seconds,
        )
        jitter_range = delay * self.jitter_factor
        return max(0.0, delay - jitter_range + (random.random() * 2 * jitter_range))

    @classmethod
    def from_settings(cls, settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.store_retry_attempts,
            base_delay_seconds=settings.store_retry_base_delay,
            max_delay_seconds=settings.store_retry_max_delay,
        )

    def run(
        self,
        operation: Callable[[], T],
        on_retry: Callable[[BaseException], None] | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> T:
        """
        Call ``operation`` until it succeeds or attempts run out.

        Only transient store errors are retried; everything else propagates
        immediately. ``on_retry`` runs after each failed attempt (e.g. to roll
        the session back). Exhaustion raises TransientStoreError.
        """
        last_exc: BaseException | None = None
        for attempt in range(1, self.max_attempts + 1):
            delay = self.calculate_backoff(attempt)
            if delay:
                sleep(delay)
            try:
                return operation()
            except Exception as exc:
                if not is_transient(exc):
                    raise
                last_exc = exc
                if on_retry is not None:
                    on_retry(exc)
                logger.warning(
                    "Transient store error (attempt %d/%d): %s",
                    attempt,
                    self.max_attempts,
                    exc,
                )
        raise TransientStoreError(
            f"Store unavailable after {self.max_attempts} attempts: {last_exc}",
            attempts=self.max_attempts,
        ) from last_exc
