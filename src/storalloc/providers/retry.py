"""Exponential backoff for transient provider faults."""
from __future__ import annotations

import logging
import random
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TypeVar

from .base import TransientProviderError

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


def is_retryable(exc: BaseException) -> bool:
    """Return ``True`` when *exc* is a transient fault."""
    return isinstance(exc, (TransientProviderError, TimeoutError, ConnectionError))


@dataclass(slots=True)
class ExponentialRetryPolicy:
    """Retry a callable on transient errors with jittered exponential delays.

    Non-retryable errors propagate immediately. After ``retries`` additional
    attempts the last transient error is re-raised.
    """

    retries: int = 3
    base_delay: float = 1.0
    max_delay: float = 30.0
    jitter: float = 0.1
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def __post_init__(self) -> None:
        """Validate initialiser parameters."""
        if self.retries < 0:
            raise ValueError(f"retries must be non-negative. Got {self.retries}.")
        if self.base_delay < 0 or self.max_delay < 0:
            raise ValueError("Retry delays must be non-negative.")

    def delay_for(self, attempt: int) -> float:
        """Return the delay before retry number *attempt* (zero based)."""
        delay = min(self.base_delay * (2**attempt), self.max_delay)
        if self.jitter and delay:
            delay += random.uniform(0, delay * self.jitter)  # noqa: S311 - not crypto
        return min(delay, self.max_delay)

    def call(self, func: Callable[[], T], *, description: str = "operation") -> T:
        """Invoke *func*, retrying transient failures."""
        for attempt in range(self.retries + 1):
            try:
                return func()
            except Exception as exc:
                if not is_retryable(exc) or attempt == self.retries:
                    raise
                delay = self.delay_for(attempt)
                LOGGER.info(
                    "Transient error during %s (attempt %d/%d), retrying in %.2fs: %s",
                    description,
                    attempt + 1,
                    self.retries + 1,
                    delay,
                    exc,
                )
                self.sleep(delay)
        raise AssertionError("unreachable")  # pragma: no cover


__all__ = ["ExponentialRetryPolicy", "is_retryable"]
