"""Random storage account name generation."""
from __future__ import annotations

import logging
import secrets
import time
from collections.abc import Callable
from dataclasses import dataclass, field

from .errors import NameGenerationExhausted
from .providers.base import StorageClient

LOGGER = logging.getLogger(__name__)

NAME_TOKEN_BYTES = 12
MAX_BACKOFF_SECONDS = 5.0


@dataclass(slots=True)
class NameGenerator:
    """Search for an unused 24-character hexadecimal account name.

    Each candidate carries 96 bits of entropy, so collisions are rare; the
    search is still bounded by ``max_attempts``. When ``backoff_seconds`` is
    positive the generator sleeps between unavailable candidates, doubling
    the delay each time up to :data:`MAX_BACKOFF_SECONDS`.
    """

    client: StorageClient
    max_attempts: int = 20
    backoff_seconds: float = 0.0
    token_factory: Callable[[], str] = field(
        default=lambda: secrets.token_hex(NAME_TOKEN_BYTES), repr=False
    )
    sleep: Callable[[float], None] = field(default=time.sleep, repr=False)

    def generate_name(self) -> str:
        """Return a name the provider reported available on the last check."""
        delay = self.backoff_seconds
        for attempt in range(1, self.max_attempts + 1):
            candidate = self.token_factory()
            result = self.client.check_name_availability(candidate)
            if result.available:
                return candidate
            LOGGER.debug(
                "Generated name %s unavailable (%s); attempt %d/%d.",
                candidate,
                result.reason,
                attempt,
                self.max_attempts,
            )
            if delay > 0 and attempt < self.max_attempts:
                self.sleep(delay)
                delay = min(delay * 2, MAX_BACKOFF_SECONDS)
        raise NameGenerationExhausted(
            f"Could not find an available storage account name after "
            f"{self.max_attempts} attempts."
        )


__all__ = ["NameGenerator"]
