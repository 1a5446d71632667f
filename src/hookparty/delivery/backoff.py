"""Retry backoff policy for wrapper delivery."""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from hookparty.config.app import InputDeliverySettings


@dataclass(frozen=True)
class BackoffPolicy:
    """
    Exponential backoff: the first attempt is immediate, then each retry
    waits ``base_delay * multiplier ** n`` seconds.

    The defaults give delays of 0, 1, 2 and 4 seconds.
    """

    base_delay: float = 1.0
    multiplier: float = 2.0
    max_attempts: int = 4

    def delays(self) -> list[float]:
        """Delay to wait before each attempt, one entry per attempt."""
        if self.max_attempts < 1:
            return []
        return [0.0] + [
            self.base_delay * self.multiplier**retry for retry in range(self.max_attempts - 1)
        ]

    @property
    def total_delay(self) -> float:
        return sum(self.delays())

    @classmethod
    def from_settings(cls, settings: InputDeliverySettings) -> BackoffPolicy:
        return cls(
            base_delay=settings.retry_base_delay,
            multiplier=settings.retry_multiplier,
            max_attempts=settings.retry_max_attempts,
        )
