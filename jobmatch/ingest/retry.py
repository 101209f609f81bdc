"""Retry schedule for ingest delivery."""
import logging
from dataclasses import dataclass
from typing import Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RetryPolicy:
    """How often and how long to wait before re-sending a failed batch."""
    max_retries: int = 3
    retry_delays: Tuple[float, ...] = (2.0, 4.0, 8.0)  # seconds

    def __post_init__(self):
        if self.max_retries < 0:
            raise ValueError("max_retries must not be negative")
        if self.max_retries and not self.retry_delays:
            raise ValueError("retry_delays must not be empty when retries are enabled")

    @property
    def max_attempts(self) -> int:
        return self.max_retries + 1

    def delay_for(self, retry_number: int) -> float:
        """Delay before the given retry (0-based); the last delay repeats.

        Args:
            retry_number: Index of the retry about to happen

        Returns:
            Time to wait in seconds
        """
        index = min(retry_number, len(self.retry_delays) - 1)
        return float(self.retry_delays[index])

    @classmethod
    def from_config(cls, queue_config: dict) -> 'RetryPolicy':
        """Build a policy from the queue config section."""
        return cls(
            max_retries=queue_config.get('max_retries', 3),
            retry_delays=tuple(queue_config.get('retry_delays', (2.0, 4.0, 8.0))),
        )
