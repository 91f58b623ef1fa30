# retry.py

import random
from dataclasses import dataclass
from typing import Callable, Optional

from config import RetrySettings
from models.sync_request import AttemptOutcome


@dataclass
class RetryState:
    """
    Bounded retry state machine for one dispatch.

    Call `record(outcome)` after every attempt. `should_retry` tells whether another
    attempt is allowed and `next_delay()` how long to wait before it.
    """
    policy: RetrySettings
    rand: Callable[[], float] = random.random
    attempt: int = 0
    last_outcome: Optional[AttemptOutcome] = None

    def record(self, outcome: AttemptOutcome):
        self.attempt += 1
        self.last_outcome = outcome

    @property
    def finished(self) -> bool:
        return self.last_outcome in (AttemptOutcome.SUCCESS, AttemptOutcome.PERMANENT_FAILURE)

    @property
    def exhausted(self) -> bool:
        return self.last_outcome is AttemptOutcome.TRANSIENT_FAILURE and self.attempt >= self.policy.max_attempts

    @property
    def should_retry(self) -> bool:
        return self.last_outcome is AttemptOutcome.TRANSIENT_FAILURE and not self.exhausted

    def next_delay(self) -> float:
        """Exponential backoff for the attempt just recorded, capped, with +/- jitter."""
        exponent = max(self.attempt - 1, 0)
        delay = min(self.policy.base_delay * (self.policy.multiplier ** exponent), self.policy.max_delay)
        spread = delay * self.policy.jitter
        return max(0.0, delay + spread * (2 * self.rand() - 1))
