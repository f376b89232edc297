"""
Reconnection Policy
===================

Delay schedule for automatic reconnection.

Schedule:
    attempts 1-3  -> 2 s
    attempts 4-6  -> 5 s
    attempts 7+   -> 10 s

When the attempt cap is reached the counter resets to zero and a longer
pause is inserted before the schedule starts over. The policy never
gives up; only an explicit disconnect stops reconnection.
"""

from dataclasses import dataclass
from typing import Sequence


@dataclass(frozen=True, slots=True)
class ReconnectDecision:
    """Delay before the next attempt and the updated attempt counter."""

    delay: float
    attempts: int


class ReconnectPolicy:
    """
    Stateless reconnection schedule.

    Example:
        policy = ReconnectPolicy()
        decision = policy.next_attempt(state.reconnect_attempts)
        schedule_in(decision.delay)
    """

    def __init__(
        self,
        schedule: Sequence[float] = (2.0, 5.0, 10.0),
        attempts_per_step: int = 3,
        max_attempts: int = 10,
        cap_pause: float = 10.0,
    ) -> None:
        if not schedule:
            raise ValueError("Reconnect schedule must not be empty")
        self.schedule = tuple(schedule)
        self.attempts_per_step = attempts_per_step
        self.max_attempts = max_attempts
        self.cap_pause = cap_pause

    def delay_for(self, attempt: int) -> float:
        """Delay for the given 1-based attempt number."""
        step = (max(attempt, 1) - 1) // self.attempts_per_step
        return self.schedule[min(step, len(self.schedule) - 1)]

    def next_attempt(self, attempts: int) -> ReconnectDecision:
        """
        Decide the next reconnection attempt.

        Args:
            attempts: Attempts made since the last success or cap pause

        Returns:
            ReconnectDecision with the delay and new counter
        """
        if attempts >= self.max_attempts:
            return ReconnectDecision(delay=self.cap_pause, attempts=0)
        attempt = attempts + 1
        return ReconnectDecision(delay=self.delay_for(attempt), attempts=attempt)
