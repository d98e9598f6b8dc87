"""Backoff policy for automatic reconnection after connection failures."""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconnectPolicy:
    """Bounded, capped exponential backoff.

    The n-th reconnection (1-based) waits `min(base_delay * 2 ** (n - 1), max_delay)`
    seconds: 1s, 2s, 4s with the defaults. Once `max_attempts` reconnections
    have been made no further automatic attempt is scheduled.

    `reset_after`, when set, is how long (in seconds) a negotiated connection
    must stay up before its loss no longer counts against the budget. `None`
    means the budget is never replenished for the lifetime of the client.
    """

    max_attempts: int = 3
    base_delay: float = 1.0
    max_delay: float = 10.0
    reset_after: float | None = None

    def delay_for(self, attempt: int) -> float:
        """Seconds to wait before reconnection number `attempt` (1-based)."""
        if attempt < 1:
            raise ValueError(f"attempt must be >= 1, got {attempt}")
        return min(self.base_delay * 2 ** (attempt - 1), self.max_delay)

    def should_retry(self, attempt: int) -> bool:
        """Whether reconnection number `attempt` (1-based) may be scheduled."""
        return attempt <= self.max_attempts

    def should_reset(self, healthy_for: float | None) -> bool:
        """Whether a connection that stayed up `healthy_for` seconds earns a fresh budget."""
        if self.reset_after is None or healthy_for is None:
            return False
        return healthy_for >= self.reset_after
