"""
Reconnect backoff policy.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class ReconnectPolicy:
    """
    Exponential backoff with a cap on the delay and on the number of attempts.

    ``delay(n)`` is the wait before attempt ``n + 1`` (``n`` failed attempts so
    far): ``min(max_delay, base_delay * backoff_rate ** n)``. With the defaults
    the first three delays are 1.0, 1.5 and 2.25 seconds.
    """

    base_delay: float = 1.0
    backoff_rate: float = 1.5
    max_delay: float = 30.0
    max_attempts: int = 10

    def __post_init__(self) -> None:
        if self.base_delay <= 0:
            raise ValueError("base_delay must be positive")
        if self.backoff_rate < 1:
            raise ValueError("backoff_rate must be >= 1")
        if self.max_delay < self.base_delay:
            raise ValueError("max_delay must be >= base_delay")
        if self.max_attempts < 0:
            raise ValueError("max_attempts must be >= 0")

    def delay(self, attempt: int) -> float:
        if attempt < 0:
            raise ValueError("attempt must be >= 0")
        # Cap the exponent; the result is clamped to max_delay anyway
        try:
            raw = self.base_delay * self.backoff_rate ** attempt
        except OverflowError:
            return self.max_delay
        return min(self.max_delay, raw)

    def exhausted(self, attempts: int) -> bool:
        return attempts >= self.max_attempts

    @classmethod
    def from_settings(cls, settings) -> "ReconnectPolicy":
        return cls(
            base_delay=settings.base_delay,
            backoff_rate=settings.backoff_rate,
            max_delay=settings.max_delay,
            max_attempts=settings.max_reconnect_attempts,
        )
