"""Timeout and retry policy for confirmed requests."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class RetryPolicy:
    """How long to wait for a response and how often to resend.

    Attempt *n* (1-based) waits ``timeout * backoff ** (n - 1)`` seconds,
    capped at *max_timeout*.  ``backoff == 1.0`` gives fixed intervals.

    :param timeout: Wait after the first transmission, in seconds.
    :param max_attempts: Total transmissions including the first.
    :param backoff: Multiplier applied to the wait after each attempt.
    :param max_timeout: Upper bound on any single wait, or ``None``.
    """

    timeout: float = 6.0
    max_attempts: int = 4
    backoff: float = 1.0
    max_timeout: float | None = None

    def __post_init__(self) -> None:
        if self.timeout <= 0:
            msg = f"timeout must be positive, got {self.timeout}"
            raise ValueError(msg)
        if self.max_attempts < 1:
            msg = f"max_attempts must be at least 1, got {self.max_attempts}"
            raise ValueError(msg)
        if self.backoff < 1.0:
            msg = f"backoff must be >= 1.0, got {self.backoff}"
            raise ValueError(msg)
        if self.max_timeout is not None and self.max_timeout < self.timeout:
            msg = f"max_timeout ({self.max_timeout}) must be >= timeout ({self.timeout})"
            raise ValueError(msg)

    @classmethod
    def fixed(cls, timeout: float, max_attempts: int) -> RetryPolicy:
        return cls(timeout=timeout, max_attempts=max_attempts)

    @classmethod
    def exponential(
        cls,
        timeout: float,
        max_attempts: int,
        *,
        factor: float = 2.0,
        max_timeout: float | None = None,
    ) -> RetryPolicy:
        """Doubling (or *factor*) backoff, suited to destinations behind routers."""
        return cls(timeout=timeout, max_attempts=max_attempts, backoff=factor, max_timeout=max_timeout)

    def timeout_for(self, attempt: int) -> float:
        """Seconds to wait after transmission number *attempt* (1-based)."""
        if attempt < 1:
            msg = f"attempt must be >= 1, got {attempt}"
            raise ValueError(msg)
        wait = self.timeout * self.backoff ** (attempt - 1)
        if self.max_timeout is not None:
            wait = min(wait, self.max_timeout)
        return wait

    @property
    def total_budget(self) -> float:
        """Worst-case seconds from first send to a timeout failure."""
        return sum(self.timeout_for(n) for n in range(1, self.max_attempts + 1))
