"""Rate limiter interfaces and records."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass

from pydantic import BaseModel, Field


class RateEntry(BaseModel):
    """Stored attempt history for one client address.

    Attributes:
        count: Accepted attempts since the last cooldown reset (>= 1).
        last_attempt: UNIX time of the most recent accepted attempt.
    """

    count: int = Field(..., ge=1)
    last_attempt: float


@dataclass(frozen=True)
class RateLimitResult:
    """Outcome of a rate limit check.

    Attributes:
        allowed: Whether the attempt may proceed.
        retry_after_seconds: Whole seconds to wait before retrying (0 when allowed).
        attempts: Accepted attempts recorded for the address, including this
            one when allowed.
    """

    allowed: bool
    retry_after_seconds: int
    attempts: int


class AbstractRateLimiter(ABC):
    """Interface for per-address rate limiters."""

    @abstractmethod
    async def check(self, address: str) -> RateLimitResult:
        """Account an attempt by ``address`` and decide whether it may proceed.

        Args:
            address: Client network address (or any stable caller key).

        Returns:
            RateLimitResult describing whether it was allowed.
        """
        raise NotImplementedError

    @abstractmethod
    async def reset(self, address: str) -> None:
        """Forget all history for ``address``."""
        raise NotImplementedError
