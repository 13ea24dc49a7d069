"""Escalating backoff rate limiter.

Each accepted attempt inside the cooldown window raises the wait required
before the next one, following ``delays_seconds`` indexed by the attempt
count (capped at the last entry). Once ``cooldown_seconds`` pass without an
attempt, the address starts over. Denied attempts change nothing.

The limiter is an entity: all addresses share one record set, and the actor
layer guarantees that only one check or reset runs at a time.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from sos_relay.adapters.rate_limit.base import AbstractRateLimiter, RateEntry, RateLimitResult
from sos_relay.core.actors import ScopedStorage
from sos_relay.core.config import RateLimitSettings
from sos_relay.core.logging import hash_identifier

logger = logging.getLogger(__name__)

ENTRY_PREFIX = "ip:"
UNKNOWN_ADDRESS = "unknown"


@dataclass(frozen=True)
class BackoffConfig:
    """Escalation table and cooldown, in seconds."""

    cooldown_seconds: float = 1800
    delays_seconds: tuple[float, ...] = (0, 10, 30, 60, 180, 300)

    def __post_init__(self) -> None:
        if self.cooldown_seconds <= 0:
            raise ValueError("cooldown_seconds must be > 0")
        if not self.delays_seconds:
            raise ValueError("delays_seconds must not be empty")

    @classmethod
    def from_settings(cls, rate_settings: RateLimitSettings) -> "BackoffConfig":
        return cls(
            cooldown_seconds=rate_settings.cooldown_seconds,
            delays_seconds=tuple(rate_settings.delays_seconds),
        )

    def required_delay(self, count: int) -> float:
        return self.delays_seconds[min(count, len(self.delays_seconds) - 1)]


class RateLimiterEntity(AbstractRateLimiter):
    """Escalating backoff over stored ``RateEntry`` records, one per address.

    Args:
        storage: Storage view scoped to the limiter's key.
        config: Escalation table and cooldown.
        clock: Time source returning UNIX time in seconds.
    """

    def __init__(
        self,
        storage: ScopedStorage,
        config: BackoffConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._storage = storage
        self._config = config or BackoffConfig()
        self._clock = clock

    @staticmethod
    def _record_name(address: str) -> str:
        return ENTRY_PREFIX + (address or UNKNOWN_ADDRESS)

    async def get_entry(self, address: str) -> RateEntry | None:
        raw = await self._storage.get(self._record_name(address))
        return RateEntry.model_validate(raw) if raw is not None else None

    async def _accept(self, address: str, count: int, now: float) -> RateLimitResult:
        entry = RateEntry(count=count, last_attempt=now)
        await self._storage.put(self._record_name(address), entry.model_dump())
        return RateLimitResult(allowed=True, retry_after_seconds=0, attempts=count)

    async def check(self, address: str) -> RateLimitResult:
        now = self._clock()
        entry = await self.get_entry(address)

        if entry is None or now - entry.last_attempt > self._config.cooldown_seconds:
            return await self._accept(address, 1, now)

        required = self._config.required_delay(entry.count)
        elapsed = now - entry.last_attempt
        if elapsed >= required:
            return await self._accept(address, entry.count + 1, now)

        retry_after = math.ceil(required - elapsed)
        logger.info(
            "rate_limit.denied",
            extra={
                "key_hash": hash_identifier(address or UNKNOWN_ADDRESS),
                "attempts": entry.count,
                "required_delay_s": required,
                "retry_after_s": retry_after,
            },
        )
        return RateLimitResult(allowed=False, retry_after_seconds=retry_after, attempts=entry.count)

    async def reset(self, address: str) -> None:
        await self._storage.delete(self._record_name(address))

    async def sweep(self) -> int:
        """Delete entries whose cooldown has fully elapsed.

        A swept address behaves exactly as it would have on its next check,
        which rewrites a cooled-down entry anyway.

        Returns:
            Number of entries deleted.
        """
        now = self._clock()
        removed = 0
        for name in await self._storage.names(ENTRY_PREFIX):
            raw = await self._storage.get(name)
            if raw is None:
                continue
            entry = RateEntry.model_validate(raw)
            if now - entry.last_attempt > self._config.cooldown_seconds:
                await self._storage.delete(name)
                removed += 1
        return removed
