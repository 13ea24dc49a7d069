"""Background purge of expired rooms and stale rate limit entries.

Expiry is already enforced on read, so this worker only reclaims storage.
Running it or not never changes what a client can observe.
"""

from __future__ import annotations

import asyncio
import logging

from sos_relay.core.errors import AppError
from sos_relay.services.relay_service import RelayService

logger = logging.getLogger(__name__)


class ExpiryJanitor:
    """Periodically calls ``RelayService.purge_expired``."""

    def __init__(self, relay: RelayService, interval_seconds: float) -> None:
        self.relay = relay
        self.interval_seconds = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._stopping = asyncio.Event()

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.interval_seconds <= 0:
            logger.info("janitor.disabled")
            return

        if not self.running:
            self._stopping.clear()
            self._task = asyncio.create_task(self._run())

    async def stop(self) -> None:
        if self._task is None:
            return

        self._stopping.set()
        await self._task
        self._task = None

    async def run_once(self) -> dict[str, int]:
        removed = await self.relay.purge_expired()
        if any(removed.values()):
            logger.info("janitor.purged", extra=removed)
        return removed

    async def _run(self) -> None:
        while not self._stopping.is_set():
            try:
                await asyncio.wait_for(self._stopping.wait(), timeout=self.interval_seconds)
                return
            except asyncio.TimeoutError:
                pass

            try:
                await self.run_once()
            except AppError as exc:
                logger.warning("janitor.failed", extra={"error_code": exc.code})
            except Exception as exc:
                # The loop outlives any single failed sweep.
                logger.exception("janitor.failed", extra={"error_type": type(exc).__name__})
