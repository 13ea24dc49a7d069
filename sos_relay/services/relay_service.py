"""Relay service: wires entities to the store and sequences their coupling.

Rooms and the rate limiter are independent entities. The only interaction
between them lives here:
- room creation is preceded by a rate limit check for the caller's address
- a successful join resets the joiner's rate limit history
"""

from __future__ import annotations

import logging
import time
from typing import Callable

from sos_relay.adapters.rate_limit.escalating import BackoffConfig, RateLimiterEntity
from sos_relay.adapters.storage.base import AbstractKeyValueStore
from sos_relay.core.actors import EntityNamespace, ScopedStorage
from sos_relay.core.config import Settings
from sos_relay.core.errors import RateLimitedAppError, StorageAppError
from sos_relay.core.logging import hash_identifier
from sos_relay.schemas.rate import RateCheckResponse, RateResetResponse
from sos_relay.schemas.room import (
    CreateRoomResponse,
    JoinRoomResponse,
    LeaveRoomResponse,
    PollResponse,
    RoomInfoResponse,
    SendMessageResponse,
)
from sos_relay.services.room_entity import ROOM_RECORD, RoomConfig, RoomEntity
from sos_relay.utils.tokens import TokenFactory, random_token

logger = logging.getLogger(__name__)

ROOM_NAMESPACE = "room"
RATE_NAMESPACE = "rate"
# The limiter is a singleton entity; addresses are records inside it.
RATE_LIMITER_KEY = "global"


class RelayService:
    """Entry point for every room and rate limit operation.

    Args:
        store: Backing key-value store shared by both entity namespaces.
        room_config: Limits applied to every room.
        backoff_config: Escalation table for room creation.
        rate_limit_enabled: When False, room creation is never throttled.
        clock: Time source shared by all entities.
        token_factory: Id generator used by rooms.
    """

    def __init__(
        self,
        store: AbstractKeyValueStore,
        *,
        room_config: RoomConfig | None = None,
        backoff_config: BackoffConfig | None = None,
        rate_limit_enabled: bool = True,
        clock: Callable[[], float] = time.time,
        token_factory: TokenFactory = random_token,
    ) -> None:
        self.store = store
        self.rate_limit_enabled = rate_limit_enabled
        room_config = room_config or RoomConfig()
        backoff_config = backoff_config or BackoffConfig()

        def _room(storage: ScopedStorage) -> RoomEntity:
            return RoomEntity(storage, room_config, clock=clock, token_factory=token_factory)

        def _limiter(storage: ScopedStorage) -> RateLimiterEntity:
            return RateLimiterEntity(storage, backoff_config, clock=clock)

        self.rooms: EntityNamespace[RoomEntity] = EntityNamespace(ROOM_NAMESPACE, store, _room)
        self.limiters: EntityNamespace[RateLimiterEntity] = EntityNamespace(
            RATE_NAMESPACE, store, _limiter
        )

    @classmethod
    def from_settings(
        cls,
        cfg: Settings,
        store: AbstractKeyValueStore,
        *,
        clock: Callable[[], float] = time.time,
    ) -> "RelayService":
        return cls(
            store,
            room_config=RoomConfig.from_settings(cfg.room),
            backoff_config=BackoffConfig.from_settings(cfg.rate_limit),
            rate_limit_enabled=cfg.rate_limit.enabled,
            clock=clock,
        )

    # Rate limiter

    async def check_rate(self, address: str) -> RateCheckResponse:
        """Record a creation attempt for ``address`` and report whether it may proceed."""
        async with self.limiters.acquire(RATE_LIMITER_KEY) as limiter:
            return RateCheckResponse.from_result(await limiter.check(address))

    async def reset_rate(self, address: str) -> RateResetResponse:
        async with self.limiters.acquire(RATE_LIMITER_KEY) as limiter:
            await limiter.reset(address)
        return RateResetResponse()

    # Rooms

    async def create_room(
        self, address: str, room_hash: str, requested_hash: str | None
    ) -> CreateRoomResponse:
        """Create a room if ``address`` is not currently throttled.

        Raises:
            RateLimitedAppError: The address must wait before creating a room.
        """
        if self.rate_limit_enabled:
            decision = await self.check_rate(address)
            if not decision.allowed:
                raise RateLimitedAppError(
                    code="rate_limited",
                    message="Too many rooms created. Try again later.",
                    details={"retry_after": decision.retry_after},
                    retry_after=decision.retry_after,
                )

        async with self.rooms.acquire(room_hash) as room:
            return await room.create(room_hash, requested_hash)

    async def join_room(
        self, address: str, room_hash: str, nickname: str | None = None
    ) -> JoinRoomResponse:
        """Join a room and clear the joiner's creation history."""
        async with self.rooms.acquire(room_hash) as room:
            joined = await room.join(room_hash, nickname)

        # The join already happened; losing the reward must not undo it.
        try:
            await self.reset_rate(address)
        except StorageAppError:
            logger.warning(
                "rate_limit.reset_failed",
                extra={"key_hash": hash_identifier(address)},
                exc_info=True,
            )
        return joined

    async def send_message(
        self,
        room_hash: str,
        content: str | None,
        *,
        member_id: str | None = None,
        sender: str | None = None,
    ) -> SendMessageResponse:
        async with self.rooms.acquire(room_hash) as room:
            return await room.send(room_hash, content, member_id=member_id, sender=sender)

    async def poll_room(self, room_hash: str, since: float = 0) -> PollResponse:
        async with self.rooms.acquire(room_hash) as room:
            return await room.poll(room_hash, since)

    async def leave_room(self, room_hash: str, member_id: str | None = None) -> LeaveRoomResponse:
        async with self.rooms.acquire(room_hash) as room:
            return await room.leave(room_hash, member_id)

    async def room_info(self, room_hash: str) -> RoomInfoResponse:
        async with self.rooms.acquire(room_hash) as room:
            return await room.info(room_hash)

    # Housekeeping

    async def purge_expired(self) -> dict[str, int]:
        """Delete expired rooms and cooled-down rate entries.

        Each deletion goes through the owning entity, so it queues behind any
        in-flight operation on the same key.
        """
        rooms_removed = 0
        for room_hash in await self.rooms.keys_with(ROOM_RECORD):
            async with self.rooms.acquire(room_hash) as room:
                if await room.purge_if_expired():
                    rooms_removed += 1

        async with self.limiters.acquire(RATE_LIMITER_KEY) as limiter:
            entries_removed = await limiter.sweep()

        return {"rooms": rooms_removed, "rate_entries": entries_removed}

    async def close(self) -> None:
        await self.store.close()
