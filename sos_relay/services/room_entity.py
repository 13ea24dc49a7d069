"""Room entity: lifecycle state machine over a single stored room record.

A room is either Live (record stored and not past ``expires_at``) or Absent.
Only ``create`` moves a room from Absent to Live; expiry moves it back, and is
observed lazily: the first operation that reads an expired record deletes it
and behaves as if the room never existed.

Each operation is "read record, check, mutate, write" and relies on the actor
layer running at most one operation per room at a time.
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass
from typing import Callable

from sos_relay.core.actors import ScopedStorage
from sos_relay.core.config import RoomSettings
from sos_relay.core.errors import ConflictAppError, NotFoundAppError, ValidationAppError
from sos_relay.core.logging import hash_identifier
from sos_relay.schemas.room import (
    CreateRoomResponse,
    JoinRoomResponse,
    LeaveRoomResponse,
    Message,
    PollResponse,
    Room,
    RoomInfoResponse,
    RoomMode,
    SendMessageResponse,
)
from sos_relay.utils.tokens import TokenFactory, random_token

logger = logging.getLogger(__name__)

ROOM_RECORD = "room"
CREATOR_NICKNAME = "creator"
DEFAULT_NICKNAME = "anon"


@dataclass(frozen=True)
class RoomConfig:
    """Room limits, fixed for the lifetime of an entity instance."""

    ttl_seconds: float = 3600
    max_messages: int = 500
    max_members: int = 256
    nickname_max_chars: int = 20
    member_id_length: int = 8
    message_id_length: int = 12

    @classmethod
    def from_settings(cls, room_settings: RoomSettings) -> "RoomConfig":
        return cls(
            ttl_seconds=room_settings.ttl_seconds,
            max_messages=room_settings.max_messages,
            max_members=room_settings.max_members,
            nickname_max_chars=room_settings.nickname_max_chars,
            member_id_length=room_settings.member_id_length,
            message_id_length=room_settings.message_id_length,
        )


def _room_not_found() -> NotFoundAppError:
    return NotFoundAppError(code="room_not_found", message="Room does not exist or has expired")


class RoomEntity:
    """Operations on one room, bound to that room's scoped storage.

    Args:
        storage: Storage view scoped to this room's key.
        config: Room limits.
        clock: Time source returning UNIX time in seconds.
        token_factory: Generates opaque ids of a given length.
    """

    def __init__(
        self,
        storage: ScopedStorage,
        config: RoomConfig | None = None,
        *,
        clock: Callable[[], float] = time.time,
        token_factory: TokenFactory = random_token,
    ) -> None:
        self._storage = storage
        self._config = config or RoomConfig()
        self._clock = clock
        self._new_token = token_factory

    async def _load_live(self) -> Room | None:
        """Read the room record, deleting it if it has expired."""
        raw = await self._storage.get(ROOM_RECORD)
        if raw is None:
            return None

        room = Room.model_validate(raw)
        if room.is_expired(self._clock()):
            await self._storage.delete(ROOM_RECORD)
            logger.info("room.expired", extra={"room": hash_identifier(room.room_hash)})
            return None
        return room

    async def _require_live(self, room_hash: str) -> Room:
        room = await self._load_live()
        # A record stored under a different hash means the key routing is
        # broken; never serve it.
        if room is None or room.room_hash != room_hash:
            raise _room_not_found()
        return room

    async def _save(self, room: Room) -> None:
        await self._storage.put(ROOM_RECORD, room.model_dump(mode="json"))

    def _fresh_id(self, length: int, taken: set[str]) -> str:
        token = self._new_token(length)
        while token in taken:
            token = self._new_token(length)
        return token

    async def create(self, room_hash: str, requested_hash: str | None) -> CreateRoomResponse:
        """Create the room, making its creator the first member.

        Raises:
            ConflictAppError: A live room already exists under this key.
            ValidationAppError: ``requested_hash`` differs from the key.
        """
        if await self._load_live() is not None:
            raise ConflictAppError(code="room_exists", message="A room with this hash already exists")

        if requested_hash != room_hash:
            raise ValidationAppError(
                code="invalid_room_hash",
                message="Room hash in the body does not match the addressed room",
            )

        now = self._clock()
        member_id = self._new_token(self._config.member_id_length)
        room = Room(
            room_hash=room_hash,
            mode=RoomMode.FIXED,
            created_at=now,
            expires_at=now + self._config.ttl_seconds,
            members={member_id: CREATOR_NICKNAME},
        )
        await self._save(room)

        logger.info(
            "room.created",
            extra={"room": hash_identifier(room_hash), "expires_at": room.expires_at},
        )
        return CreateRoomResponse(
            **room.summary(),
            member_id=member_id,
            members=room.member_names(),
        )

    async def join(self, room_hash: str, nickname: str | None = None) -> JoinRoomResponse:
        """Add a member to a live room.

        Raises:
            NotFoundAppError: The room is absent or expired.
            ConflictAppError: The room already holds ``max_members`` members.
        """
        room = await self._require_live(room_hash)

        max_members = self._config.max_members
        if max_members and len(room.members) >= max_members:
            logger.warning(
                "room.full",
                extra={"room": hash_identifier(room_hash), "max_members": max_members},
            )
            raise ConflictAppError(
                code="room_full",
                message="Room has reached its member limit",
                details={"max_members": max_members},
            )

        name = (nickname or DEFAULT_NICKNAME)[: self._config.nickname_max_chars]
        member_id = self._fresh_id(self._config.member_id_length, set(room.members))
        room.members[member_id] = name
        await self._save(room)

        logger.info(
            "room.joined",
            extra={"room": hash_identifier(room_hash), "member_count": len(room.members)},
        )
        return JoinRoomResponse(
            **room.summary(),
            member_id=member_id,
            members=room.member_names(),
            message_count=len(room.messages),
            last_message_ts=room.last_message_ts(),
        )

    async def send(
        self,
        room_hash: str,
        content: str | None,
        *,
        member_id: str | None = None,
        sender: str | None = None,
    ) -> SendMessageResponse:
        """Append a message, keeping only the newest ``max_messages``.

        The stored nickname of a known ``member_id`` wins over ``sender``.

        Raises:
            NotFoundAppError: The room is absent or expired.
            ValidationAppError: ``content`` is empty.
        """
        room = await self._require_live(room_hash)

        if not content:
            raise ValidationAppError(code="missing_content", message="Message content is required")

        if member_id and member_id in room.members:
            name = room.members[member_id]
        else:
            name = sender or DEFAULT_NICKNAME

        message = Message(
            id=self._fresh_id(self._config.message_id_length, {m.id for m in room.messages}),
            sender=name,
            content=content,
            timestamp=self._clock(),
        )
        room.messages.append(message)
        overflow = len(room.messages) - self._config.max_messages
        if overflow > 0:
            del room.messages[:overflow]
        await self._save(room)

        logger.debug(
            "room.message_sent",
            extra={"room": hash_identifier(room_hash), "message_count": len(room.messages)},
        )
        return SendMessageResponse(id=message.id, timestamp=message.timestamp)

    async def poll(self, room_hash: str, since: float = 0) -> PollResponse:
        """Return messages strictly newer than ``since``, oldest first.

        Raises:
            NotFoundAppError: The room is absent or expired.
        """
        room = await self._require_live(room_hash)
        return PollResponse(
            messages=[m for m in room.messages if m.timestamp > since],
            members=room.member_names(),
            expires_at=room.expires_at,
            message_count=len(room.messages),
        )

    async def leave(self, room_hash: str, member_id: str | None = None) -> LeaveRoomResponse:
        """Remove a member. Unknown or missing ids succeed without change.

        Raises:
            NotFoundAppError: The room is absent or expired.
        """
        room = await self._require_live(room_hash)

        if member_id and member_id in room.members:
            del room.members[member_id]
            await self._save(room)
            logger.info(
                "room.left",
                extra={"room": hash_identifier(room_hash), "member_count": len(room.members)},
            )

        return LeaveRoomResponse()

    async def info(self, room_hash: str) -> RoomInfoResponse:
        """Summarize a live room.

        Raises:
            NotFoundAppError: The room is absent or expired.
        """
        room = await self._require_live(room_hash)
        return RoomInfoResponse(
            **room.summary(),
            members=room.member_names(),
            message_count=len(room.messages),
            time_remaining=max(0, math.floor(room.expires_at - self._clock())),
        )

    async def purge_if_expired(self) -> bool:
        """Delete the record if it has expired. Returns True if it was deleted."""
        raw = await self._storage.get(ROOM_RECORD)
        if raw is None or not Room.model_validate(raw).is_expired(self._clock()):
            return False
        return await self._storage.delete(ROOM_RECORD)
