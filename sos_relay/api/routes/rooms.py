"""Room endpoints.

Paths carry the room hash; bodies are optional JSON objects. The hash length
is checked by a dependency before the relay service (and so any entity) is
reached.
"""

from __future__ import annotations

import math
from typing import Annotated, Any

from fastapi import APIRouter, Depends, Query, Request

from sos_relay.api.dependencies import (
    check_room_hash,
    get_relay,
    read_json_payload,
    valid_room_hash,
)
from sos_relay.core.errors import ValidationAppError
from sos_relay.core.rate_limit import get_client_address
from sos_relay.schemas.payloads import (
    CreateRoomPayload,
    JoinRoomPayload,
    LeaveRoomPayload,
    SendMessagePayload,
)
from sos_relay.schemas.room import (
    CreateRoomResponse,
    JoinRoomResponse,
    LeaveRoomResponse,
    PollResponse,
    RoomInfoResponse,
    SendMessageResponse,
)
from sos_relay.services.relay_service import RelayService

router = APIRouter(prefix="/room", tags=["Rooms"])

Relay = Annotated[RelayService, Depends(get_relay)]
RoomHash = Annotated[str, Depends(valid_room_hash)]
Payload = Annotated[dict[str, Any], Depends(read_json_payload)]
ClientAddress = Annotated[str, Depends(get_client_address)]


def _parse_since(raw: str | None) -> float:
    if not raw:
        return 0
    try:
        since = float(raw)
    except ValueError:
        since = math.nan
    if not math.isfinite(since):
        raise ValidationAppError(
            code="invalid_since",
            message="'since' must be a timestamp in seconds",
        )
    return since


@router.post("", response_model=CreateRoomResponse)
async def create_room(
    request: Request,
    payload: Payload,
    relay: Relay,
    address: ClientAddress,
) -> CreateRoomResponse:
    """Create a room under the hash given in the body.

    The caller's address is rate limited with an escalating backoff; a
    throttled caller gets 429 with ``retry_after``. A malformed hash is
    rejected before the attempt is counted.
    """
    body = CreateRoomPayload.model_validate(payload)
    room_hash = check_room_hash(request, body.room_hash)
    return await relay.create_room(address, room_hash, body.room_hash)


@router.post("/{room_hash}/join", response_model=JoinRoomResponse)
async def join_room(
    room_hash: RoomHash,
    payload: Payload,
    relay: Relay,
    address: ClientAddress,
) -> JoinRoomResponse:
    """Join a room. A successful join clears the caller's creation throttle."""
    body = JoinRoomPayload.model_validate(payload)
    return await relay.join_room(address, room_hash, body.nickname)


@router.post("/{room_hash}/send", response_model=SendMessageResponse)
async def send_message(room_hash: RoomHash, payload: Payload, relay: Relay) -> SendMessageResponse:
    body = SendMessagePayload.model_validate(payload)
    return await relay.send_message(
        room_hash,
        body.content,
        member_id=body.member_id,
        sender=body.sender,
    )


@router.get("/{room_hash}/poll", response_model=PollResponse)
async def poll_room(
    room_hash: RoomHash,
    relay: Relay,
    since: Annotated[str | None, Query(description="Return messages newer than this timestamp")] = None,
) -> PollResponse:
    """Messages strictly newer than ``since`` (default 0: everything retained)."""
    return await relay.poll_room(room_hash, _parse_since(since))


@router.post("/{room_hash}/leave", response_model=LeaveRoomResponse)
async def leave_room(room_hash: RoomHash, payload: Payload, relay: Relay) -> LeaveRoomResponse:
    body = LeaveRoomPayload.model_validate(payload)
    return await relay.leave_room(room_hash, body.member_id)


@router.get("/{room_hash}/info", response_model=RoomInfoResponse)
async def room_info(room_hash: RoomHash, relay: Relay) -> RoomInfoResponse:
    return await relay.room_info(room_hash)
