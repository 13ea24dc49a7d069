"""Request payloads.

Bodies are permissive: a missing or unparseable JSON body is an empty
payload, falsy values count as absent and scalars are coerced to text. Only a
required field that turns out to be absent is an error, and that is decided
by the operation, not here.
"""

from __future__ import annotations

import json
from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict


def _coerce_text(value: Any) -> str | None:
    if not value:
        return None
    if isinstance(value, str):
        return value
    return json.dumps(value)


def _only_strings(value: Any) -> str | None:
    return value if isinstance(value, str) else None


OptionalText = Annotated[str | None, BeforeValidator(_coerce_text)]


class _Payload(BaseModel):
    model_config = ConfigDict(extra="ignore")


class CreateRoomPayload(_Payload):
    room_hash: Annotated[str | None, BeforeValidator(_only_strings)] = None


class JoinRoomPayload(_Payload):
    nickname: OptionalText = None


class SendMessagePayload(_Payload):
    member_id: OptionalText = None
    sender: OptionalText = None
    content: OptionalText = None


class LeaveRoomPayload(_Payload):
    member_id: OptionalText = None

