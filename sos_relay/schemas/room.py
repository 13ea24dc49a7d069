"""Pydantic schemas for rooms: the stored record and operation responses."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, List

from pydantic import BaseModel, Field


class RoomMode(str, Enum):
    """Room behaviour variant. Only fixed-lifetime rooms exist today."""

    FIXED = "fixed"


class Message(BaseModel):
    """A single chat message as stored and as returned by poll."""

    id: str = Field(..., description="Opaque message id.")
    sender: str = Field(..., description="Display name of the sender.")
    content: str = Field(..., description="Message text.")
    timestamp: float = Field(..., description="Arrival time, seconds since epoch.")


class Room(BaseModel):
    """Persisted room record. One per room hash."""

    room_hash: str
    mode: RoomMode = RoomMode.FIXED
    created_at: float
    expires_at: float
    members: Dict[str, str] = Field(
        default_factory=dict,
        description="Member id to nickname, in join order.",
    )
    messages: List[Message] = Field(
        default_factory=list,
        description="Retained messages in arrival order, oldest first.",
    )

    def is_expired(self, now: float) -> bool:
        return now > self.expires_at

    def member_names(self) -> list[str]:
        return list(self.members.values())

    def last_message_ts(self) -> float:
        return self.messages[-1].timestamp if self.messages else 0

    def summary(self) -> dict[str, Any]:
        return {
            "room_hash": self.room_hash,
            "mode": self.mode,
            "created_at": self.created_at,
            "expires_at": self.expires_at,
        }


class RoomSummary(BaseModel):
    room_hash: str
    mode: RoomMode
    created_at: float
    expires_at: float


class CreateRoomResponse(RoomSummary):
    """Returned to the creator of a room."""

    member_id: str = Field(..., description="Member id assigned to the creator.")
    members: List[str] = Field(..., description="Nicknames of current members.")


class JoinRoomResponse(RoomSummary):
    """Returned to a member joining a room."""

    member_id: str = Field(..., description="Member id assigned to the new member.")
    members: List[str]
    message_count: int
    last_message_ts: float = Field(
        ...,
        description="Timestamp of the newest retained message, 0 when there is none.",
    )


class SendMessageResponse(BaseModel):
    id: str
    timestamp: float


class PollResponse(BaseModel):
    """Messages newer than the requested timestamp plus room state."""

    messages: List[Message]
    members: List[str]
    expires_at: float
    message_count: int


class LeaveRoomResponse(BaseModel):
    status: str = "left"


class RoomInfoResponse(RoomSummary):
    members: List[str]
    message_count: int
    time_remaining: int = Field(..., description="Whole seconds until the room expires.")
