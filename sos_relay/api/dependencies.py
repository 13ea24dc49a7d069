"""FastAPI dependencies shared by the relay routes."""

from __future__ import annotations

from typing import Any

from fastapi import Request

from sos_relay.core.errors import ValidationAppError
from sos_relay.services.relay_service import RelayService


def get_relay(request: Request) -> RelayService:
    """Return the relay service built by the application factory."""
    return request.app.state.relay


def check_room_hash(request: Request, room_hash: Any) -> str:
    """Reject room hashes of the wrong length before any entity is touched.

    Raises:
        ValidationAppError: ``invalid_room_hash`` if the value is not a string
            of exactly the configured length.
    """
    expected = request.app.state.settings.room.hash_length
    if not isinstance(room_hash, str) or len(room_hash) != expected:
        raise ValidationAppError(
            code="invalid_room_hash",
            message=f"Room hash must be exactly {expected} characters",
            details={
                "expected_length": expected,
                "room_hash_length": len(room_hash) if isinstance(room_hash, str) else 0,
            },
        )
    return room_hash


def valid_room_hash(request: Request, room_hash: str) -> str:
    """Path dependency for ``/room/{room_hash}/...`` routes."""
    return check_room_hash(request, room_hash)


async def read_json_payload(request: Request) -> dict[str, Any]:
    """Parse the request body as a JSON object.

    A missing body, invalid JSON or a non-object document all yield an empty
    payload; whether a field is required is up to the operation.
    """
    try:
        data = await request.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}
