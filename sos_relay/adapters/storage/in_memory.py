"""In-memory key-value store.

Notes:
- Per-process only: records vanish on restart, which is acceptable for rooms
  that live for an hour at most.
- Values are stored as JSON text so callers never share mutable state with
  the store, mirroring what a durable backend would hand back.
"""

from __future__ import annotations

import json

from sos_relay.adapters.storage.base import AbstractKeyValueStore, JsonRecord


class InMemoryKeyValueStore(AbstractKeyValueStore):
    """Dict-backed store for development and tests."""

    def __init__(self) -> None:
        self._data: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._data)

    async def get(self, key: str) -> JsonRecord | None:
        raw = self._data.get(key)
        if raw is None:
            return None
        return json.loads(raw)

    async def put(self, key: str, value: JsonRecord) -> None:
        self._data[key] = json.dumps(value)

    async def delete(self, key: str) -> bool:
        return self._data.pop(key, None) is not None

    async def keys(self, prefix: str = "") -> list[str]:
        return sorted(k for k in self._data if k.startswith(prefix))
