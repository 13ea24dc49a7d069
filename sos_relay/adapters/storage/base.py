"""Key-value store interface.

Entities persist one JSON-compatible record per key. The store guarantees
durability of a completed ``put`` for at least the lifetime of the entity;
ordering between operations on the same key is the actor layer's job, not the
store's.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


JsonRecord = dict[str, Any]


class AbstractKeyValueStore(ABC):
    """Interface for asynchronous key-value stores."""

    @abstractmethod
    async def get(self, key: str) -> JsonRecord | None:
        """Return a copy of the record stored under ``key``, or None."""
        raise NotImplementedError

    @abstractmethod
    async def put(self, key: str, value: JsonRecord) -> None:
        """Durably store ``value`` under ``key``, replacing any previous record."""
        raise NotImplementedError

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Remove ``key``. Returns True if a record was removed."""
        raise NotImplementedError

    @abstractmethod
    async def keys(self, prefix: str = "") -> list[str]:
        """List stored keys starting with ``prefix``, in sorted order."""
        raise NotImplementedError

    async def close(self) -> None:
        """Release backend resources. Default is a no-op."""
