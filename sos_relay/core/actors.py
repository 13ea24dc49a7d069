"""Per-key actor layer over a key-value store.

An ``EntityNamespace`` hands out entity instances bound to one key. While an
entity is held through ``acquire(key)``, no other caller can hold an entity
for the same key: operations on one room (or on the rate limiter) run one at
a time, in arrival order, while different keys proceed concurrently.

Every entity sees only its own slice of the store through ``ScopedStorage``,
and nothing is cached between acquisitions, so each operation re-reads its
record.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Callable, Generic, TypeVar

from sos_relay.adapters.storage.base import AbstractKeyValueStore, JsonRecord

logger = logging.getLogger(__name__)

E = TypeVar("E")


class ScopedStorage:
    """A store view whose record names are prefixed with one entity key."""

    def __init__(self, store: AbstractKeyValueStore, prefix: str) -> None:
        self._store = store
        self._prefix = prefix

    @property
    def prefix(self) -> str:
        return self._prefix

    async def get(self, name: str) -> JsonRecord | None:
        return await self._store.get(self._prefix + name)

    async def put(self, name: str, value: JsonRecord) -> None:
        await self._store.put(self._prefix + name, value)

    async def delete(self, name: str) -> bool:
        return await self._store.delete(self._prefix + name)

    async def names(self, prefix: str = "") -> list[str]:
        """Record names (without the entity prefix) starting with ``prefix``."""
        keys = await self._store.keys(self._prefix + prefix)
        return [key[len(self._prefix):] for key in keys]


class _KeySlot:
    __slots__ = ("lock", "users")

    def __init__(self) -> None:
        self.lock = asyncio.Lock()
        self.users = 0


class EntityNamespace(Generic[E]):
    """Single-writer access to entities of one type, keyed by name.

    Args:
        name: Namespace name, used as the outermost storage prefix.
        store: Backing key-value store shared by all namespaces.
        factory: Builds an entity from its scoped storage.
    """

    def __init__(
        self,
        name: str,
        store: AbstractKeyValueStore,
        factory: Callable[[ScopedStorage], E],
    ) -> None:
        if ":" in name:
            raise ValueError("namespace name must not contain ':'")
        self.name = name
        self._store = store
        self._factory = factory
        self._slots: dict[str, _KeySlot] = {}

    def _storage_for(self, key: str) -> ScopedStorage:
        return ScopedStorage(self._store, f"{self.name}:{key}:")

    @property
    def busy_keys(self) -> int:
        """Number of keys currently held or waited on."""
        return len(self._slots)

    @asynccontextmanager
    async def acquire(self, key: str) -> AsyncIterator[E]:
        """Hold the entity for ``key`` exclusively until the block exits."""
        if not key:
            raise ValueError("entity key must be a non-empty string")

        slot = self._slots.get(key)
        if slot is None:
            slot = self._slots[key] = _KeySlot()
        slot.users += 1
        try:
            async with slot.lock:
                yield self._factory(self._storage_for(key))
        finally:
            slot.users -= 1
            if slot.users == 0:
                del self._slots[key]

    async def keys_with(self, record: str) -> list[str]:
        """Entity keys that currently store a record named ``record``."""
        outer = f"{self.name}:"
        suffix = f":{record}"
        return [
            stored[len(outer):-len(suffix)]
            for stored in await self._store.keys(outer)
            if stored.endswith(suffix) and len(stored) > len(outer) + len(suffix)
        ]
