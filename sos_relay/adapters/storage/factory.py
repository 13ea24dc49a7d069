"""Factory for the configured key-value store."""

from sos_relay.adapters.storage.base import AbstractKeyValueStore
from sos_relay.adapters.storage.in_memory import InMemoryKeyValueStore
from sos_relay.adapters.storage.sqlite import SqliteKeyValueStore
from sos_relay.core.config import StorageSettings, settings
from sos_relay.core.errors import ValidationAppError


def create_store(storage_settings: StorageSettings | None = None) -> AbstractKeyValueStore:
    """Instantiate the store named by ``STORAGE_BACKEND``.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = storage_settings or settings.storage
    backend = cfg.backend.lower()

    if backend == "memory":
        return InMemoryKeyValueStore()

    if backend == "sqlite":
        return SqliteKeyValueStore(cfg.sqlite_path)

    raise ValidationAppError(
        code="storage_unknown_backend",
        message=f"Unknown storage backend: '{backend}'. Supported backends: memory, sqlite",
    )
