"""Key-value storage adapters backing the entity namespaces."""

from sos_relay.adapters.storage.base import AbstractKeyValueStore
from sos_relay.adapters.storage.factory import create_store
from sos_relay.adapters.storage.in_memory import InMemoryKeyValueStore
from sos_relay.adapters.storage.sqlite import SqliteKeyValueStore
