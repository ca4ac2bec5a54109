"""
Local key-value storage

Browser-storage-like persistence for offline queues and cached deliveries.
"""

from partsrunner.storage.base import (
    KeyValueStore,
    LocalKeyValueStore,
    MemoryKeyValueStore,
    get_key_value_store,
    load_json,
    save_json,
)

__all__ = [
    "KeyValueStore",
    "LocalKeyValueStore",
    "MemoryKeyValueStore",
    "get_key_value_store",
    "load_json",
    "save_json",
]
