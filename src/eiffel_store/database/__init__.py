"""
# Database Package

MongoDB access layer for `eiffel_store`.

## Components

- **`ConnectionManager`**: owns the single `MongoClient`, credentialed or anonymous.
- **`CollectionAccessor`**: creates collections on first use, tolerating concurrent creators.
- **`MongoDBHandler`**: document-operations facade (CRUD, compare-and-swap, TTL, health).
- **`IndexManager`**: idempotent TTL index replacement.
- **Error taxonomy**: `StoreConnectionError`, `BadInputError`, `StoreCommandError`.

## Usage

```python
from eiffel_store.database import build_handler

handler = build_handler()
handler.connect()
```

There is no module-level client. Each `MongoDBHandler` owns its connection and
is closed explicitly.
"""

from typing import Optional

from eiffel_store.database.collections import CollectionAccessor
from eiffel_store.database.connection import ClientFactory, ConnectionManager
from eiffel_store.database.documents import parse_document, render_fields, serialize_document
from eiffel_store.database.errors import (
    BadInputError,
    StoreCommandError,
    StoreConnectionError,
    StoreError,
    translate_error,
)
from eiffel_store.database.handler import MongoDBHandler
from eiffel_store.database.indexes import IndexManager
from eiffel_store.managers.logging_manager import set_log_level


def build_handler(settings=None, client_factory: Optional[ClientFactory] = None) -> MongoDBHandler:
    """
    Build an unconnected `MongoDBHandler` from settings.

    Also applies `settings.LOG_LEVEL` to the package logger.

    Args:
        settings: A `Settings` instance; the global `eiffel_store.config.settings` if omitted.
        client_factory: Optional replacement for `pymongo.MongoClient`.
    """
    if settings is None:
        from eiffel_store.config import settings as global_settings

        settings = global_settings
    set_log_level(settings.LOG_LEVEL)
    return MongoDBHandler(connection=ConnectionManager.from_settings(settings, client_factory=client_factory))


__all__ = [
    "BadInputError",
    "CollectionAccessor",
    "ConnectionManager",
    "IndexManager",
    "MongoDBHandler",
    "StoreCommandError",
    "StoreConnectionError",
    "StoreError",
    "build_handler",
    "parse_document",
    "render_fields",
    "serialize_document",
    "translate_error",
]
