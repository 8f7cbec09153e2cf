"""Idempotent, race-safe resolution of databases and collections."""

import time
from typing import Any

from pymongo.errors import PyMongoError

from eiffel_store.database.connection import ConnectionManager
from eiffel_store.database.errors import BadInputError, StoreError, is_namespace_conflict, translate_error
from eiffel_store.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")


class CollectionAccessor:
    """
    Resolves a collection, creating it on first use.

    Concurrent creators racing on the same name all succeed: the store reports
    "already exists" to every loser, which is logged and treated as success.
    """

    def __init__(self, connection: ConnectionManager):
        self.connection = connection

    def get_database(self, db_name: str) -> Any:
        """
        Resolve a database handle on the live client.

        Raises:
            StoreConnectionError: If there is no live connection.
            BadInputError: If the database name is invalid.
        """
        client = self.connection.client
        if not db_name or not isinstance(db_name, str):
            raise BadInputError(f"Invalid database name: {db_name!r}")
        try:
            return client[db_name]
        except (PyMongoError, TypeError, ValueError) as e:
            raise translate_error(e, f"get_database({db_name})") from e

    def ensure_collection(self, db_name: str, name: str) -> Any:
        """
        Return the named collection, creating it if it does not exist.

        Args:
            db_name: Database name.
            name: Collection name.

        Returns:
            The driver collection handle.

        Raises:
            StoreConnectionError: No live connection, or network failure.
            BadInputError: Invalid database or collection name.
            StoreCommandError: Any other store-side failure.
        """
        database = self.get_database(db_name)
        if not name or not isinstance(name, str):
            raise BadInputError(f"Invalid collection name: {name!r}")

        start_time = time.time()
        try:
            if name not in database.list_collection_names():
                db_logger.info("Collection '%s' not found in database '%s', creating it", name, db_name)
                try:
                    database.create_collection(name)
                except PyMongoError as e:
                    if not is_namespace_conflict(e):
                        raise
                    db_logger.warning("Collection '%s.%s' was created concurrently: %s", db_name, name, e)
            collection = database[name]
        except StoreError:
            raise
        except (PyMongoError, ConnectionError, TypeError, ValueError) as e:
            db_logger.error("Failed to resolve collection '%s.%s': %s", db_name, name, e)
            raise translate_error(e, f"ensure_collection({db_name}.{name})") from e

        perf_logger.debug("ensure_collection %s.%s took %.3fs", db_name, name, time.time() - start_time)
        return collection
