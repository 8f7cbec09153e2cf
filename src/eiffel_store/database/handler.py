"""
# MongoDB Handler

The document-operations facade used by event pipelines and functional tests.

## Operations

| Operation | Returns | On failure |
|-----------|---------|------------|
| `insert` / `insert_raw` | `None` | logged, swallowed |
| `find_all` / `find` | `List[str]` (Extended JSON) | logged, `[]` |
| `update` (compare-and-swap) | `bool` | logged, `False` |
| `find_and_modify` | `Optional[dict]` | **raises** `StoreError` |
| `delete` | `bool` | logged, `False` |
| `add_to_set` | `bool` | logged, `False` |
| `exists` | `bool` | logged, `False` |
| `drop_collection` / `drop_database` | `None` | **raises** `StoreError` |
| `ensure_ttl_index` | `None` | **raises** `StoreConnectionError` |
| `health_check` | `bool` | logged, `False` |

Best-effort operations favour availability: the calling pipeline replays events
on its own, so a lost write only delays convergence. The locking, index and drop
paths favour correctness and surface structured errors.

## Compare-and-swap

`update()` replaces the single document matched by `filter` and reports `True`
only if a document was actually matched. When N callers race a replacement
whose filter includes the value they last observed, at most one of them sees
`True`; the others must re-read before retrying.

## Logging

All queries are passed through `sanitize_query_for_logging()` before being
logged, so credential-like fields never reach log output.

## Usage Example

```python
from eiffel_store.database import MongoDBHandler

handler = MongoDBHandler(host="localhost", port=27017, database="eiffel_intelligence")
handler.connect()
handler.insert("eiffel_intelligence", "events", '{"_id": "e1", "type": "EiffelActivityStartedEvent"}')
docs = handler.find("eiffel_intelligence", "events", {"_id": "e1"})
handler.close()
```
"""

import time
from datetime import datetime, timezone
from typing import Any, Dict, List, Mapping, Optional, Union

from pymongo import ReturnDocument
from pymongo.errors import PyMongoError

from eiffel_store.database.collections import CollectionAccessor
from eiffel_store.database.connection import ClientFactory, ConnectionManager
from eiffel_store.database.documents import DocumentInput, parse_document, serialize_document
from eiffel_store.database.errors import StoreError, translate_error
from eiffel_store.database.indexes import IndexManager
from eiffel_store.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

SENSITIVE_FIELDS = frozenset(
    {
        "password",
        "token",
        "secret",
        "key",
        "credential",
    }
)

FilterInput = Union[str, bytes, Mapping[str, Any]]


def sanitize_query_for_logging(query: Any) -> Dict[str, Any]:
    """Return a copy of `query` with sensitive-looking fields replaced by `[REDACTED]`."""
    if not isinstance(query, Mapping):
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in query.items():
        if any(sensitive_field in str(key).lower() for sensitive_field in SENSITIVE_FIELDS):
            sanitized[key] = "[REDACTED]"
        elif isinstance(value, Mapping):
            sanitized[key] = sanitize_query_for_logging(value)
        elif isinstance(value, list):
            sanitized[key] = [sanitize_query_for_logging(item) if isinstance(item, Mapping) else item for item in value]
        else:
            sanitized[key] = value
    return sanitized


class MongoDBHandler:
    """
    Facade over a single MongoDB connection.

    Owns a `ConnectionManager`, a `CollectionAccessor` and an `IndexManager`. Every
    operation names its database and collection explicitly; collections are
    created on first use.

    Args:
        host: MongoDB host name.
        port: MongoDB port.
        database: Database used as authentication source.
        username: Optional user name.
        password: Optional password; credentials are only used if both are non-empty.
        server_selection_timeout_ms: Driver server selection timeout.
        connect_timeout_ms: Driver socket connect timeout.
        client_factory: Callable returning a `MongoClient`-compatible object.
        connection: Pre-built `ConnectionManager`; overrides all connection arguments.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 27017,
        database: str = "eiffel_intelligence",
        username: Optional[str] = None,
        password: Optional[str] = None,
        server_selection_timeout_ms: int = 5000,
        connect_timeout_ms: int = 10000,
        client_factory: Optional[ClientFactory] = None,
        connection: Optional[ConnectionManager] = None,
    ):
        self.connection = connection or ConnectionManager(
            host=host,
            port=port,
            database=database,
            username=username,
            password=password,
            server_selection_timeout_ms=server_selection_timeout_ms,
            connect_timeout_ms=connect_timeout_ms,
            client_factory=client_factory,
        )
        self.collections = CollectionAccessor(self.connection)
        self.indexes = IndexManager(self.collections)

    # Lifecycle
    def connect(self, verify: bool = True) -> None:
        """Open the connection. Raises `StoreConnectionError` if the store is unreachable."""
        self.connection.connect(verify=verify)

    def close(self) -> None:
        self.connection.close()

    def __enter__(self) -> "MongoDBHandler":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    # Query logging helpers
    def _log_query_start(self, collection_name: str, operation: str, query: Any = None) -> float:
        start_time = time.time()
        db_logger.debug(
            "Starting %s operation on collection '%s' - Query: %s",
            operation,
            collection_name,
            sanitize_query_for_logging(query),
        )
        return start_time

    def _log_query_success(
        self, collection_name: str, operation: str, start_time: float, result_count: Optional[int] = None
    ) -> None:
        duration = time.time() - start_time
        if result_count is not None:
            perf_logger.debug(
                "%s on '%s' completed in %.3fs - %d records", operation, collection_name, duration, result_count
            )
        else:
            perf_logger.debug("%s on '%s' completed in %.3fs", operation, collection_name, duration)

    def _log_query_error(
        self, collection_name: str, operation: str, start_time: float, error: BaseException, query: Any = None
    ) -> None:
        duration = time.time() - start_time
        perf_logger.debug("%s on '%s' failed after %.3fs", operation, collection_name, duration)
        db_logger.error(
            "%s operation failed on collection '%s' after %.3fs - Error: %s, Query: %s",
            operation,
            collection_name,
            duration,
            error,
            sanitize_query_for_logging(query),
        )

    # Writes
    def insert(self, db_name: str, collection_name: str, document: DocumentInput) -> None:
        """
        Parse `document` and insert it.

        Failures (unreachable store, malformed JSON, duplicate `_id`) are logged
        and swallowed.
        """
        start_time = self._log_query_start(collection_name, "insert")
        try:
            parsed = parse_document(document)
            collection = self.collections.ensure_collection(db_name, collection_name)
            collection.insert_one(parsed)
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "insert", start_time, translate_error(e, "insert"))
            return
        db_logger.debug("Object inserted into %s.%s", db_name, collection_name)
        self._log_query_success(collection_name, "insert", start_time)

    def insert_raw(self, db_name: str, collection_name: str, document: Mapping[str, Any]) -> None:
        """Insert an already structured document. Failures are logged and swallowed."""
        start_time = self._log_query_start(collection_name, "insert_raw")
        try:
            collection = self.collections.ensure_collection(db_name, collection_name)
            collection.insert_one(dict(document))
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "insert_raw", start_time, translate_error(e, "insert_raw"))
            return
        self._log_query_success(collection_name, "insert_raw", start_time)

    # Reads
    def find_all(self, db_name: str, collection_name: str) -> List[str]:
        """Return every document in the collection as Extended JSON, or `[]` on failure."""
        return self._find(db_name, collection_name, {}, "find_all")

    def find(self, db_name: str, collection_name: str, query: FilterInput) -> List[str]:
        """Return the documents matching `query` as Extended JSON, or `[]` on failure."""
        return self._find(db_name, collection_name, query, "find")

    def _find(self, db_name: str, collection_name: str, query: FilterInput, operation: str) -> List[str]:
        start_time = self._log_query_start(collection_name, operation, query)
        try:
            query_filter = parse_document(query)
            collection = self.collections.ensure_collection(db_name, collection_name)
            results = [serialize_document(doc) for doc in collection.find(query_filter)]
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, operation, start_time, translate_error(e, operation), query)
            return []
        if not results:
            db_logger.debug("No documents found in %s.%s", db_name, collection_name)
        self._log_query_success(collection_name, operation, start_time, len(results))
        return results

    def exists(self, db_name: str, collection_name: str, query: FilterInput) -> bool:
        """`True` iff at least one non-empty document matches `query`."""
        start_time = self._log_query_start(collection_name, "exists", query)
        try:
            query_filter = parse_document(query)
            collection = self.collections.ensure_collection(db_name, collection_name)
            document = collection.find_one(query_filter)
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "exists", start_time, translate_error(e, "exists"), query)
            return False
        self._log_query_success(collection_name, "exists", start_time)
        return bool(document)

    # Updates
    def update(self, db_name: str, collection_name: str, query: FilterInput, replacement: DocumentInput) -> bool:
        """
        Compare-and-swap replacement of a single document.

        Args:
            db_name: Database name.
            collection_name: Collection name.
            query: Filter selecting the document, usually including the value the
                caller last observed.
            replacement: The full new document.

        Returns:
            `True` iff the write was acknowledged and the filter matched a
            document. `False` on no match or on any failure (logged).
        """
        start_time = self._log_query_start(collection_name, "update", query)
        try:
            query_filter = parse_document(query)
            new_document = parse_document(replacement)
            collection = self.collections.ensure_collection(db_name, collection_name)
            result = collection.replace_one(query_filter, new_document)
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "update", start_time, translate_error(e, "update"), query)
            return False

        db_logger.debug(
            "replace_one on %s.%s: matched=%d, modified=%d",
            db_name,
            collection_name,
            result.matched_count,
            result.modified_count,
        )
        self._log_query_success(collection_name, "update", start_time, result.modified_count)
        return bool(result.acknowledged and result.matched_count > 0)

    def find_and_modify(
        self,
        db_name: str,
        collection_name: str,
        query: FilterInput,
        update: DocumentInput,
        return_updated: bool = False,
    ) -> Optional[Dict[str, Any]]:
        """
        Atomically find a document and apply an operator update to it.

        This is the locking primitive: errors are never swallowed, so callers can
        tell "no document matched" (`None`) from "store unavailable" (exception).

        Args:
            db_name: Database name.
            collection_name: Collection name.
            query: Filter selecting the document.
            update: Update document using `$` operators.
            return_updated: Return the post-image instead of the pre-image.

        Returns:
            The matched document, or `None` if nothing matched.

        Raises:
            BadInputError: Malformed filter or update (including non-operator updates).
            StoreConnectionError: No live connection or store unreachable.
            StoreCommandError: Any other store failure.
        """
        start_time = self._log_query_start(collection_name, "find_and_modify", query)
        try:
            query_filter = parse_document(query)
            update_document = parse_document(update)
            collection = self.collections.ensure_collection(db_name, collection_name)
            document = collection.find_one_and_update(
                query_filter,
                update_document,
                return_document=ReturnDocument.AFTER if return_updated else ReturnDocument.BEFORE,
            )
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            error = translate_error(e, "find_and_modify")
            self._log_query_error(collection_name, "find_and_modify", start_time, error, query)
            raise error from e

        self._log_query_success(collection_name, "find_and_modify", start_time, 1 if document else 0)
        return document

    def add_to_set(
        self,
        db_name: str,
        collection_name: str,
        query: FilterInput,
        set_field: str,
        value: Any,
        timestamp_field: str = "Time",
    ) -> bool:
        """
        Add `value` to the array `set_field`, then refresh `timestamp_field`.

        The two writes are separate; if the second fails the timestamp is left
        stale while the set already contains `value`.

        Args:
            db_name: Database name.
            collection_name: Collection name.
            query: Filter selecting the document.
            set_field: Name of the array field, e.g. `"objects"`.
            value: Element to add.
            timestamp_field: Field set to the current UTC time after the add.

        Returns:
            `True` iff the filter matched a document and both writes were acknowledged.
        """
        start_time = self._log_query_start(collection_name, "add_to_set", query)
        try:
            query_filter = parse_document(query)
            collection = self.collections.ensure_collection(db_name, collection_name)
            set_result = collection.update_one(query_filter, {"$addToSet": {set_field: value}})
            if set_result.matched_count == 0:
                db_logger.debug("add_to_set on %s.%s matched no document", db_name, collection_name)
                self._log_query_success(collection_name, "add_to_set", start_time, 0)
                return False
            time_result = collection.update_one(
                query_filter, {"$set": {timestamp_field: datetime.now(timezone.utc)}}
            )
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "add_to_set", start_time, translate_error(e, "add_to_set"), query)
            return False

        self._log_query_success(collection_name, "add_to_set", start_time, set_result.modified_count)
        return bool(set_result.acknowledged and time_result.acknowledged)

    # Deletes
    def delete(self, db_name: str, collection_name: str, query: FilterInput) -> bool:
        """Delete all documents matching `query`. `True` iff at least one was removed."""
        start_time = self._log_query_start(collection_name, "delete", query)
        try:
            query_filter = parse_document(query)
            collection = self.collections.ensure_collection(db_name, collection_name)
            result = collection.delete_many(query_filter)
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            self._log_query_error(collection_name, "delete", start_time, translate_error(e, "delete"), query)
            return False
        self._log_query_success(collection_name, "delete", start_time, result.deleted_count)
        return result.deleted_count > 0

    def drop_collection(self, db_name: str, collection_name: str) -> None:
        """
        Drop a collection.

        Raises:
            StoreError: Translated store failure.
        """
        start_time = time.time()
        try:
            database = self.collections.get_database(db_name)
            database.drop_collection(collection_name)
        except StoreError:
            raise
        except (PyMongoError, ConnectionError, TypeError, ValueError) as e:
            raise translate_error(e, f"drop_collection({db_name}.{collection_name})") from e
        db_logger.info("Dropped collection %s.%s", db_name, collection_name)
        perf_logger.debug("drop_collection took %.3fs", time.time() - start_time)

    def drop_database(self, db_name: str) -> None:
        """
        Drop a database.

        Raises:
            StoreError: Translated store failure.
        """
        start_time = time.time()
        try:
            client = self.connection.client
            client.drop_database(db_name)
        except StoreError:
            raise
        except (PyMongoError, ConnectionError, TypeError, ValueError) as e:
            raise translate_error(e, f"drop_database({db_name})") from e
        db_logger.info("Dropped database %s", db_name)
        perf_logger.debug("drop_database took %.3fs", time.time() - start_time)

    # Indexes
    def ensure_ttl_index(self, db_name: str, collection_name: str, field: str, expiry_seconds: int) -> None:
        """See `IndexManager.ensure_ttl_index`."""
        self.indexes.ensure_ttl_index(db_name, collection_name, field, expiry_seconds)

    # Health
    def health_check(self, db_name: str) -> bool:
        """
        Report whether the store is reachable and `db_name` has collections.

        Reconnects first if there is no live connection, including after `close()`.

        Returns:
            `False` on any error or if the database holds no collections.
        """
        start_time = time.time()
        try:
            client = self.connection.reconnect()
            names = client[db_name].list_collection_names()
        except (StoreError, PyMongoError, ConnectionError, TypeError, ValueError) as e:
            health_logger.error("MongoDB health check failed after %.3fs: %s", time.time() - start_time, e)
            return False

        if not names:
            health_logger.warning("No collections found in database %s", db_name)
            return False
        health_logger.debug("MongoDB health check passed in %.3fs (%d collections)", time.time() - start_time, len(names))
        return True
