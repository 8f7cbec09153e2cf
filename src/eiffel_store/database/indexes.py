"""
# Index Management

Time-to-live index provisioning.

A TTL index is identified by its canonical name `<field>_1` (single ascending
key). Re-applying `ensure_ttl_index` with a different expiry drops the old index
first, since MongoDB refuses to create an index whose name already exists with
different options. The drop-then-create sequence is not atomic; a concurrent
creator losing that race sees a `StoreConnectionError`.
"""

import time

from pymongo import ASCENDING
from pymongo.errors import PyMongoError

from eiffel_store.database.collections import CollectionAccessor
from eiffel_store.database.errors import BadInputError, StoreConnectionError, StoreError
from eiffel_store.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")


def ttl_index_name(field: str) -> str:
    """Canonical name MongoDB assigns to an ascending single-field index."""
    return f"{field}_1"


class IndexManager:
    """Creates and replaces TTL indexes on collections resolved through a `CollectionAccessor`."""

    def __init__(self, accessor: CollectionAccessor):
        self.accessor = accessor

    def ensure_ttl_index(self, db_name: str, collection_name: str, field: str, expiry_seconds: int) -> None:
        """
        Ensure exactly one TTL index exists on `field` with the given expiry.

        Args:
            db_name: Database name.
            collection_name: Collection name.
            field: Date field the TTL monitor inspects.
            expiry_seconds: Seconds after the field's timestamp at which documents expire.

        Raises:
            BadInputError: Empty field name or negative expiry.
            StoreConnectionError: Any failure while listing, dropping or creating the index.
        """
        if not field or not isinstance(field, str):
            raise BadInputError(f"Invalid TTL field name: {field!r}")
        if isinstance(expiry_seconds, bool) or not isinstance(expiry_seconds, int) or expiry_seconds < 0:
            raise BadInputError(f"TTL expiry must be a non-negative integer, got {expiry_seconds!r}")

        index_name = ttl_index_name(field)
        start_time = time.time()
        try:
            collection = self.accessor.ensure_collection(db_name, collection_name)
            existing = [index.get("name") for index in collection.list_indexes()]
            if index_name in existing:
                db_logger.info("Dropping existing TTL index '%s' on %s.%s", index_name, db_name, collection_name)
                collection.drop_index(index_name)
            collection.create_index([(field, ASCENDING)], expireAfterSeconds=expiry_seconds)
        except StoreError as e:
            db_logger.error("Failed to create TTL index on %s.%s: %s", db_name, collection_name, e)
            raise StoreConnectionError(f"Failed to create TTL index '{index_name}': {e}", code=e.code) from e
        except (PyMongoError, ConnectionError) as e:
            db_logger.error("Failed to create TTL index on %s.%s: %s", db_name, collection_name, e)
            raise StoreConnectionError(f"Failed to create TTL index '{index_name}': {e}") from e

        db_logger.info(
            "TTL index '%s' on %s.%s set to expire after %d seconds", index_name, db_name, collection_name, expiry_seconds
        )
        perf_logger.debug("ensure_ttl_index took %.3fs", time.time() - start_time)
