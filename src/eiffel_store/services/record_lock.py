"""
Record-level locking on top of the document store.

A lock is a marker field written into the record itself. It is claimed with
`find_and_modify` (atomic on the server) and released with a compare-and-swap
`update` that only succeeds while the marker still holds the caller's token.
Mutual exclusion therefore holds across threads and processes sharing the
same store.
"""

import time
import uuid
from typing import Any, Dict, Mapping, Optional

from eiffel_store.database.documents import parse_document
from eiffel_store.database.errors import BadInputError
from eiffel_store.database.handler import FilterInput, MongoDBHandler
from eiffel_store.managers.logging_manager import get_logger

logger = get_logger(prefix="[RecordLock]")

DEFAULT_LOCK_FIELD = "lock"


class RecordLock:
    """
    Claims and releases a lock marker on a single record.

    Args:
        handler: Connected `MongoDBHandler`.
        lock_field: Name of the marker field.
    """

    def __init__(self, handler: MongoDBHandler, lock_field: str = DEFAULT_LOCK_FIELD):
        if not lock_field:
            raise ValueError("lock_field must not be empty")
        self.handler = handler
        self.lock_field = lock_field

    @staticmethod
    def new_token() -> str:
        return uuid.uuid4().hex

    def acquire(
        self,
        db_name: str,
        collection_name: str,
        query: FilterInput,
        token: Optional[str] = None,
        attempts: int = 10,
        delay_seconds: float = 0.1,
    ) -> Optional[Dict[str, Any]]:
        """
        Try to claim the record matching `query`.

        Each attempt atomically sets `lock_field` to `token` on a matching record
        that is not already locked. Between failed attempts the caller sleeps
        `delay_seconds`.

        Args:
            db_name: Database name.
            collection_name: Collection name.
            query: Filter selecting the record.
            token: Owner token; a random one is generated if omitted.
            attempts: Maximum number of claim attempts.
            delay_seconds: Pause between attempts.

        Returns:
            The claimed record (including the lock marker), or `None` if it stayed
            locked or never matched within `attempts`.

        Raises:
            BadInputError: Malformed filter, or a filter that already constrains `lock_field`.
            StoreConnectionError: Store unavailable.
            StoreCommandError: Any other store failure.
        """
        if attempts < 1:
            raise ValueError("attempts must be at least 1")

        claim_filter = parse_document(query)
        if self.lock_field in claim_filter:
            raise BadInputError(f"Lock filter must not reference the lock field '{self.lock_field}'")
        claim_filter[self.lock_field] = {"$exists": False}
        token = token or self.new_token()

        for attempt in range(1, attempts + 1):
            document = self.handler.find_and_modify(
                db_name,
                collection_name,
                claim_filter,
                {"$set": {self.lock_field: token}},
                return_updated=True,
            )
            if document is not None:
                logger.info(
                    "Acquired lock on %s.%s record %s (attempt %d)",
                    db_name,
                    collection_name,
                    document.get("_id"),
                    attempt,
                )
                return document
            if attempt < attempts:
                time.sleep(delay_seconds)

        logger.warning("Failed to acquire lock on %s.%s after %d attempts", db_name, collection_name, attempts)
        return None

    def release(self, db_name: str, collection_name: str, document: Mapping[str, Any], token: str) -> bool:
        """
        Write `document` back without the lock marker, if `token` still owns it.

        Returns:
            `True` if the record was released, `False` if the token no longer held
            the lock or the write failed.
        """
        if "_id" not in document:
            raise BadInputError("Cannot release a lock on a document without an _id")

        replacement = {key: value for key, value in document.items() if key != self.lock_field}
        released = self.handler.update(
            db_name,
            collection_name,
            {"_id": document["_id"], self.lock_field: token},
            replacement,
        )
        if released:
            logger.info("Released lock on %s.%s record %s", db_name, collection_name, document["_id"])
        else:
            logger.warning(
                "Lock on %s.%s record %s was not held by this token", db_name, collection_name, document["_id"]
            )
        return released
