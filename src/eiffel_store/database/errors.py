"""
# Store Error Taxonomy

The driver raises dozens of exception types. Callers of `eiffel_store` only ever
see the closed set defined here:

| Error | Meaning |
|-------|---------|
| `StoreConnectionError` | No live handle, store unreachable, client closed, network timeout |
| `BadInputError` | Malformed filter/document payload, invalid names (caller bug) |
| `StoreCommandError` | Any other server-side command failure |

"Collection already exists" conflicts are not errors at all; they are recognised
by `is_namespace_conflict()` and suppressed by the collection accessor.

Driver exceptions are translated exactly once, by `translate_error()`, at the
boundary of the database package.
"""

import json
from typing import Optional

from bson.errors import BSONError
from pymongo.errors import (
    CollectionInvalid,
    ConfigurationError,
    ConnectionFailure,
    InvalidName,
    InvalidOperation,
    OperationFailure,
    PyMongoError,
)

# Server error codes
NAMESPACE_EXISTS = 48
BAD_INPUT_CODES = frozenset({2, 9, 14, 52, 73})


class StoreError(Exception):
    """Base class for all errors raised by `eiffel_store`."""

    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class StoreConnectionError(StoreError, ConnectionError):
    """No live connection, or the store is unreachable, shutting down or interrupted."""


class BadInputError(StoreError, ValueError):
    """Malformed filter, document or name supplied by the caller."""


class StoreCommandError(StoreError):
    """A store-side command failure that is not a recognised idempotent conflict."""


def is_namespace_conflict(exc: BaseException) -> bool:
    """Return `True` if `exc` signals that a collection already exists."""
    if isinstance(exc, CollectionInvalid):
        return "already exists" in str(exc)
    if isinstance(exc, OperationFailure):
        return exc.code == NAMESPACE_EXISTS or "already exists" in str(exc)
    return False


def translate_error(exc: BaseException, context: str = "") -> StoreError:
    """
    Map a driver or parsing exception onto the store error taxonomy.

    Args:
        exc: The exception raised by `pymongo`, `bson` or the document codec.
        context: Short description of the failed operation, prepended to the message.

    Returns:
        The matching `StoreError` subclass instance. Callers raise it `from exc`.
    """
    if isinstance(exc, StoreError):
        return exc

    prefix = f"{context}: " if context else ""

    if isinstance(exc, (ConnectionFailure, InvalidOperation)):
        return StoreConnectionError(f"{prefix}MongoDB connection down or closed. Reason: {exc}")
    if isinstance(exc, ConnectionError):
        return StoreConnectionError(f"{prefix}MongoDB connection error. Reason: {exc}")
    if isinstance(exc, (InvalidName, ConfigurationError, BSONError, json.JSONDecodeError, TypeError, ValueError)):
        return BadInputError(f"{prefix}Invalid input. Reason: {exc}")
    if isinstance(exc, OperationFailure):
        if exc.code in BAD_INPUT_CODES:
            return BadInputError(f"{prefix}Invalid input. Reason: {exc}", code=exc.code)
        return StoreCommandError(f"{prefix}MongoDB command failed. Reason: {exc}", code=exc.code)
    if isinstance(exc, PyMongoError):
        return StoreCommandError(f"{prefix}MongoDB error. Reason: {exc}")
    return StoreCommandError(f"{prefix}Unexpected error. Reason: {exc}")
