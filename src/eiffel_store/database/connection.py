"""
# Connection Management Module

Owns the single `pymongo.MongoClient` used by a `MongoDBHandler`.

## Lifecycle

1. **Instantiation**: `ConnectionManager(host, port, database, ...)` does no I/O.
2. **Connection**: `connect()` builds the client and, unless `verify=False`,
   pings the server so an unreachable store is reported immediately.
3. **Operations**: callers read `client`; it raises `StoreConnectionError` when
   there is no live handle.
4. **Shutdown**: `close()` releases the client. Later operations fail fast.

## Authentication

A credentialed client (`authSource=<database>`) is created only when a username
*and* a non-empty password are supplied; otherwise the connection is anonymous.

## Injection

`client_factory` defaults to `pymongo.MongoClient` and receives keyword
arguments only, so tests can hand in an in-memory store without touching any
process-wide state.

No retries are performed here. Failure to reach the store surfaces as
`StoreConnectionError` and retry policy is left to the caller.
"""

import threading
import time
from typing import Any, Callable, Optional

from pymongo import MongoClient
from pymongo.errors import ConfigurationError, PyMongoError

from eiffel_store.database.errors import BadInputError, StoreConnectionError
from eiffel_store.managers.logging_manager import get_logger

db_logger = get_logger(prefix="[DATABASE]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

ClientFactory = Callable[..., Any]


class ConnectionManager:
    """
    Lazy/eager lifecycle of one MongoDB client.

    At most one live client exists per manager. The client itself is pooled and
    thread-safe, so a single manager can be shared by many threads issuing
    concurrent operations.

    Attributes:
        host (`str`): MongoDB host name.
        port (`int`): MongoDB port.
        database (`str`): Database used as authentication source.
        username (`Optional[str]`): Optional user name.
        server_selection_timeout_ms (`int`): Driver server selection timeout.
        connect_timeout_ms (`int`): Driver socket connect timeout.

    Example:
        ```python
        conn = ConnectionManager("localhost", 27017, "eiffel_intelligence")
        conn.connect()
        names = conn.client["eiffel_intelligence"].list_collection_names()
        conn.close()
        ```
    """

    def __init__(
        self,
        host: str,
        port: int,
        database: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        server_selection_timeout_ms: int = 5000,
        connect_timeout_ms: int = 10000,
        client_factory: Optional[ClientFactory] = None,
    ):
        self.host = host
        self.port = port
        self.database = database
        self.username = username
        self._password = password
        self.server_selection_timeout_ms = server_selection_timeout_ms
        self.connect_timeout_ms = connect_timeout_ms
        self._client_factory: ClientFactory = client_factory or MongoClient
        self._client: Optional[Any] = None
        self._closed = False
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any, client_factory: Optional[ClientFactory] = None) -> "ConnectionManager":
        """Build a manager from an `eiffel_store.config.Settings` instance."""
        return cls(
            host=settings.MONGODB_HOST,
            port=settings.MONGODB_PORT,
            database=settings.MONGODB_DATABASE,
            username=settings.MONGODB_USERNAME,
            password=settings.mongodb_password,
            server_selection_timeout_ms=settings.MONGODB_SERVER_SELECTION_TIMEOUT,
            connect_timeout_ms=settings.MONGODB_CONNECTION_TIMEOUT,
            client_factory=client_factory,
        )

    @property
    def uses_credentials(self) -> bool:
        """`True` if both a username and a non-empty password were supplied."""
        return bool(self.username and self.username.strip() and self._password and self._password.strip())

    @property
    def is_connected(self) -> bool:
        return self._client is not None

    @property
    def is_closed(self) -> bool:
        return self._closed

    @property
    def client(self) -> Any:
        """
        The live client.

        Raises:
            StoreConnectionError: If `connect()` was never called or the manager was closed.
        """
        client = self._client
        if client is None:
            if self._closed:
                db_logger.error("Attempted to use MongoDB connection after close()")
                raise StoreConnectionError("MongoDB connection is closed")
            db_logger.error("Attempted to use MongoDB without a connection")
            raise StoreConnectionError("Failed to connect MongoDB. Call connect() first.")
        return client

    def _client_kwargs(self) -> dict:
        kwargs = {
            "host": self.host,
            "port": self.port,
            "serverSelectionTimeoutMS": self.server_selection_timeout_ms,
            "connectTimeoutMS": self.connect_timeout_ms,
        }
        if self.uses_credentials:
            kwargs.update(username=self.username, password=self._password, authSource=self.database)
            db_logger.debug("Using authenticated connection to MongoDB")
        else:
            db_logger.debug("Using unauthenticated connection to MongoDB")
        return kwargs

    def connect(self, verify: bool = True) -> Any:
        """
        Establish the MongoDB client.

        Calling `connect()` on a manager that already holds a live client returns
        that client unchanged.

        Args:
            verify: Ping the server before returning. With `False` the client is
                created lazily and the first real operation discovers reachability.

        Returns:
            The `MongoClient` (or injected equivalent).

        Raises:
            StoreConnectionError: If the server cannot be reached.
            BadInputError: If host/port/credentials form an invalid configuration.
        """
        with self._lock:
            if self._client is not None:
                return self._client

            start_time = time.time()
            db_logger.info(
                "Connecting to MongoDB at %s:%d (database: %s, ServerTimeout: %dms, ConnTimeout: %dms)",
                self.host,
                self.port,
                self.database,
                self.server_selection_timeout_ms,
                self.connect_timeout_ms,
            )

            try:
                client = self._client_factory(**self._client_kwargs())
            except ConfigurationError as e:
                db_logger.error("Invalid MongoDB configuration: %s", e)
                raise BadInputError(f"Invalid MongoDB configuration: {e}") from e
            except PyMongoError as e:
                db_logger.error("Failed to create MongoDB client: %s", e)
                raise StoreConnectionError(f"Failed to create MongoDB client: {e}") from e

            if verify:
                try:
                    ping_start = time.time()
                    client.admin.command("ping")
                    ping_duration = time.time() - ping_start
                except (PyMongoError, ConnectionError) as e:
                    duration = time.time() - start_time
                    perf_logger.warning("Connection attempt failed after %.3fs", duration)
                    db_logger.error("Failed to connect to MongoDB at %s:%d: %s", self.host, self.port, e)
                    client.close()
                    raise StoreConnectionError(f"MongoDB unreachable at {self.host}:{self.port}: {e}") from e
                perf_logger.info(
                    "MongoDB connection established in %.3fs (ping: %.3fs)", time.time() - start_time, ping_duration
                )

            self._client = client
            self._closed = False
            db_logger.info("Connected to MongoDB at %s:%d", self.host, self.port)
            return client

    def reconnect(self) -> Any:
        """Connect again if there is no live client. Used by the health check."""
        if self._client is not None:
            return self._client
        health_logger.info("No live MongoDB connection, attempting to reconnect")
        return self.connect()

    def close(self) -> None:
        """
        Release the client.

        Safe to call on a manager that was never connected or is already closed;
        such calls are logged and ignored.
        """
        with self._lock:
            if self._client is None:
                db_logger.warning("close() called but no active MongoDB connection found")
                self._closed = True
                return

            start_time = time.time()
            try:
                self._client.close()
            finally:
                self._client = None
                self._closed = True
            perf_logger.info("MongoDB disconnection completed in %.3fs", time.time() - start_time)
            db_logger.info("Disconnected from MongoDB at %s:%d", self.host, self.port)

    def __enter__(self) -> "ConnectionManager":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
