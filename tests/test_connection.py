from unittest.mock import MagicMock

import pytest
from pymongo.errors import ConfigurationError

from eiffel_store.database.connection import ConnectionManager
from eiffel_store.database.errors import BadInputError, StoreConnectionError


def make_manager(client_factory, **kwargs):
    params = {"host": "mongo.test", "port": 27017, "database": "eiffel_test", "client_factory": client_factory}
    params.update(kwargs)
    return ConnectionManager(**params)


def test_connect_anonymous_when_no_credentials(client_factory):
    """Test that no auth arguments are passed without credentials."""
    conn = make_manager(client_factory)
    conn.connect()

    kwargs = client_factory.clients[0].kwargs
    assert kwargs["host"] == "mongo.test"
    assert kwargs["port"] == 27017
    assert kwargs["serverSelectionTimeoutMS"] == 5000
    assert kwargs["connectTimeoutMS"] == 10000
    assert "username" not in kwargs
    assert "authSource" not in kwargs
    assert conn.is_connected


def test_connect_credentialed_uses_database_as_auth_source(client_factory):
    conn = make_manager(client_factory, username="ei", password="s3cret")
    conn.connect()

    kwargs = client_factory.clients[0].kwargs
    assert kwargs["username"] == "ei"
    assert kwargs["password"] == "s3cret"
    assert kwargs["authSource"] == "eiffel_test"


@pytest.mark.parametrize("username,password", [("ei", ""), ("ei", "   "), ("", "pw"), (None, "pw"), ("ei", None)])
def test_connect_anonymous_when_credentials_incomplete(client_factory, username, password):
    conn = make_manager(client_factory, username=username, password=password)
    conn.connect()

    assert "username" not in client_factory.clients[0].kwargs


def test_connect_unreachable_raises_immediately(client_factory, fake_server):
    """Test that an unreachable store fails on connect without retries."""
    fake_server.reachable = False
    conn = make_manager(client_factory)

    with pytest.raises(StoreConnectionError):
        conn.connect()

    assert len(client_factory.clients) == 1
    assert client_factory.clients[0].closed
    assert not conn.is_connected


def test_connect_without_verify_skips_ping(client_factory, fake_server):
    fake_server.reachable = False
    conn = make_manager(client_factory)

    conn.connect(verify=False)

    assert conn.is_connected


def test_connect_is_idempotent(client_factory):
    conn = make_manager(client_factory)
    first = conn.connect()
    second = conn.connect()

    assert first is second
    assert len(client_factory.clients) == 1


def test_invalid_configuration_is_bad_input():
    factory = MagicMock(side_effect=ConfigurationError("bad port"))
    conn = make_manager(factory)

    with pytest.raises(BadInputError):
        conn.connect()


def test_client_before_connect_raises(client_factory):
    conn = make_manager(client_factory)

    with pytest.raises(StoreConnectionError):
        conn.client


def test_close_releases_client_and_fails_fast(client_factory):
    conn = make_manager(client_factory)
    conn.connect()
    conn.close()

    assert client_factory.clients[0].closed
    assert conn.is_closed
    with pytest.raises(StoreConnectionError, match="closed"):
        conn.client


def test_second_close_is_noop(client_factory):
    conn = make_manager(client_factory)
    conn.connect()
    conn.close()
    conn.close()

    assert conn.is_closed


def test_context_manager_closes(client_factory):
    with make_manager(client_factory) as conn:
        assert conn.is_connected

    assert not conn.is_connected
    assert client_factory.clients[0].closed


def test_from_settings(client_factory):
    settings = MagicMock()
    settings.MONGODB_HOST = "db.internal"
    settings.MONGODB_PORT = 27018
    settings.MONGODB_DATABASE = "ei"
    settings.MONGODB_USERNAME = "user"
    settings.mongodb_password = "pw"
    settings.MONGODB_SERVER_SELECTION_TIMEOUT = 100
    settings.MONGODB_CONNECTION_TIMEOUT = 200

    conn = ConnectionManager.from_settings(settings, client_factory=client_factory)
    conn.connect()

    kwargs = client_factory.clients[0].kwargs
    assert kwargs["host"] == "db.internal"
    assert kwargs["port"] == 27018
    assert kwargs["authSource"] == "ei"
    assert kwargs["serverSelectionTimeoutMS"] == 100
    assert kwargs["connectTimeoutMS"] == 200
