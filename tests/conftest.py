"""
Shared fixtures.

`FakeServer` is an in-memory stand-in for a MongoDB deployment, reached through
`FakeMongoClient` objects created by the `client_factory` fixture. All state is
guarded by one re-entrant lock, so single-document operations are atomic the
same way they are on a real server. Filters support equality and `$exists`;
updates support `$set`, `$unset` and `$addToSet`.
"""

import copy
import threading
from types import SimpleNamespace

import pytest
from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.errors import (
    CollectionInvalid,
    DuplicateKeyError,
    OperationFailure,
    ServerSelectionTimeoutError,
)

from eiffel_store.database.handler import MongoDBHandler

TEST_DB = "eiffel_test"


def _matches(document, query):
    for key, expected in query.items():
        if isinstance(expected, dict) and "$exists" in expected:
            if (key in document) != bool(expected["$exists"]):
                return False
        elif key not in document or document[key] != expected:
            return False
    return True


def _apply_update(document, update):
    if not update or not all(key.startswith("$") for key in update):
        raise ValueError("update only works with $ operators")
    for operator, fields in update.items():
        if operator == "$set":
            document.update(copy.deepcopy(fields))
        elif operator == "$unset":
            for field in fields:
                document.pop(field, None)
        elif operator == "$addToSet":
            for field, value in fields.items():
                values = document.setdefault(field, [])
                if value not in values:
                    values.append(copy.deepcopy(value))
        else:
            raise OperationFailure(f"Unknown modifier: {operator}", code=9)


class FakeServer:
    def __init__(self):
        self.lock = threading.RLock()
        self.databases = {}
        self.reachable = True

    def check(self):
        if not self.reachable:
            raise ServerSelectionTimeoutError("No servers found yet, Timeout: 0.01s")


class FakeCollection:
    def __init__(self, server, db_name, name):
        self.server = server
        self.db_name = db_name
        self.name = name

    def _data(self):
        database = self.server.databases.setdefault(self.db_name, {})
        return database.setdefault(self.name, {"docs": [], "indexes": {"_id_": {"name": "_id_", "key": {"_id": 1}}}})

    def _first(self, query):
        for document in self._data()["docs"]:
            if _matches(document, query):
                return document
        return None

    def insert_one(self, document):
        with self.server.lock:
            self.server.check()
            document = copy.deepcopy(document)
            document.setdefault("_id", ObjectId())
            if any(existing["_id"] == document["_id"] for existing in self._data()["docs"]):
                raise DuplicateKeyError(f"E11000 duplicate key error dup key: {document['_id']}", code=11000)
            self._data()["docs"].append(document)
            return SimpleNamespace(acknowledged=True, inserted_id=document["_id"])

    def find(self, query=None):
        with self.server.lock:
            self.server.check()
            return [copy.deepcopy(doc) for doc in self._data()["docs"] if _matches(doc, query or {})]

    def find_one(self, query=None):
        with self.server.lock:
            self.server.check()
            document = self._first(query or {})
            return copy.deepcopy(document) if document is not None else None

    def replace_one(self, query, replacement):
        if any(key.startswith("$") for key in replacement):
            raise ValueError("replacement can not include $ operators")
        with self.server.lock:
            self.server.check()
            document = self._first(query)
            if document is None:
                return SimpleNamespace(acknowledged=True, matched_count=0, modified_count=0)
            new_document = copy.deepcopy(replacement)
            new_document["_id"] = document["_id"]
            modified = new_document != document
            document.clear()
            document.update(new_document)
            return SimpleNamespace(acknowledged=True, matched_count=1, modified_count=int(modified))

    def update_one(self, query, update):
        with self.server.lock:
            self.server.check()
            document = self._first(query)
            if document is None:
                return SimpleNamespace(acknowledged=True, matched_count=0, modified_count=0)
            before = copy.deepcopy(document)
            _apply_update(document, update)
            return SimpleNamespace(acknowledged=True, matched_count=1, modified_count=int(before != document))

    def find_one_and_update(self, query, update, return_document=ReturnDocument.BEFORE):
        with self.server.lock:
            self.server.check()
            document = self._first(query)
            if document is None:
                return None
            before = copy.deepcopy(document)
            _apply_update(document, update)
            return copy.deepcopy(document) if return_document == ReturnDocument.AFTER else before

    def delete_many(self, query):
        with self.server.lock:
            self.server.check()
            data = self._data()
            kept = [doc for doc in data["docs"] if not _matches(doc, query)]
            deleted = len(data["docs"]) - len(kept)
            data["docs"] = kept
            return SimpleNamespace(acknowledged=True, deleted_count=deleted)

    def list_indexes(self):
        with self.server.lock:
            self.server.check()
            return [copy.deepcopy(index) for index in self._data()["indexes"].values()]

    def create_index(self, keys, **kwargs):
        with self.server.lock:
            self.server.check()
            name = "_".join(f"{field}_{direction}" for field, direction in keys)
            index = {"name": name, "key": dict(keys)}
            if "expireAfterSeconds" in kwargs:
                index["expireAfterSeconds"] = kwargs["expireAfterSeconds"]
            indexes = self._data()["indexes"]
            if name in indexes and indexes[name] != index:
                raise OperationFailure(
                    f"An existing index has the same name as the requested index: {name}", code=86
                )
            indexes[name] = index
            return name

    def drop_index(self, name):
        with self.server.lock:
            self.server.check()
            indexes = self._data()["indexes"]
            if name not in indexes:
                raise OperationFailure(f"index not found with name [{name}]", code=27)
            del indexes[name]


class FakeDatabase:
    def __init__(self, server, name):
        self.server = server
        self.name = name

    def list_collection_names(self):
        with self.server.lock:
            self.server.check()
            return list(self.server.databases.get(self.name, {}))

    def create_collection(self, name):
        with self.server.lock:
            self.server.check()
            collections = self.server.databases.setdefault(self.name, {})
            if name in collections:
                raise CollectionInvalid(f"collection {name} already exists")
            FakeCollection(self.server, self.name, name)._data()
            return FakeCollection(self.server, self.name, name)

    def drop_collection(self, name):
        with self.server.lock:
            self.server.check()
            self.server.databases.get(self.name, {}).pop(name, None)

    def __getitem__(self, name):
        return FakeCollection(self.server, self.name, name)


class FakeAdmin:
    def __init__(self, server):
        self.server = server

    def command(self, name):
        self.server.check()
        return {"ok": 1.0}


class FakeMongoClient:
    def __init__(self, server, **kwargs):
        self.server = server
        self.kwargs = kwargs
        self.admin = FakeAdmin(server)
        self.closed = False

    def __getitem__(self, name):
        return FakeDatabase(self.server, name)

    def drop_database(self, name):
        with self.server.lock:
            self.server.check()
            self.server.databases.pop(name, None)

    def close(self):
        self.closed = True


class FakeClientFactory:
    """Callable standing in for `MongoClient`; remembers every client it built."""

    def __init__(self, server):
        self.server = server
        self.clients = []

    def __call__(self, **kwargs):
        client = FakeMongoClient(self.server, **kwargs)
        self.clients.append(client)
        return client


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def client_factory(fake_server):
    return FakeClientFactory(fake_server)


@pytest.fixture
def handler(client_factory):
    store = MongoDBHandler(host="mongo.test", port=27017, database=TEST_DB, client_factory=client_factory)
    store.connect()
    yield store
    store.close()
