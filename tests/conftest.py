"""
Shared fixtures: an in-memory stand-in for the Motor client.

`FakeServer` holds the data of every database; each `FakeMotorClient` built by the
`client_factory` fixture talks to the same server, so documents written through one
handle are visible through another, as with a real deployment.
"""

import copy
import functools
from types import SimpleNamespace
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from tenant_provisioning.config import Settings
from tenant_provisioning.database.cluster import ClusterTopologyRegistry
from tenant_provisioning.database.connection import create_connection_handle
from tenant_provisioning.models.database_models import DatabaseConfig
from tenant_provisioning.services.tenant_service import TenantProvisioningService


def _matches(document: Dict[str, Any], query: Dict[str, Any]) -> bool:
    return all(document.get(key) == value for key, value in query.items())


class FakeServer:
    def __init__(self, replica_set: bool = False):
        self.databases: Dict[str, Dict[str, Dict[Any, dict]]] = {}
        self.replica_set = replica_set
        self.unreachable = False
        self.clients: List["FakeMotorClient"] = []
        self.indexes: List[tuple] = []
        self.dropped: List[str] = []
        self.transactions = 0

    def collection(self, database: str, name: str) -> Dict[Any, dict]:
        return self.databases.setdefault(database, {}).setdefault(name, {})


class FakeCursor:
    def __init__(self, documents):
        self._documents = documents

    async def to_list(self, length=None):
        return list(self._documents if length is None else self._documents[:length])


class FakeCollection:
    def __init__(self, server: FakeServer, database: str, name: str):
        self._server = server
        self._database = database
        self.name = name

    @property
    def _docs(self) -> Dict[Any, dict]:
        return self._server.collection(self._database, self.name)

    def _first(self, query):
        for document in self._docs.values():
            if _matches(document, query):
                return document
        return None

    async def find_one(self, query, session=None):
        document = self._first(query)
        return copy.deepcopy(document) if document is not None else None

    def find(self, query=None):
        query = query or {}
        return FakeCursor([copy.deepcopy(doc) for doc in self._docs.values() if _matches(doc, query)])

    async def insert_one(self, document, session=None):
        if document["_id"] in self._docs:
            raise DuplicateKeyError("E11000 duplicate key error", code=11000)
        self._docs[document["_id"]] = copy.deepcopy(document)
        return SimpleNamespace(inserted_id=document["_id"])

    async def replace_one(self, query, document, upsert=False, session=None):
        existing = self._first(query)
        if existing is not None:
            self._docs[existing["_id"]] = copy.deepcopy(document)
            return SimpleNamespace(matched_count=1, upserted_id=None)
        if upsert:
            self._docs[document["_id"]] = copy.deepcopy(document)
            return SimpleNamespace(matched_count=0, upserted_id=document["_id"])
        return SimpleNamespace(matched_count=0, upserted_id=None)

    async def delete_one(self, query, session=None):
        existing = self._first(query)
        if existing is None:
            return SimpleNamespace(deleted_count=0)
        del self._docs[existing["_id"]]
        return SimpleNamespace(deleted_count=1)

    async def create_index(self, keys, **options):
        self._server.indexes.append((self._database, self.name, options.get("name")))
        return options.get("name")


class FakeDatabase:
    def __init__(self, server: FakeServer, name: str):
        self._server = server
        self.name = name

    def __getitem__(self, collection: str) -> FakeCollection:
        return FakeCollection(self._server, self.name, collection)


class FakeAdmin:
    def __init__(self, server: FakeServer):
        self._server = server

    async def command(self, name, *args, **kwargs):
        if self._server.unreachable:
            raise ServerSelectionTimeoutError("No servers found yet")
        if name == "hello":
            reply = {"isWritablePrimary": True, "ok": 1.0}
            if self._server.replica_set:
                reply["setName"] = "rs0"
            return reply
        return {"ok": 1.0}


class FakeTransaction:
    def __init__(self, server: FakeServer):
        self._server = server

    async def __aenter__(self):
        self._server.transactions += 1
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeDriverSession:
    def __init__(self, server: FakeServer):
        self._server = server

    def start_transaction(self):
        return FakeTransaction(self._server)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return False


class FakeMotorClient:
    def __init__(self, server: FakeServer, host, **options):
        self._server = server
        self.host = host
        self.options = options
        self.closed = False
        self.admin = FakeAdmin(server)
        server.clients.append(self)

    def __getitem__(self, name: str) -> FakeDatabase:
        return FakeDatabase(self._server, name)

    def close(self):
        self.closed = True

    async def drop_database(self, name):
        self._server.databases.pop(name, None)
        self._server.dropped.append(name)

    async def list_database_names(self):
        return sorted(self._server.databases)

    async def start_session(self):
        return FakeDriverSession(self._server)


@pytest.fixture
def fake_server():
    return FakeServer()


@pytest.fixture
def client_factory(fake_server):
    return functools.partial(FakeMotorClient, fake_server)


@pytest.fixture
def handle_factory(client_factory):
    def factory(config: DatabaseConfig):
        return create_connection_handle(config, client_factory=client_factory)

    return factory


@pytest.fixture
def database_config():
    return DatabaseConfig(urls=["mongodb://localhost:27017"], database="tenant-test")


@pytest.fixture
def settings():
    return Settings(
        _env_file=None,
        APP_ENV="development",
        DATABASE_URL="mongodb://localhost:27017",
        DATABASE_NAME="tenant-test",
        MANAGEMENT_DATABASE_NAME="tenant-management",
        DATABASE_CLUSTER_IPS=None,
        DATABASE_CERTIFICATE_BASE64=None,
        DATABASE_PRIVATE_KEY_BASE64=None,
        DATABASE_ADMIN_ENABLED=False,
        DATABASE_ADMIN_URL=None,
    )


@pytest.fixture
def registry(settings, handle_factory):
    return ClusterTopologyRegistry(settings, handle_factory=handle_factory)


@pytest_asyncio.fixture
async def service(settings, registry, handle_factory):
    tenant_service = await TenantProvisioningService.create(settings, registry, handle_factory=handle_factory)
    yield tenant_service
    await tenant_service.close()
