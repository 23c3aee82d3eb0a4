"""
# Connection Handle

The `ConnectionHandle` owns one Motor client bound to one named database.

## Lifecycle

```
create_connection_handle(config)  ->  not initialized (no I/O)
await handle.initialize()         ->  client built, server pinged, initialized
handle.open_session()             ->  DocumentSession (unit of work)
await handle.dispose()            ->  client closed, back to not initialized
```

| State | `is_initialized()` | `open_session()` / `get_store()` | `initialize()` | `dispose()` |
|-------|--------------------|----------------------------------|----------------|-------------|
| Not initialized | False | `NotInitializedError` | builds client | no-op |
| Initialized | True | works | `AlreadyInitializedError` | closes client |

Initialization is never retried. A failed `initialize()` leaves the handle not
initialized and raises `InitializationError` with the driver error as `__cause__`.

## Client Certificates

When `auth_options` are configured, the PEM certificate and key are written to a
private temporary file and handed to the driver as `tlsCertificateKeyFile`. The file
is removed on `dispose()`.

## Usage Example

```python
handle = create_connection_handle(config)
async with handle:
    result = await with_session(handle, lambda session: session.load("tenants/abc"))
```
"""

import os
import tempfile
import time
from typing import Any, Awaitable, Callable, Dict, Optional, TypeVar

from motor.motor_asyncio import AsyncIOMotorClient
from pymongo.errors import PyMongoError

from tenant_provisioning.database.exceptions import (
    AlreadyInitializedError,
    DatabaseError,
    InitializationError,
    NotInitializedError,
)
from tenant_provisioning.database.session import DocumentSession
from tenant_provisioning.managers.logging_manager import get_logger
from tenant_provisioning.models.database_models import DatabaseConfig

logger = get_logger(prefix="[DATABASE]")
db_logger = get_logger(prefix="[DB_PERFORMANCE]")
health_logger = get_logger(prefix="[DB_HEALTH]")

T = TypeVar("T")

ClientFactory = Callable[..., Any]


class ConnectionHandle:
    """
    Lifecycle wrapper around one Motor client and its selected database.

    Attributes:
        config (DatabaseConfig): Target database, endpoints, auth and session knobs.
        transactions_supported (bool): Whether the deployment accepts multi-document
            transactions (replica set or sharded cluster), detected on `initialize()`.
    """

    def __init__(self, config: DatabaseConfig, client_factory: ClientFactory = AsyncIOMotorClient):
        self.config = config
        self.transactions_supported = False
        self._client_factory = client_factory
        self._client: Optional[Any] = None
        self._database: Optional[Any] = None
        self._cert_file: Optional[str] = None

    @property
    def database_name(self) -> str:
        return self.config.database

    def is_initialized(self) -> bool:
        """True while an underlying client exists."""
        return self._client is not None

    def _client_options(self) -> Dict[str, Any]:
        options: Dict[str, Any] = {
            "serverSelectionTimeoutMS": self.config.server_selection_timeout_ms,
            "connectTimeoutMS": self.config.connect_timeout_ms,
        }
        if self.config.auth_options is not None:
            self._cert_file = self._write_certificate_file()
            options["tls"] = True
            options["tlsCertificateKeyFile"] = self._cert_file
        return options

    def _write_certificate_file(self) -> str:
        auth = self.config.auth_options
        fd, path = tempfile.mkstemp(prefix="tenant-db-", suffix=".pem")
        with os.fdopen(fd, "w", encoding="utf-8") as cert_file:
            cert_file.write(auth.certificate.rstrip("\n") + "\n")
            cert_file.write(auth.private_key.rstrip("\n") + "\n")
        os.chmod(path, 0o600)
        return path

    def _remove_certificate_file(self) -> None:
        if self._cert_file and os.path.exists(self._cert_file):
            try:
                os.remove(self._cert_file)
            except OSError as e:
                logger.warning(f"Could not remove temporary certificate file: {e}")
        self._cert_file = None

    async def initialize(self) -> None:
        """
        Build the client, select the database and verify the server is reachable.

        Raises:
            AlreadyInitializedError: If the handle is already initialized.
            InitializationError: If the driver rejects the configuration or the ping fails.
        """
        if self.is_initialized():
            raise AlreadyInitializedError(self.config.database)

        start_time = time.time()
        logger.info(f"Initializing connection to database {self.config.database} ({len(self.config.urls)} endpoints)")

        client = None
        try:
            options = self._client_options()
            client = self._client_factory(list(self.config.urls), **options)
            await client.admin.command("ping")
            hello = await client.admin.command("hello")
        except (PyMongoError, ValueError, TypeError, OSError) as e:
            if client is not None:
                client.close()
            self._remove_certificate_file()
            logger.error(f"Failed to initialize connection to {self.config.database}: {e}")
            raise InitializationError(self.config.database, str(e)) from e

        self._client = client
        self._database = client[self.config.database]
        self.transactions_supported = bool(hello.get("setName")) or hello.get("msg") == "isdbgrid"

        duration = time.time() - start_time
        db_logger.info(f"Connected to {self.config.database} in {duration:.3f}s")
        logger.info(
            f"Database {self.config.database} ready (transactions {'enabled' if self.transactions_supported else 'disabled'})"
        )

    async def dispose(self) -> None:
        """Close the client and return to the not-initialized state. Safe to call repeatedly."""
        if self._client is not None:
            self._client.close()
            logger.info(f"Closed connection to database {self.config.database}")
        self._client = None
        self._database = None
        self.transactions_supported = False
        self._remove_certificate_file()

    def get_store(self) -> Any:
        """The underlying `AsyncIOMotorClient`."""
        if self._client is None:
            raise NotInitializedError(self.config.database)
        return self._client

    def get_database(self) -> Any:
        """The selected `AsyncIOMotorDatabase`."""
        if self._database is None:
            raise NotInitializedError(self.config.database)
        return self._database

    def open_session(self) -> DocumentSession:
        """Open a new unit of work against the selected database."""
        if self._client is None:
            raise NotInitializedError(self.config.database)
        return DocumentSession(self)

    async def health_check(self) -> bool:
        """Ping the server. Returns False instead of raising."""
        if self._client is None:
            return False
        start_time = time.time()
        try:
            await self._client.admin.command("ping")
        except PyMongoError as e:
            health_logger.warning(f"Health check failed for {self.config.database}: {e}")
            return False
        health_logger.debug(f"Ping {self.config.database} ok in {time.time() - start_time:.3f}s")
        return True

    async def drop_database(self, name: Optional[str] = None) -> None:
        """Drop a database (this handle's own by default) through this handle's client."""
        target = name or self.config.database
        client = self.get_store()
        try:
            await client.drop_database(target)
        except PyMongoError as e:
            logger.error(f"Failed to drop database {target}: {e}")
            raise DatabaseError(f"Failed to drop database '{target}'", details={"database": target}) from e
        logger.info(f"Dropped database {target}")

    async def __aenter__(self) -> "ConnectionHandle":
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.dispose()

    def __repr__(self) -> str:
        state = "initialized" if self.is_initialized() else "not initialized"
        return f"ConnectionHandle(database={self.config.database!r}, {state})"


def create_connection_handle(
    config: DatabaseConfig, client_factory: ClientFactory = AsyncIOMotorClient
) -> ConnectionHandle:
    """Create a handle in the not-initialized state. Performs no I/O."""
    return ConnectionHandle(config, client_factory=client_factory)


async def with_session(handle: ConnectionHandle, callback: Callable[[DocumentSession], Awaitable[T]]) -> T:
    """
    Run `callback` inside a unit of work and commit it.

    The session is opened, passed to `callback`, committed with `save_changes()` and
    always disposed. The callback's result is returned.
    """
    session = handle.open_session()
    try:
        result = await callback(session)
        await session.save_changes()
        return result
    finally:
        session.dispose()
