"""
# Document Session

A short-lived **unit of work** over the Motor collections of one database.

## Behaviour

- **Identity map**: a document is fetched at most once per session; later `load()`
  calls and query hits return the same dict instance.
- **Change tracking**: loaded documents are snapshotted; mutations to the returned
  dicts are detected on `save_changes()` by snapshot comparison.
- **Optimistic concurrency**: every persisted document carries an integer `_etag`.
  Replacing or deleting a loaded document is conditional on the etag seen at load time.
- **Request limit**: every store round trip counts against
  `max_requests_per_session`.

## Persisted Layout

| Field | Meaning |
|-------|---------|
| `_id` | The document id (`tenants/abc`), also kept as `id` in the body |
| `_etag` | Version counter maintained by the session |

The collection is the id prefix before the first `/`. Both bookkeeping fields are
stripped from the dicts handed to callers.

## Usage Example

```python
async with handle.open_session() as session:
    tenant = await session.load("tenants/abc")
    tenant["status"] = "suspended"
    await session.save_changes()
```
"""

import copy
import time
from typing import Any, Dict, List, Optional, Set, Tuple

from pymongo.errors import DuplicateKeyError, PyMongoError

from tenant_provisioning.database.exceptions import (
    ConcurrencyError,
    DatabaseError,
    SessionRequestLimitError,
)
from tenant_provisioning.managers.logging_manager import get_logger

logger = get_logger(prefix="[SESSION]")
perf_logger = get_logger(prefix="[DB_PERFORMANCE]")

ETAG_FIELD = "_etag"


def collection_for_id(doc_id: str) -> str:
    """Collection name encoded in a document id (`tenants/abc` -> `tenants`)."""
    if "/" not in doc_id:
        raise ValueError(f"Document id '{doc_id}' has no collection prefix")
    collection = doc_id.split("/", 1)[0]
    if not collection:
        raise ValueError(f"Document id '{doc_id}' has an empty collection prefix")
    return collection


def _strip_bookkeeping(raw: Dict[str, Any]) -> Tuple[Dict[str, Any], int]:
    document = dict(raw)
    document.pop("_id", None)
    etag = int(document.pop(ETAG_FIELD, 0) or 0)
    return document, etag


class DocumentSession:
    """
    Unit of work bound to an initialized `ConnectionHandle`.

    Sessions are cheap and not safe for concurrent use; open one per logical
    operation and dispose it afterwards.
    """

    def __init__(self, handle):
        self._handle = handle
        self._database = handle.get_database()
        self._optimistic = handle.config.enable_optimistic_concurrency
        self._max_requests = handle.config.max_requests_per_session
        self._requests = 0

        self._entities: Dict[str, Dict[str, Any]] = {}
        self._snapshots: Dict[str, Dict[str, Any]] = {}
        self._etags: Dict[str, int] = {}
        self._new: Set[str] = set()
        self._deleted: Set[str] = set()
        self._missing: Set[str] = set()
        self._disposed = False

    @property
    def number_of_requests(self) -> int:
        return self._requests

    def _count_request(self) -> None:
        if self._disposed:
            raise DatabaseError("Session has been disposed")
        if self._requests >= self._max_requests:
            raise SessionRequestLimitError(self._max_requests)
        self._requests += 1

    def _track(self, doc_id: str, raw: Dict[str, Any]) -> Dict[str, Any]:
        if doc_id in self._entities:
            return self._entities[doc_id]
        document, etag = _strip_bookkeeping(raw)
        self._entities[doc_id] = document
        self._snapshots[doc_id] = copy.deepcopy(document)
        self._etags[doc_id] = etag
        self._missing.discard(doc_id)
        return document

    async def load(self, doc_id: str) -> Optional[Dict[str, Any]]:
        """
        Load a document by id.

        Returns:
            The tracked document dict, or None if it does not exist (or was deleted in
            this session).
        """
        if doc_id in self._deleted or doc_id in self._missing:
            return None
        if doc_id in self._entities:
            return self._entities[doc_id]

        self._count_request()
        collection = self._database[collection_for_id(doc_id)]
        try:
            raw = await collection.find_one({"_id": doc_id})
        except PyMongoError as e:
            logger.error(f"Failed to load {doc_id}: {e}")
            raise DatabaseError(f"Failed to load document '{doc_id}'", details={"document_id": doc_id}) from e

        if raw is None:
            self._missing.add(doc_id)
            return None
        return self._track(doc_id, raw)

    def store(self, document: Dict[str, Any], doc_id: Optional[str] = None) -> str:
        """
        Register a new or replacement document for the next `save_changes()`.

        Args:
            document: Document body; must carry `id` unless `doc_id` is given.
            doc_id: Explicit id overriding `document["id"]`.

        Returns:
            str: The document id.
        """
        if self._disposed:
            raise DatabaseError("Session has been disposed")
        doc_id = doc_id or document.get("id")
        if not doc_id:
            raise ValueError("Document has no id")
        collection_for_id(doc_id)

        self._deleted.discard(doc_id)
        self._missing.discard(doc_id)
        self._entities[doc_id] = document
        if doc_id not in self._snapshots:
            self._new.add(doc_id)
        return doc_id

    def delete(self, doc_id: str) -> None:
        """Register a deletion for the next `save_changes()`."""
        if self._disposed:
            raise DatabaseError("Session has been disposed")
        self._entities.pop(doc_id, None)
        if doc_id in self._new:
            self._new.discard(doc_id)
            return
        self._deleted.add(doc_id)

    async def query(self, collection: str, **equals: Any) -> List[Dict[str, Any]]:
        """Equality query over one collection; matching documents enter the identity map."""
        self._count_request()
        try:
            raw_documents = await self._database[collection].find(equals).to_list(length=None)
        except PyMongoError as e:
            logger.error(f"Query on {collection} failed: {e}")
            raise DatabaseError(f"Query on collection '{collection}' failed", details={"collection": collection}) from e

        results = []
        for raw in raw_documents:
            doc_id = raw["_id"]
            if doc_id in self._deleted:
                continue
            results.append(self._track(doc_id, raw))
        return results

    def _pending_operations(self) -> List[Tuple[str, str, Optional[Dict[str, Any]]]]:
        operations: List[Tuple[str, str, Optional[Dict[str, Any]]]] = []
        for doc_id in sorted(self._deleted):
            operations.append(("delete", doc_id, None))
        for doc_id, document in self._entities.items():
            if doc_id in self._new:
                operations.append(("insert", doc_id, document))
            elif document != self._snapshots.get(doc_id):
                operations.append(("replace", doc_id, document))
        return operations

    def has_changes(self) -> bool:
        return bool(self._pending_operations())

    async def save_changes(self) -> None:
        """
        Commit pending stores, deletes and modifications as one request.

        Writes run inside a driver transaction when the handle supports transactions and
        more than one write is pending.

        Raises:
            ConcurrencyError: An etag check failed or a new id already exists.
            SessionRequestLimitError: The session's request limit is exhausted.
            DatabaseError: Any other driver failure.
        """
        operations = self._pending_operations()
        if not operations:
            return

        self._count_request()
        start_time = time.time()
        try:
            if self._handle.transactions_supported and len(operations) > 1:
                async with await self._handle.get_store().start_session() as driver_session:
                    async with driver_session.start_transaction():
                        written = await self._apply(operations, driver_session)
                for write in written:
                    self._record_write(*write)
            else:
                await self._apply(operations, None)
        except PyMongoError as e:
            logger.error(f"Commit failed on database {self._handle.config.database}: {e}")
            raise DatabaseError("Failed to save changes", details={"database": self._handle.config.database}) from e

        duration = time.time() - start_time
        perf_logger.debug(f"save_changes wrote {len(operations)} documents in {duration:.3f}s")

    async def _apply(self, operations, driver_session) -> List[Tuple[str, str, Optional[Dict[str, Any]], Optional[int]]]:
        """
        Run the writes in order.

        Outside a transaction each successful write is recorded as soon as it lands, so a
        failure part way through leaves only the unwritten operations pending. Inside a
        transaction the writes are returned and recorded by the caller after commit.
        """
        written = []
        for operation, doc_id, document in operations:
            collection = self._database[collection_for_id(doc_id)]
            if operation == "insert":
                etag = await self._insert(collection, doc_id, document, driver_session)
            elif operation == "replace":
                etag = await self._replace(collection, doc_id, document, driver_session)
            else:
                etag = await self._delete(collection, doc_id, driver_session)
            if driver_session is None:
                self._record_write(operation, doc_id, document, etag)
            else:
                written.append((operation, doc_id, document, etag))
        return written

    def _record_write(self, operation, doc_id, document, etag) -> None:
        if operation == "delete":
            self._deleted.discard(doc_id)
            self._snapshots.pop(doc_id, None)
            self._etags.pop(doc_id, None)
            self._missing.add(doc_id)
        else:
            self._new.discard(doc_id)
            self._etags[doc_id] = etag
            self._snapshots[doc_id] = copy.deepcopy(document)

    async def _insert(self, collection, doc_id, document, driver_session) -> int:
        body = {**document, "_id": doc_id, ETAG_FIELD: 1}
        if self._optimistic:
            try:
                await collection.insert_one(body, session=driver_session)
            except DuplicateKeyError as e:
                raise ConcurrencyError(doc_id, "document already exists") from e
        else:
            await collection.replace_one({"_id": doc_id}, body, upsert=True, session=driver_session)
        return 1

    async def _replace(self, collection, doc_id, document, driver_session) -> int:
        expected = self._etags.get(doc_id, 0)
        body = {**document, "_id": doc_id, ETAG_FIELD: expected + 1}
        if self._optimistic:
            result = await collection.replace_one({"_id": doc_id, ETAG_FIELD: expected}, body, session=driver_session)
            if result.matched_count == 0:
                raise ConcurrencyError(doc_id, "document was changed or deleted by another session")
        else:
            await collection.replace_one({"_id": doc_id}, body, upsert=True, session=driver_session)
        return expected + 1

    async def _delete(self, collection, doc_id, driver_session) -> None:
        if self._optimistic and doc_id in self._etags:
            result = await collection.delete_one({"_id": doc_id, ETAG_FIELD: self._etags[doc_id]}, session=driver_session)
            if result.deleted_count == 0:
                raise ConcurrencyError(doc_id, "document was changed or deleted by another session")
        else:
            await collection.delete_one({"_id": doc_id}, session=driver_session)

    def dispose(self) -> None:
        """Drop all tracked state. Uncommitted changes are discarded."""
        self._entities.clear()
        self._snapshots.clear()
        self._etags.clear()
        self._new.clear()
        self._deleted.clear()
        self._missing.clear()
        self._disposed = True

    async def __aenter__(self) -> "DocumentSession":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        self.dispose()
