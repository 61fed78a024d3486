"""
DocumentStorePort — the single port in docqueue.

Any object satisfying this structural Protocol can act as the document store.
No base class or registration is required.

Documents crossing the port use the persisted shape:

    { "_id": ..., "queueType": str, "visibleAt": datetime,
      "remainingAttempts": int, "payload": Any }

Claim contract
--------------
claim(queue_type, now, visible_until)
  - atomically selects, among documents with queueType == queue_type,
    visibleAt <= now and remainingAttempts > 0, the one with the smallest
    visibleAt
  - in the same indivisible step sets visibleAt = visible_until and
    decrements remainingAttempts by 1
  - returns the document as it is *after* the mutation, or None
  - a document whose remainingAttempts reaches 0 is removed from the store
    before claim() returns

Every adapter raises StoreFault for backend failures. Absence is never an
exception: claim() returns None and delete() returns 0.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any, Protocol, runtime_checkable

Document = dict[str, Any]


@runtime_checkable
class DocumentStorePort(Protocol):
    """
    Minimal interface required by the docqueue core.

    Implementing adapters (built-in):
      - InMemoryStore        — asyncio.Lock-based, for testing
      - LocalFileSystemStore — fcntl.flock-based, POSIX single-machine
      - MongoStore           — find_one_and_update (pymongo async client)
      - S3Store              — optimistic If-Match writes (aioboto3)
    """

    async def ensure_schema(self) -> None:
        """Create the collection, validator and indexes if absent. Idempotent."""
        ...

    async def insert(self, document: Document) -> str:
        """Insert a new document and return its store-assigned id."""
        ...

    async def claim(
        self,
        queue_type: str,
        now: datetime,
        visible_until: datetime,
    ) -> Document | None:
        """Atomically lease the earliest eligible document (see module doc)."""
        ...

    async def delete(self, item_id: str) -> int:
        """Delete one document by id. Returns 0 or 1."""
        ...

    async def delete_queue(self, queue_type: str) -> int:
        """Delete every document of a queue type. Returns the deleted count."""
        ...

    async def count(self, queue_type: str) -> int:
        """Count every document of a queue type, visible or not."""
        ...

    async def close(self) -> None:
        """Release the underlying handle. Idempotent."""
        ...
