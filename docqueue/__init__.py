"""
docqueue — delayed, retryable work queue on a shared document store.

Producers enqueue arbitrary payloads, optionally delayed into the future.
Consumers claim the next visible item under a time-bounded lease, process
it, and acknowledge it. An item that is never acknowledged becomes visible
again when its lease lapses and is redelivered, until its attempt budget is
spent, at which point the claim that spent the last attempt removes it.

Every claim is one atomic find-and-modify against the store, so any number
of consumer processes can share a queue without coordinating.

Quick start
-----------
    import asyncio
    from docqueue import EMPTY, Queue
    from docqueue.adapters.store.mongodb import MongoStore
    from docqueue.config import get_settings

    async def main():
        settings = get_settings()
        async with MongoStore.from_settings(settings) as store:
            await store.ensure_schema()
            queue = Queue.from_settings(store, settings)

            await queue.enqueue({"to": "user@example.com"}, delay=30)

            if item := await queue.claim():
                send_email(item.payload)
                await queue.acknowledge(item)

    asyncio.run(main())

Results
-------
Operations never raise for absence or store faults:
  - claim() returns a QueueItem, EMPTY, or a Failure
  - enqueue() returns a QueueItem or a Failure
  - acknowledge(), purge(), count() return an int or a Failure
EMPTY and Failure are both falsy; match on them to tell them apart.

Store adapters
--------------
Built-in adapters:
  - InMemoryStore           — for tests and examples
  - LocalFileSystemStore    — POSIX single-machine (fcntl.flock)
  - MongoStore              — MongoDB find_one_and_update (pymongo)

Optional adapters (install extras):
  - S3Store          (pip install "docqueue[s3]")

Custom adapters only need to implement DocumentStorePort.

Architecture
------------
Follows the Ports & Adapters pattern:
  domain/   — pure value types (QueueItem, StoreState, Empty, Failure)
  ports/    — Protocol interfaces (DocumentStorePort)
  core/     — business logic (Queue, codec)
  adapters/ — concrete store implementations
"""
from __future__ import annotations

from docqueue.adapters.store.filesystem import LocalFileSystemStore
from docqueue.adapters.store.memory import InMemoryStore
from docqueue.adapters.store.mongodb import MongoStore
from docqueue.config import QueueSettings, get_settings
from docqueue.core.queue import Queue
from docqueue.domain.errors import CASConflictError, DocQueueError, StoreFault
from docqueue.domain.models import (
    DEFAULT_QUEUE_TYPE,
    EMPTY,
    Empty,
    Failure,
    QueueItem,
    StoreState,
)
from docqueue.ports.store import DocumentStorePort

__all__ = [
    # Domain models
    "QueueItem",
    "StoreState",
    "Empty",
    "EMPTY",
    "Failure",
    "DEFAULT_QUEUE_TYPE",
    # Errors
    "DocQueueError",
    "StoreFault",
    "CASConflictError",
    # Port (for typing custom adapters)
    "DocumentStorePort",
    # Queue API
    "Queue",
    # Configuration
    "QueueSettings",
    "get_settings",
    # Built-in store adapters
    "InMemoryStore",
    "LocalFileSystemStore",
    "MongoStore",
]
