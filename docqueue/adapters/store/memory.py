"""
InMemoryStore — asyncio.Lock-based document store for testing and development.

Keeps every document in a StoreState value. An asyncio.Lock serialises each
primitive, so claim() is a true select-mutate-return with no interleaving,
faithfully simulating a store-side find-and-modify.

Zero external dependencies beyond the domain models. Safe for multiple
concurrent coroutines in a single event loop. NOT safe across processes or
threads.
"""
from __future__ import annotations

import asyncio
import dataclasses
from datetime import datetime
from types import TracebackType

from docqueue.core import codec
from docqueue.domain.errors import StoreFault
from docqueue.domain.models import StoreState, new_item_id
from docqueue.ports.store import Document


@dataclasses.dataclass
class InMemoryStore:
    """
    In-process document store.

    Parameters
    ----------
    initial_state : optional pre-populated StoreState (useful for test setup)
    """

    initial_state: StoreState = dataclasses.field(default_factory=StoreState)

    def __post_init__(self) -> None:
        self._state: StoreState = self.initial_state
        self._lock: asyncio.Lock = asyncio.Lock()
        self._closed: bool = False

    async def __aenter__(self) -> "InMemoryStore":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    @property
    def state(self) -> StoreState:
        """Read-only snapshot of every stored item."""
        return self._state

    @property
    def closed(self) -> bool:
        return self._closed

    async def ensure_schema(self) -> None:
        self._check_open()

    async def insert(self, document: Document) -> str:
        self._check_open()
        item = codec.to_item(document, new_item_id())
        async with self._lock:
            self._state = self._state.with_item_added(item)
        return item.id

    async def claim(
        self,
        queue_type: str,
        now: datetime,
        visible_until: datetime,
    ) -> Document | None:
        self._check_open()
        async with self._lock:
            self._state, leased = self._state.with_lease(queue_type, now, visible_until)
        return leased.to_document() if leased is not None else None

    async def delete(self, item_id: str) -> int:
        self._check_open()
        async with self._lock:
            self._state, deleted = self._state.with_item_removed(item_id)
        return deleted

    async def delete_queue(self, queue_type: str) -> int:
        self._check_open()
        async with self._lock:
            self._state, deleted = self._state.without_queue(queue_type)
        return deleted

    async def count(self, queue_type: str) -> int:
        self._check_open()
        async with self._lock:
            return len(self._state.of_type(queue_type))

    async def close(self) -> None:
        self._closed = True

    def _check_open(self) -> None:
        if self._closed:
            raise StoreFault("in-memory store unavailable", RuntimeError("store is closed"))
