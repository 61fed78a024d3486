"""
LocalFileSystemStore — fcntl.flock-based document store for POSIX systems.

Suitable for local development, single-machine deployments with several
worker processes, or integration tests that need a persistent file rather
than in-memory state.

NOT suitable for multi-machine deployments — use MongoStore or S3Store for
distributed workloads.

Atomicity
---------
Every mutating primitive acquires an exclusive flock on the state file,
reads and decodes the current StoreState, applies one pure transition, and
writes the result back before releasing the lock. claim() is therefore a
find-and-modify that no other process can interleave with, and the removal
of an exhausted item happens inside the same lock scope. count() takes a
shared lock.

Blocking file I/O runs in a worker thread via asyncio.to_thread.

POSIX-only (Linux, macOS). Not compatible with NFS or distributed filesystems.
"""

from __future__ import annotations

import asyncio
import dataclasses
import fcntl
import os
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import Callable, TypeVar

from pydantic import ValidationError

from docqueue.core import codec
from docqueue.domain.errors import StoreFault
from docqueue.domain.models import StoreState, new_item_id
from docqueue.ports.store import Document

T = TypeVar("T")

Transition = Callable[[StoreState], tuple[StoreState, T]]


@dataclasses.dataclass
class LocalFileSystemStore:
    """
    Stores every queue's documents in one local JSON file.

    Parameters
    ----------
    path : path to the JSON state file (parent directory created if absent)
    """

    path: Path

    def __init__(self, path: str | Path) -> None:
        self.path = Path(path)

    async def __aenter__(self) -> "LocalFileSystemStore":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        await self.close()

    async def ensure_schema(self) -> None:
        """Create the state file with an empty collection if absent."""
        await self._run(self._sync_mutate, lambda state: (state, None))

    async def insert(self, document: Document) -> str:
        item = codec.to_item(document, new_item_id())
        await self._run(
            self._sync_mutate, lambda state: (state.with_item_added(item), None)
        )
        return item.id

    async def claim(
        self,
        queue_type: str,
        now: datetime,
        visible_until: datetime,
    ) -> Document | None:
        leased = await self._run(
            self._sync_mutate,
            lambda state: state.with_lease(queue_type, now, visible_until),
        )
        return leased.to_document() if leased is not None else None

    async def delete(self, item_id: str) -> int:
        return await self._run(
            self._sync_mutate, lambda state: state.with_item_removed(item_id)
        )

    async def delete_queue(self, queue_type: str) -> int:
        return await self._run(
            self._sync_mutate, lambda state: state.without_queue(queue_type)
        )

    async def count(self, queue_type: str) -> int:
        state = await self._run(self._sync_read)
        return len(state.of_type(queue_type))

    async def close(self) -> None:
        """Nothing is held open between calls."""

    # ------------------------------------------------------------------ #
    # Synchronous implementations (executed in a thread-pool worker)      #
    # ------------------------------------------------------------------ #

    async def _run(self, fn: Callable[..., T], *args: object) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except StoreFault:
            raise
        except (OSError, ValueError, ValidationError) as exc:
            raise StoreFault(f"state file {self.path} unusable", exc) from exc

    def _sync_read(self) -> StoreState:
        if not self.path.exists():
            return StoreState()
        with open(self.path, "rb") as fh:
            fcntl.flock(fh, fcntl.LOCK_SH)
            try:
                content = fh.read()
            finally:
                fcntl.flock(fh, fcntl.LOCK_UN)
        return codec.decode(content)

    def _sync_mutate(self, transition: Transition[T]) -> T:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd = os.open(str(self.path), os.O_RDWR | os.O_CREAT, 0o644)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)

            existing = os.read(fd, os.fstat(fd).st_size)
            state = codec.decode(existing)
            new_state, result = transition(state)

            if new_state is not state or not existing:
                # Encode before truncating so a bad payload leaves the file intact.
                content = codec.encode(new_state)
                os.ftruncate(fd, 0)
                os.lseek(fd, 0, os.SEEK_SET)
                os.write(fd, content)
        finally:
            fcntl.flock(fd, fcntl.LOCK_UN)
            os.close(fd)

        return result
