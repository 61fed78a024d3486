"""
Queue — delayed, retryable work queue over a DocumentStorePort.

Every operation is a single round trip to the store:

  enqueue     insert a document with a visibility time and attempt budget
  claim       atomically lease the earliest visible document
  acknowledge delete a document by id after successful processing
  purge       delete every document of this queue type
  count       count every document of this queue type

Lease / retry
-------------
A claim pushes visibleAt forward by the lease and spends one attempt. If the
caller never acknowledges, the item becomes claimable again once the lease
lapses. The claim that spends the last attempt also removes the item, so an
item is delivered at most max_attempts times.

Exclusivity is delegated entirely to the store's atomic find-and-modify. The
queue holds no in-memory state between calls and takes no locks, so any
number of Queue instances in any number of processes may share one store.

Faults
------
StoreFault is caught at each operation boundary, logged, and returned as a
Failure. Absence is returned as Empty (claim) or 0 (acknowledge), never
raised.
"""
from __future__ import annotations

import dataclasses
import logging
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any, Callable

from pydantic import ValidationError

from docqueue.domain.errors import StoreFault
from docqueue.domain.models import (
    DEFAULT_QUEUE_TYPE,
    EMPTY,
    Empty,
    Failure,
    QueueItem,
    as_utc,
    utc_now,
)
from docqueue.ports.store import DocumentStorePort

if TYPE_CHECKING:
    from docqueue.config import QueueSettings

logger = logging.getLogger(__name__)

MIN_LEASE_SECONDS = 1.0

Delay = timedelta | float | datetime


@dataclasses.dataclass
class Queue:
    """
    One logical queue, partitioned from its neighbours by queue_type.

    Parameters
    ----------
    store         : any DocumentStorePort; may be shared by many queues
    queue_type    : partition key (empty falls back to "DEFAULT")
    max_attempts  : default number of claims before an item is removed
    lease_seconds : default time a claimed item stays hidden (min 1 second)
    clock         : returns the current aware UTC time
    """

    store: DocumentStorePort
    queue_type: str = DEFAULT_QUEUE_TYPE
    max_attempts: int = 5
    lease_seconds: float = 300
    clock: Callable[[], datetime] = utc_now

    def __post_init__(self) -> None:
        if not self.queue_type:
            self.queue_type = DEFAULT_QUEUE_TYPE
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {self.max_attempts}")

    @classmethod
    def from_settings(
        cls,
        store: DocumentStorePort,
        settings: QueueSettings,
        **overrides: Any,
    ) -> "Queue":
        """Build a queue from QueueSettings; keyword overrides win."""
        params: dict[str, Any] = {
            "queue_type": settings.type,
            "max_attempts": settings.max_attempts,
            "lease_seconds": settings.lease_seconds,
        }
        params.update(overrides)
        return cls(store=store, **params)

    # ------------------------------------------------------------------ #
    # Write operations                                                     #
    # ------------------------------------------------------------------ #

    async def enqueue(
        self,
        payload: Any = None,
        delay: Delay | None = None,
        max_attempts: int | None = None,
        *,
        delay_until: datetime | None = None,
    ) -> QueueItem | Failure:
        """
        Add an item to the queue.

        delay may be a timedelta, a number of seconds, or an absolute
        datetime; delay_until (absolute) wins over delay. Without either the
        item is claimable immediately.
        """
        attempts = self.max_attempts if max_attempts is None else max_attempts
        if attempts < 1:
            raise ValueError(f"max_attempts must be >= 1, got {attempts}")

        visible_at = self._visible_at(delay, delay_until)
        document = {
            "queueType": self.queue_type,
            "visibleAt": visible_at,
            "remainingAttempts": attempts,
            "payload": payload,
        }
        try:
            item_id = await self.store.insert(document)
        except StoreFault as exc:
            return self._failure("enqueue", exc)

        return QueueItem(
            id=item_id,
            queue_type=self.queue_type,
            visible_at=visible_at,
            remaining_attempts=attempts,
            payload=payload,
        )

    async def claim(self, lease_seconds: float | None = None) -> QueueItem | Empty | Failure:
        """
        Lease the next visible item.

        Returns the item as it is after the claim (visibility pushed forward,
        one attempt spent), EMPTY when nothing is visible, or a Failure.
        """
        lease = self.lease_seconds if lease_seconds is None else lease_seconds
        if isinstance(lease, bool):
            raise TypeError("lease_seconds must be a number of seconds, got bool")
        lease = max(MIN_LEASE_SECONDS, lease)

        now = self.clock()
        visible_until = _shifted(now, lease)
        try:
            document = await self.store.claim(self.queue_type, now, visible_until)
            if document is None:
                return EMPTY
            item = QueueItem.from_document(document)
        except ValidationError as exc:
            return self._failure(
                "claim", StoreFault("store returned a malformed document", exc)
            )
        except StoreFault as exc:
            return self._failure("claim", exc)

        if item.remaining_attempts == 0:
            logger.info(
                "Item %s on queue %r used its last attempt and was removed",
                item.id,
                self.queue_type,
            )
        return item

    async def acknowledge(self, item: QueueItem | str | None) -> int | Failure:
        """
        Delete a processed item. Returns the number deleted (0 or 1).

        Must be called after successful processing, otherwise the item is
        redelivered once its lease lapses.
        """
        if item is None:
            return 0
        item_id = item.id if isinstance(item, QueueItem) else item
        if not item_id:
            return 0
        try:
            return await self.store.delete(item_id)
        except StoreFault as exc:
            return self._failure("acknowledge", exc)

    async def purge(self) -> int | Failure:
        """Delete every item of this queue, including future ones."""
        try:
            deleted = await self.store.delete_queue(self.queue_type)
        except StoreFault as exc:
            return self._failure("purge", exc)
        logger.debug("Purged %d item(s) from queue %r", deleted, self.queue_type)
        return deleted

    # ------------------------------------------------------------------ #
    # Read operations                                                      #
    # ------------------------------------------------------------------ #

    async def count(self) -> int | Failure:
        """Number of items in this queue, including ones not yet visible."""
        try:
            return await self.store.count(self.queue_type)
        except StoreFault as exc:
            return self._failure("count", exc)

    # ------------------------------------------------------------------ #
    # Lifecycle                                                            #
    # ------------------------------------------------------------------ #

    async def ensure_schema(self) -> Failure | None:
        """Run the store's one-time collection/index bootstrap."""
        try:
            await self.store.ensure_schema()
        except StoreFault as exc:
            return self._failure("ensure_schema", exc)
        return None

    async def close(self) -> None:
        """Close the store handle. Affects every queue sharing the store."""
        await self.store.close()

    # ------------------------------------------------------------------ #
    # Internals                                                            #
    # ------------------------------------------------------------------ #

    def _visible_at(self, delay: Delay | None, delay_until: datetime | None) -> datetime:
        if delay_until is not None:
            return as_utc(delay_until)
        match delay:
            case None:
                return self.clock()
            case datetime():
                return as_utc(delay)
            case timedelta():
                return _shifted(self.clock(), delay)
            case bool():
                raise TypeError("delay must be a timedelta, seconds or datetime, got bool")
            case int() | float():
                return _shifted(self.clock(), delay)
            case _:
                raise TypeError(
                    f"delay must be a timedelta, seconds or datetime, got {type(delay).__name__}"
                )

    def _failure(self, operation: str, exc: StoreFault) -> Failure:
        logger.warning(
            "Queue %r %s failed: %s", self.queue_type, operation, exc, exc_info=exc
        )
        return Failure(operation=operation, error=exc)


def _shifted(base: datetime, offset: timedelta | float) -> datetime:
    """base + offset (seconds or timedelta); out-of-range results raise ValueError."""
    try:
        if not isinstance(offset, timedelta):
            offset = timedelta(seconds=offset)
        return base + offset
    except OverflowError as exc:
        raise ValueError(f"offset {offset!r} puts the time out of range") from exc
