"""
Domain models for docqueue — backed by Pydantic v2.

QueueItem mirrors the persisted document shape:

    { _id, queueType, visibleAt, remainingAttempts, payload }

Pydantic aliases map the camelCase store keys onto snake_case attributes, so
a raw document fetched from any adapter can be validated straight into a
QueueItem, and model_dump(by_alias=True) gives back the stored shape.

Empty and Failure are the two non-item results of queue operations. Both are
falsy, so `if item := await queue.claim():` reads naturally, while a match
statement can still tell "nothing to do" from "store unreachable".
"""

from __future__ import annotations

import dataclasses
from datetime import datetime, timezone
from typing import Any

from bson import ObjectId
from pydantic import BaseModel, ConfigDict, Field, field_validator

from docqueue.domain.errors import StoreFault

DEFAULT_QUEUE_TYPE = "DEFAULT"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def as_utc(ts: datetime) -> datetime:
    """Treat naive datetimes as UTC; convert aware ones to UTC."""
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)


def new_item_id() -> str:
    """Fresh time-ordered identifier for adapters without native ids."""
    return str(ObjectId())


class QueueItem(BaseModel):
    """
    A single unit of work stored in the queue.

    id                 — store-assigned ObjectId hex string (time-ordered)
    queue_type         — logical partition; many queues share one store
    visible_at         — UTC time from which the item may be claimed
    remaining_attempts — claims left before the item is removed for good
    payload            — arbitrary value, opaque to the queue
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(alias="_id")
    queue_type: str = Field(alias="queueType", min_length=1)
    visible_at: datetime = Field(alias="visibleAt")
    remaining_attempts: int = Field(alias="remainingAttempts", ge=0)
    payload: Any = None

    @field_validator("id", mode="before")
    @classmethod
    def _stringify_id(cls, v: Any) -> str:
        """Accept a bson ObjectId from MongoDB; keep strings unchanged."""
        if isinstance(v, ObjectId):
            return str(v)
        return v

    @field_validator("visible_at")
    @classmethod
    def _normalise_visible_at(cls, v: datetime) -> datetime:
        return as_utc(v)

    @property
    def sent_at(self) -> datetime | None:
        """Creation time derived from the id, or None for non-ObjectId ids."""
        if not ObjectId.is_valid(self.id):
            return None
        return ObjectId(self.id).generation_time

    @classmethod
    def from_document(cls, document: dict[str, Any]) -> "QueueItem":
        """Validate a raw store document into a QueueItem."""
        return cls.model_validate(document)

    def to_document(self) -> dict[str, Any]:
        """Return the persisted document shape (camelCase keys)."""
        return self.model_dump(by_alias=True)


@dataclasses.dataclass(frozen=True)
class Empty:
    """No eligible item was found. A normal result, not a fault."""

    def __bool__(self) -> bool:
        return False


EMPTY = Empty()


@dataclasses.dataclass(frozen=True)
class Failure:
    """
    A queue operation could not reach a conclusion because the store failed.

    operation — the queue operation that failed ("enqueue", "claim", ...)
    error     — the StoreFault raised by the adapter
    """

    operation: str
    error: StoreFault

    def __bool__(self) -> bool:
        return False


class StoreState(BaseModel):
    """
    Every document of a local or blob-backed store, as one value.

    The in-memory, filesystem and S3 adapters keep their whole collection in
    this shape and implement the store primitives as pure transitions on it,
    so the claim rules live in exactly one place. All mutations return new
    instances.

    items   — stored items across all queue types, in insertion order
    version — monotonically increasing counter, incremented on every mutation
    """

    model_config = ConfigDict(frozen=True)

    items: tuple[QueueItem, ...] = ()
    version: int = 0

    # ------------------------------------------------------------------ #
    # Query helpers                                                        #
    # ------------------------------------------------------------------ #

    def of_type(self, queue_type: str) -> tuple[QueueItem, ...]:
        return tuple(i for i in self.items if i.queue_type == queue_type)

    def find(self, item_id: str) -> QueueItem | None:
        """Return the item with the given id, or None if absent."""
        return next((i for i in self.items if i.id == item_id), None)

    def next_eligible(self, queue_type: str, now: datetime) -> QueueItem | None:
        """The claimable item with the smallest visible_at, if any."""
        eligible = [
            i
            for i in self.items
            if i.queue_type == queue_type
            and i.visible_at <= now
            and i.remaining_attempts > 0
        ]
        if not eligible:
            return None
        return min(eligible, key=lambda i: i.visible_at)

    # ------------------------------------------------------------------ #
    # Mutation helpers — each returns a new StoreState                    #
    # ------------------------------------------------------------------ #

    def with_item_added(self, item: QueueItem) -> "StoreState":
        """Append an item and increment version."""
        return self.model_copy(
            update={"items": self.items + (item,), "version": self.version + 1}
        )

    def with_item_removed(self, item_id: str) -> tuple["StoreState", int]:
        """Remove an item by id. Returns (new_state, deleted_count)."""
        remaining = tuple(i for i in self.items if i.id != item_id)
        deleted = len(self.items) - len(remaining)
        if not deleted:
            return self, 0
        return self.model_copy(update={"items": remaining, "version": self.version + 1}), deleted

    def without_queue(self, queue_type: str) -> tuple["StoreState", int]:
        """Remove every item of a queue type. Returns (new_state, deleted_count)."""
        remaining = tuple(i for i in self.items if i.queue_type != queue_type)
        deleted = len(self.items) - len(remaining)
        if not deleted:
            return self, 0
        return self.model_copy(update={"items": remaining, "version": self.version + 1}), deleted

    def with_lease(
        self,
        queue_type: str,
        now: datetime,
        visible_until: datetime,
    ) -> tuple["StoreState", QueueItem | None]:
        """
        Lease the earliest eligible item of a queue type.

        The leased item has visible_at moved to visible_until and one attempt
        spent. If that was its last attempt it is dropped from the new state
        in the same transition. Returns (new_state, leased_item_or_None).
        """
        target = self.next_eligible(queue_type, now)
        if target is None:
            return self, None

        leased = target.model_copy(
            update={
                "visible_at": max(target.visible_at, as_utc(visible_until)),
                "remaining_attempts": target.remaining_attempts - 1,
            }
        )
        if leased.remaining_attempts == 0:
            new_items = tuple(i for i in self.items if i.id != target.id)
        else:
            new_items = tuple(leased if i.id == target.id else i for i in self.items)
        return (
            self.model_copy(update={"items": new_items, "version": self.version + 1}),
            leased,
        )
