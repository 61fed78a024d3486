"""
Codec — serialize and deserialize StoreState to/from bytes using Pydantic v2.

Used by the adapters that keep a whole collection in one file or object
(LocalFileSystemStore, S3Store). Items are written in their persisted
document shape, so the blob reads like a dump of the MongoDB collection.

Wire format (produced by model_dump_json):
------------------------------------------
{
  "items": [
    {
      "_id": "6710d5a2c3f1e2a4b5c6d7e8",
      "queueType": "DEFAULT",
      "visibleAt": "2024-10-17T09:00:00Z",
      "remainingAttempts": 4,
      "payload": {"to": "user@example.com"}
    }
  ],
  "version": 3
}

Payloads must be JSON-serialisable for these adapters.
"""
from __future__ import annotations

from typing import Any

from pydantic import ValidationError

from docqueue.domain.errors import StoreFault
from docqueue.domain.models import QueueItem, StoreState


def encode(state: StoreState) -> bytes:
    """Serialize StoreState to UTF-8 JSON bytes."""
    return state.model_dump_json(by_alias=True, indent=2).encode("utf-8")


def decode(data: bytes) -> StoreState:
    """Deserialize UTF-8 JSON bytes to StoreState. Empty bytes → empty state."""
    if not data:
        return StoreState()
    return StoreState.model_validate_json(data)


def to_item(document: dict[str, Any], item_id: str) -> QueueItem:
    """
    Validate a new document under a freshly assigned id.

    Raises StoreFault when the document violates the stored shape (empty
    queueType, negative remainingAttempts, ...), the way a schema validator
    rejects an insert.
    """
    try:
        return QueueItem.model_validate({**document, "_id": item_id})
    except ValidationError as exc:
        raise StoreFault("document failed validation", exc) from exc
