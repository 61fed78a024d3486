import json
from datetime import UTC, datetime

import pytest

from docqueue.core import codec
from docqueue.domain.errors import StoreFault
from docqueue.domain.models import QueueItem, StoreState


def _item(**overrides) -> QueueItem:
    fields = {
        "_id": "6710d5a2c3f1e2a4b5c6d7e8",
        "queueType": "DEFAULT",
        "visibleAt": datetime(2024, 1, 1, tzinfo=UTC),
        "remainingAttempts": 3,
        "payload": {"a": 1},
    }
    fields.update(overrides)
    return QueueItem.model_validate(fields)


def test_decode_empty_bytes_returns_empty_state():
    state = codec.decode(b"")
    assert isinstance(state, StoreState)
    assert state.items == ()
    assert state.version == 0


def test_encode_uses_document_keys():
    state = StoreState(items=(_item(),), version=1)
    data = json.loads(codec.encode(state))
    assert data["version"] == 1
    [doc] = data["items"]
    assert set(doc) == {"_id", "queueType", "visibleAt", "remainingAttempts", "payload"}
    assert doc["payload"] == {"a": 1}


def test_encode_decode_preserves_items():
    state = StoreState(items=(_item(), _item(_id="6710d5a2c3f1e2a4b5c6d7e9", payload=None)))
    restored = codec.decode(codec.encode(state))
    assert restored == state
    assert restored.items[0].visible_at.tzinfo is not None


def test_decode_invalid_json_raises():
    with pytest.raises(ValueError):
        codec.decode(b"{not json")


def test_to_item_assigns_id():
    item = codec.to_item(
        {
            "queueType": "q",
            "visibleAt": datetime(2024, 1, 1, tzinfo=UTC),
            "remainingAttempts": 1,
            "payload": "x",
        },
        "abc",
    )
    assert item.id == "abc"
    assert item.queue_type == "q"


def test_to_item_rejects_empty_queue_type():
    with pytest.raises(StoreFault):
        codec.to_item(
            {
                "queueType": "",
                "visibleAt": datetime(2024, 1, 1, tzinfo=UTC),
                "remainingAttempts": 1,
                "payload": None,
            },
            "abc",
        )
