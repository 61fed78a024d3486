from datetime import UTC, datetime, timedelta, timezone

import pytest
from bson import ObjectId

from docqueue.domain.errors import StoreFault
from docqueue.domain.models import (
    EMPTY,
    Empty,
    Failure,
    QueueItem,
    StoreState,
    as_utc,
    new_item_id,
)

T0 = datetime(2024, 1, 1, 12, 0, tzinfo=UTC)


def _item(
    queue_type: str = "q",
    visible_at: datetime = T0,
    remaining: int = 3,
    payload: object = "x",
) -> QueueItem:
    return QueueItem(
        id=new_item_id(),
        queue_type=queue_type,
        visible_at=visible_at,
        remaining_attempts=remaining,
        payload=payload,
    )


# ---------------------------------------------------------------------------
# QueueItem
# ---------------------------------------------------------------------------


def test_item_validates_from_document_keys():
    oid = ObjectId()
    item = QueueItem.from_document(
        {
            "_id": oid,
            "queueType": "emails",
            "visibleAt": T0,
            "remainingAttempts": 2,
            "payload": {"to": "a@b.c"},
        }
    )
    assert item.id == str(oid)
    assert item.queue_type == "emails"
    assert item.remaining_attempts == 2


def test_item_to_document_uses_store_keys():
    doc = _item().to_document()
    assert set(doc) == {"_id", "queueType", "visibleAt", "remainingAttempts", "payload"}


def test_item_sent_at_derived_from_id():
    oid = ObjectId.from_datetime(T0)
    item = QueueItem(
        id=str(oid), queue_type="q", visible_at=T0, remaining_attempts=1
    )
    assert item.sent_at == T0


def test_item_sent_at_none_for_foreign_id():
    item = QueueItem(id="custom", queue_type="q", visible_at=T0, remaining_attempts=1)
    assert item.sent_at is None


def test_item_naive_visible_at_becomes_utc():
    item = _item(visible_at=datetime(2024, 1, 1, 12, 0))
    assert item.visible_at == T0


def test_item_rejects_empty_queue_type():
    with pytest.raises(Exception):
        _item(queue_type="")


def test_item_rejects_negative_attempts():
    with pytest.raises(Exception):
        _item(remaining=-1)


def test_item_is_frozen():
    item = _item()
    with pytest.raises(Exception):
        item.payload = "other"


def test_as_utc_converts_offsets():
    cet = timezone(timedelta(hours=1))
    assert as_utc(datetime(2024, 1, 1, 13, 0, tzinfo=cet)) == T0


def test_new_item_ids_are_unique_and_ordered():
    a, b = new_item_id(), new_item_id()
    assert a != b
    assert ObjectId(a) < ObjectId(b)


# ---------------------------------------------------------------------------
# Empty / Failure
# ---------------------------------------------------------------------------


def test_empty_is_falsy():
    assert not EMPTY
    assert Empty() == EMPTY


def test_failure_is_falsy_and_keeps_error():
    fault = StoreFault("down", OSError("x"))
    failure = Failure("claim", fault)
    assert not failure
    assert failure.error is fault


# ---------------------------------------------------------------------------
# StoreState
# ---------------------------------------------------------------------------


def test_store_state_defaults():
    state = StoreState()
    assert state.items == ()
    assert state.version == 0


def test_with_item_added_increments_version():
    state = StoreState().with_item_added(_item())
    assert len(state.items) == 1
    assert state.version == 1


def test_find():
    item = _item()
    state = StoreState(items=(item,))
    assert state.find(item.id) is item
    assert state.find("missing") is None


def test_of_type_filters():
    a, b = _item("a"), _item("b")
    state = StoreState(items=(a, b))
    assert state.of_type("a") == (a,)


def test_next_eligible_picks_earliest_visible():
    late = _item(visible_at=T0)
    early = _item(visible_at=T0 - timedelta(seconds=10))
    future = _item(visible_at=T0 + timedelta(seconds=10))
    state = StoreState(items=(late, future, early))
    assert state.next_eligible("q", T0) is early


def test_next_eligible_ignores_other_types_and_exhausted():
    state = StoreState(items=(_item("other"), _item(remaining=0)))
    assert state.next_eligible("q", T0) is None


def test_with_lease_mutates_target():
    item = _item(remaining=3)
    until = T0 + timedelta(seconds=30)
    state, leased = StoreState(items=(item,)).with_lease("q", T0, until)
    assert leased.id == item.id
    assert leased.remaining_attempts == 2
    assert leased.visible_at == until
    assert state.find(item.id) == leased
    assert state.version == 1


def test_with_lease_removes_exhausted_item():
    item = _item(remaining=1)
    state, leased = StoreState(items=(item,)).with_lease("q", T0, T0 + timedelta(seconds=1))
    assert leased.remaining_attempts == 0
    assert state.items == ()


def test_with_lease_no_match_returns_same_state():
    original = StoreState(items=(_item(visible_at=T0 + timedelta(hours=1)),))
    state, leased = original.with_lease("q", T0, T0 + timedelta(seconds=1))
    assert leased is None
    assert state is original


def test_with_item_removed_counts():
    item = _item()
    state, deleted = StoreState(items=(item,)).with_item_removed(item.id)
    assert deleted == 1
    assert state.items == ()
    same, deleted = state.with_item_removed(item.id)
    assert deleted == 0
    assert same is state


def test_without_queue_ignores_visibility_and_attempts():
    items = (
        _item("a", visible_at=T0 + timedelta(days=1)),
        _item("a", remaining=1),
        _item("b"),
    )
    state, deleted = StoreState(items=items).without_queue("a")
    assert deleted == 2
    assert [i.queue_type for i in state.items] == ["b"]
