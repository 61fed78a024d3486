import asyncio
import json
from datetime import UTC, datetime, timedelta

import pytest

from docqueue.adapters.store.filesystem import LocalFileSystemStore
from docqueue.core.queue import Queue
from docqueue.domain.errors import StoreFault
from docqueue.domain.models import EMPTY, Failure, QueueItem

T0 = datetime(2024, 1, 1, tzinfo=UTC)


def _doc(queue_type: str = "q", attempts: int = 2, payload: object = "x") -> dict:
    return {
        "queueType": queue_type,
        "visibleAt": T0,
        "remainingAttempts": attempts,
        "payload": payload,
    }


async def test_count_nonexistent_file_is_zero(tmp_path):
    store = LocalFileSystemStore(tmp_path / "queue.json")
    assert await store.count("q") == 0


async def test_ensure_schema_creates_file(tmp_path):
    path = tmp_path / "nested" / "queue.json"
    store = LocalFileSystemStore(path)
    await store.ensure_schema()
    assert path.exists()
    assert json.loads(path.read_text()) == {"items": [], "version": 0}


async def test_ensure_schema_keeps_existing_items(tmp_path):
    store = LocalFileSystemStore(tmp_path / "queue.json")
    await store.insert(_doc())
    await store.ensure_schema()
    assert await store.count("q") == 1


async def test_insert_persists_document_shape(tmp_path):
    path = tmp_path / "queue.json"
    store = LocalFileSystemStore(path)
    item_id = await store.insert(_doc(payload={"a": 1}))
    [doc] = json.loads(path.read_text())["items"]
    assert doc["_id"] == item_id
    assert doc["queueType"] == "q"
    assert doc["payload"] == {"a": 1}


async def test_state_survives_new_store_instance(tmp_path):
    path = tmp_path / "queue.json"
    await LocalFileSystemStore(path).insert(_doc())
    assert await LocalFileSystemStore(path).count("q") == 1


async def test_claim_and_exhaust(tmp_path):
    store = LocalFileSystemStore(tmp_path / "queue.json")
    await store.insert(_doc(attempts=1))
    doc = await store.claim("q", T0, T0 + timedelta(seconds=1))
    assert doc["remainingAttempts"] == 0
    assert await store.count("q") == 0
    assert await store.claim("q", T0 + timedelta(hours=1), T0 + timedelta(hours=2)) is None


async def test_delete_and_delete_queue(tmp_path):
    store = LocalFileSystemStore(tmp_path / "queue.json")
    item_id = await store.insert(_doc())
    await store.insert(_doc())
    assert await store.delete(item_id) == 1
    assert await store.delete(item_id) == 0
    assert await store.delete_queue("q") == 1
    assert await store.count("q") == 0


async def test_non_json_payload_raises_store_fault(tmp_path):
    store = LocalFileSystemStore(tmp_path / "queue.json")
    with pytest.raises(StoreFault):
        await store.insert(_doc(payload=object()))


async def test_failed_encode_keeps_existing_items(tmp_path):
    path = tmp_path / "queue.json"
    queue = Queue(LocalFileSystemStore(path), "files")
    for n in range(3):
        await queue.enqueue(n)
    before = path.read_bytes()

    result = await queue.enqueue(object())

    assert isinstance(result, Failure)
    assert await queue.count() == 3
    assert path.read_bytes() == before


async def test_corrupt_file_raises_store_fault(tmp_path):
    path = tmp_path / "queue.json"
    path.write_text("{not json")
    store = LocalFileSystemStore(path)
    with pytest.raises(StoreFault):
        await store.count("q")


async def test_concurrent_claims_across_instances_are_exclusive(tmp_path):
    path = tmp_path / "queue.json"
    await LocalFileSystemStore(path).insert(_doc(attempts=5))
    stores = [LocalFileSystemStore(path) for _ in range(8)]
    results = await asyncio.gather(
        *(s.claim("q", T0, T0 + timedelta(seconds=30)) for s in stores)
    )
    assert sum(r is not None for r in results) == 1


async def test_queue_round_trip(tmp_path):
    async with LocalFileSystemStore(tmp_path / "queue.json") as store:
        queue = Queue(store, "files", max_attempts=3)
        await queue.enqueue({"path": "/tmp/a"})
        item = await queue.claim()
        assert isinstance(item, QueueItem)
        assert item.payload == {"path": "/tmp/a"}
        assert item.remaining_attempts == 2
        assert await queue.claim() is EMPTY
        assert await queue.acknowledge(item) == 1
        assert await queue.count() == 0
