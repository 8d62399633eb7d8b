import asyncio
import json
import threading
import time
from datetime import date

import pytest

from mnemo.application.history_file import (
    create_default_review_history_store,
    validate_review_history_store,
)
from mnemo.application.history_store import ReviewHistoryStore
from mnemo.domain.interfaces import HistoryBackend
from mnemo.domain.models import ReviewResponse, ScheduleInfo
from mnemo.infrastructure.history_backend import FileHistoryBackend

DAY = date(2024, 5, 1)
SCHEDULE = ScheduleInfo(due_date=date(2024, 5, 4), interval=3, ease=250)


class MemoryBackend(HistoryBackend):
    """Records every write in order."""

    def __init__(self, content: str | None = None, fail_writes: bool = False):
        self.content = content
        self.fail_writes = fail_writes
        self.writes: list[str] = []

    def exists(self) -> bool:
        return self.content is not None

    def read_text(self) -> str:
        assert self.content is not None
        return self.content

    def ensure_parent(self) -> None:
        pass

    def write_text(self, content: str) -> None:
        if self.fail_writes:
            raise PermissionError("read-only")
        self.writes.append(content)
        self.content = content



class SlowBackend(MemoryBackend):
    """Takes a while to write and tracks how many writes overlap."""

    def __init__(self):
        super().__init__()
        self._lock = threading.Lock()
        self.in_flight = 0
        self.max_in_flight = 0

    def write_text(self, content: str) -> None:
        with self._lock:
            self.in_flight += 1
            self.max_in_flight = max(self.max_in_flight, self.in_flight)
        time.sleep(0.02)
        super().write_text(content)
        with self._lock:
            self.in_flight -= 1

@pytest.fixture
def backend():
    return MemoryBackend()


@pytest.fixture
def store(backend):
    # record_review initializes on first use
    return ReviewHistoryStore(backend)


@pytest.mark.asyncio
async def test_missing_file_starts_empty(backend):
    store = ReviewHistoryStore(backend)
    assert not store.is_initialized
    assert store.get_history("sr_A") is None

    await store.initialize()
    assert store.is_initialized
    assert store.get_all_history().cards == {}


@pytest.mark.asyncio
async def test_initialize_is_idempotent(backend):
    store = ReviewHistoryStore(backend)
    await asyncio.gather(store.initialize(), store.initialize())
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.initialize()
    assert store.get_history("sr_A") is not None


@pytest.mark.asyncio
async def test_record_visible_before_flush(store, backend):
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)

    record = store.get_history("sr_A")
    assert record is not None
    assert record.created == "2024-05-01"
    assert record.last_reviewed == "2024-05-01"
    assert [(e.response, e.interval, e.ease) for e in record.history] == [("good", 3, 250)]

    await store.flush()
    assert store.pending_writes == 0
    assert len(backend.writes) == 1


@pytest.mark.asyncio
async def test_history_appends_in_order(store):
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.record_review("sr_A", ReviewResponse.RESET, None, today=date(2024, 5, 4))
    await store.flush()

    record = store.get_history("sr_A")
    assert [e.response for e in record.history] == ["good", "reset"]
    assert record.history[1].interval == 0
    assert record.created == "2024-05-01"
    assert record.last_reviewed == "2024-05-04"
    assert record.lapses == 1


@pytest.mark.asyncio
async def test_accepts_plain_string_response(store):
    await store.record_review("sr_A", "easy", SCHEDULE, today=DAY)
    assert store.get_history("sr_A").history[0].response == "easy"


@pytest.mark.asyncio
async def test_invalid_response_raises(store):
    with pytest.raises(ValueError):
        await store.record_review("sr_A", "meh", SCHEDULE, today=DAY)


@pytest.mark.asyncio
async def test_empty_id_is_ignored(store, backend, caplog):
    await store.record_review("", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.flush()
    assert store.get_all_history().cards == {}
    assert backend.writes == []
    assert "item id is missing" in caplog.text


@pytest.mark.asyncio
async def test_queries_return_copies(store):
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)

    record = store.get_history("sr_A")
    record.history.clear()
    snapshot = store.get_all_history()
    snapshot.cards.clear()

    assert len(store.get_history("sr_A").history) == 1
    assert "sr_A" in store.get_all_history().cards


@pytest.mark.asyncio
async def test_writes_land_in_call_order(store, backend):
    for i in range(5):
        await store.record_review(f"sr_{i}", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.flush()

    assert len(backend.writes) == 5
    # Each write contains at least as many items as the one before it
    sizes = [len(json.loads(w)["cards"]) for w in backend.writes]
    assert sizes == sorted(sizes)
    assert sizes[-1] == 5


@pytest.mark.asyncio
async def test_round_trip_through_new_instance(store, backend):
    await store.record_review("sr_A", ReviewResponse.HARD, SCHEDULE, today=DAY)
    await store.record_review("sr_B", ReviewResponse.EASY, SCHEDULE, today=DAY)
    await store.flush()

    saved = json.loads(backend.content)
    assert validate_review_history_store(saved)
    assert saved["version"] == "1.0"
    assert saved["cards"]["sr_A"]["lastReviewed"] == "2024-05-01"

    reopened = ReviewHistoryStore(backend)
    await reopened.initialize()
    assert reopened.get_all_history().cards == store.get_all_history().cards


@pytest.mark.asyncio
async def test_invalid_json_starts_empty(caplog):
    store = ReviewHistoryStore(MemoryBackend(content="{not json"))
    await store.initialize()
    assert store.is_initialized
    assert store.get_all_history().cards == {}
    assert "Failed to load review history" in caplog.text


@pytest.mark.asyncio
async def test_missing_version_starts_empty():
    content = json.dumps({"cards": {}, "metadata": {"lastUpdated": "x"}})
    store = ReviewHistoryStore(MemoryBackend(content=content))
    await store.initialize()
    assert store.get_all_history().version == "1.0"
    assert store.get_all_history().cards == {}


@pytest.mark.asyncio
async def test_write_errors_are_logged_not_raised(caplog):
    store = ReviewHistoryStore(MemoryBackend(fail_writes=True))
    await store.initialize()
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.flush()

    assert "Error saving review history" in caplog.text
    assert store.get_history("sr_A") is not None


@pytest.mark.asyncio
async def test_record_initializes_on_demand(backend):
    store = ReviewHistoryStore(backend)
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    assert store.is_initialized
    await store.flush()


@pytest.mark.asyncio
async def test_file_backend_round_trip(tmp_path):
    path = tmp_path / "nested" / "dir" / "history.json"
    store = ReviewHistoryStore(FileHistoryBackend(path))
    await store.initialize()
    await store.record_review("sr_A", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    await store.flush()

    assert path.is_file()
    assert list(path.parent.glob("*.tmp")) == []

    reopened = ReviewHistoryStore(FileHistoryBackend(path))
    await reopened.initialize()
    assert reopened.get_history("sr_A").history[0].ease == 250


def test_validate_review_history_store():
    good = create_default_review_history_store().to_dict()
    assert validate_review_history_store(good)

    good["cards"]["sr_A"] = {
        "history": [{"date": "2024-05-01", "response": "good", "interval": 3, "ease": 250}],
        "created": "2024-05-01",
        "lastReviewed": "2024-05-01",
    }
    assert validate_review_history_store(good)

    bad_entry = json.loads(json.dumps(good))
    bad_entry["cards"]["sr_A"]["history"][0]["ease"] = "250"
    assert not validate_review_history_store(bad_entry)

    bad_response = json.loads(json.dumps(good))
    bad_response["cards"]["sr_A"]["history"][0]["response"] = "again"
    assert not validate_review_history_store(bad_response)

    no_meta = json.loads(json.dumps(good))
    del no_meta["metadata"]
    assert not validate_review_history_store(no_meta)

    assert not validate_review_history_store([])


@pytest.mark.asyncio
async def test_at_most_one_write_in_flight():
    backend = SlowBackend()
    store = ReviewHistoryStore(backend)
    await store.initialize()

    for i in range(6):
        await store.record_review(f"sr_{i}", ReviewResponse.GOOD, SCHEDULE, today=DAY)
    assert store.pending_writes > 0
    await store.flush()

    assert backend.max_in_flight == 1
    assert len(backend.writes) == 6
    assert len(json.loads(backend.content)["cards"]) == 6
