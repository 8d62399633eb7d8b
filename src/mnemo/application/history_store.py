"""
Review history store.

Keeps every review event in memory and persists the whole document through
an injected HistoryBackend. Writes are fire-and-forget for the caller but
go through a single-writer gate, so they land one at a time in call order.
"""

import asyncio
import copy
import json
import logging
from datetime import date

from mnemo.application.history_file import (
    create_default_review_history_store,
    utc_timestamp,
    validate_review_history_store,
)
from mnemo.domain.history import CardReviewHistory, ReviewHistoryEntry, ReviewHistoryStoreData
from mnemo.domain.interfaces import HistoryBackend
from mnemo.domain.models import ReviewResponse, ScheduleInfo

logger = logging.getLogger(__name__)


class ReviewHistoryStore:
    """
    Append-only log of review events keyed by item id.

    Lifecycle: ``await initialize()`` once, ``await record_review(...)`` per
    review, ``await flush()`` before shutdown. Tests build independent
    instances on isolated backends.
    """

    def __init__(self, backend: HistoryBackend):
        self._backend = backend
        self._data = create_default_review_history_store()
        self._initialized = False
        self._init_lock = asyncio.Lock()
        self._write_lock = asyncio.Lock()
        self._pending: set[asyncio.Task] = set()

    @property
    def is_initialized(self) -> bool:
        return self._initialized

    @property
    def pending_writes(self) -> int:
        return len(self._pending)

    # ---------- Lifecycle ----------

    async def initialize(self) -> None:
        """
        Load the history document.

        A missing file starts an empty store. An unreadable, unparsable or
        invalid file is logged and replaced by an empty store. Calling this
        again after a successful initialize is a no-op.
        """
        async with self._init_lock:
            if self._initialized:
                return
            try:
                self._data = await asyncio.to_thread(self._load)
            except (OSError, ValueError) as e:
                logger.warning(f"Failed to load review history, creating new store: {e}")
                self._data = create_default_review_history_store()
            self._initialized = True

    def _load(self) -> ReviewHistoryStoreData:
        if not self._backend.exists():
            logger.info("No review history found, starting a new one")
            return create_default_review_history_store()

        parsed = json.loads(self._backend.read_text())
        if not validate_review_history_store(parsed):
            raise ValueError("Invalid review history file format")

        data = ReviewHistoryStoreData.from_dict(parsed)
        logger.debug(f"Loaded review history for {len(data.cards)} items")
        return data

    async def flush(self) -> None:
        """Wait until every scheduled write has completed."""
        while self._pending:
            await asyncio.gather(*list(self._pending))

    # ---------- Recording ----------

    async def record_review(
        self,
        item_id: str,
        response: ReviewResponse,
        schedule_info: ScheduleInfo | None,
        today: date | None = None,
    ) -> None:
        """
        Append a review event and schedule a write.

        The in-memory history is updated before this returns; the write is
        not awaited. ``schedule_info`` is the schedule resulting from the
        review (interval and ease are recorded as 0 when it is None).
        """
        if not self._initialized:
            await self.initialize()

        if not item_id:
            logger.warning("Cannot record review: item id is missing")
            return

        response = ReviewResponse(response)
        day = (today or date.today()).isoformat()
        entry = ReviewHistoryEntry(
            date=day,
            response=response.value,
            interval=schedule_info.interval if schedule_info else 0,
            ease=schedule_info.ease if schedule_info else 0,
        )

        record = self._data.cards.get(item_id)
        if record is None:
            record = CardReviewHistory(created=day, last_reviewed=day)
            self._data.cards[item_id] = record

        record.history.append(entry)
        record.last_reviewed = day

        self._schedule_save()

    def _schedule_save(self) -> None:
        task = asyncio.get_running_loop().create_task(self._save())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _save(self) -> None:
        async with self._write_lock:
            self._data.last_updated = utc_timestamp()
            content = json.dumps(self._data.to_dict(), indent=2)
            try:
                await asyncio.to_thread(self._write, content)
            except OSError as e:
                logger.error(f"Error saving review history: {e}")

    def _write(self, content: str) -> None:
        self._backend.ensure_parent()
        self._backend.write_text(content)

    # ---------- Queries ----------

    def get_history(self, item_id: str) -> CardReviewHistory | None:
        if not self._initialized:
            return None
        record = self._data.cards.get(item_id)
        return copy.deepcopy(record) if record is not None else None

    def get_all_history(self) -> ReviewHistoryStoreData:
        """Return an independent deep copy of the whole store."""
        if not self._initialized:
            return create_default_review_history_store()
        return copy.deepcopy(self._data)
