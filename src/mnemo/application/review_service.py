"""
Review service: application layer orchestrator.

Runs a sync pass over the document store (link graph, importance scores,
due-date histogram) and applies reviews to notes and cards: schedule update,
annotation rewrite, history append.
"""

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import date

from mnemo.application.codec import (
    MarkerSlot,
    apply_card_marker,
    format_card_marker,
    iter_card_markers,
    parse_note_schedule,
    write_note_schedule,
)
from mnemo.application.graph_resolver import (
    build_link_graph,
    compute_importance,
    linked_importance,
)
from mnemo.application.histogram import DueDateHistogram
from mnemo.application.history_store import ReviewHistoryStore
from mnemo.application.id_service import content_fingerprint, ensure_id, migrate
from mnemo.application.scheduler import ScheduleEngine, link_contribution
from mnemo.domain.constants import PAGERANK_DAMPING, PAGERANK_EPSILON, PAGERANK_MAX_ITERATIONS
from mnemo.domain.graph import LinkGraph
from mnemo.domain.interfaces import DocumentStore
from mnemo.domain.models import (
    Card,
    Note,
    NoteSignals,
    ReviewItem,
    ReviewResponse,
    ScheduleInfo,
)

logger = logging.getLogger(__name__)


@dataclass
class SyncPass:
    """State shared by every scheduling decision of one pass."""

    today: date
    documents: list[str]
    graph: LinkGraph
    importance: dict[str, float]
    histogram: DueDateHistogram

    @property
    def total_importance(self) -> float:
        return sum(self.importance.values())


@dataclass
class MigrationProgress:
    """Outcome of an identity backfill over the whole store."""

    total_items: int = 0
    ids_assigned: int = 0
    errors: list[str] = field(default_factory=list)


def _peer_ease(text: str) -> float | None:
    """Average ease of the flashcards scheduled inside a document."""
    eases = [
        slot.schedule.ease
        for _, parsed in iter_card_markers(text)
        for slot in parsed.slots
        if slot is not None
    ]
    return sum(eases) / len(eases) if eases else None


def _strip_marker(line: str) -> str:
    return line.split("<!--SR:", 1)[0].strip()


def _locate_card(text: str, card: Card) -> int:
    """Line of ``card``, following its fingerprint when the line has moved."""
    lines = text.split("\n")
    if 0 <= card.line_no < len(lines):
        if content_fingerprint(_strip_marker(lines[card.line_no])) == card.fingerprint:
            return card.line_no
    for line_no, line in enumerate(lines):
        question = _strip_marker(line)
        if question and content_fingerprint(question) == card.fingerprint:
            logger.info(
                f"{card.document}: card moved from line {card.line_no + 1} to {line_no + 1}"
            )
            return line_no
    return card.line_no


class ReviewService:
    """
    Applies reviews against a document store.

    Depends on the DocumentStore port, not on the filesystem. A pass is
    started explicitly with ``start_pass()``; reviews made before any pass
    start one implicitly.
    """

    def __init__(
        self,
        store: DocumentStore,
        history: ReviewHistoryStore,
        engine: ScheduleEngine | None = None,
        damping_factor: float = PAGERANK_DAMPING,
        epsilon: float = PAGERANK_EPSILON,
        max_iterations: int = PAGERANK_MAX_ITERATIONS,
    ):
        self.store = store
        self.history = history
        self.engine = engine or ScheduleEngine()
        self.damping_factor = damping_factor
        self.epsilon = epsilon
        self.max_iterations = max_iterations
        self._pass: SyncPass | None = None

    # ---------- Pass ----------

    def start_pass(self, today: date | None = None) -> SyncPass:
        """
        Rebuild the pass-scoped state from the current documents.

        Discards the previous pass: importance scores and the histogram are
        never carried over.
        """
        today = today or date.today()
        documents = self.store.list_documents()
        link_map = {doc: self.store.get_links(doc) for doc in documents}
        graph = build_link_graph(documents, link_map)
        importance = compute_importance(
            graph,
            damping_factor=self.damping_factor,
            epsilon=self.epsilon,
            max_iterations=self.max_iterations,
        )

        schedules: list[ScheduleInfo | None] = []
        for doc in documents:
            text = self._read(doc)
            if text is None:
                continue
            note = parse_note_schedule(text)
            if note.error:
                logger.warning(f"[pass] {doc}: ignoring note schedule ({note.error})")
            schedules.append(note.schedule)
            for _, parsed in iter_card_markers(text):
                schedules.extend(slot.schedule for slot in parsed.slots if slot is not None)

        histogram = DueDateHistogram()
        histogram.build(schedules)

        self._pass = SyncPass(
            today=today,
            documents=documents,
            graph=graph,
            importance=importance,
            histogram=histogram,
        )
        logger.info(
            f"[pass] {len(documents)} documents, {graph.edge_count} links, "
            f"{histogram.total} scheduled items"
        )
        return self._pass

    def _read(self, document: str) -> str | None:
        try:
            return self.store.get_text(document)
        except (OSError, UnicodeDecodeError) as e:
            logger.warning(f"Skipping {document}: {e}")
            return None

    @property
    def current_pass(self) -> SyncPass:
        if self._pass is None:
            return self.start_pass()
        return self._pass

    def note_signals(self, document: str, text: str) -> NoteSignals:
        p = self.current_pass
        links = p.graph.get_links(document)
        return NoteSignals(
            link_contribution=link_contribution(len(links), self.engine.settings.max_link_factor),
            importance=p.importance.get(document, 0.0),
            linked_importance=linked_importance(p.graph, p.importance, document),
            total_importance=p.total_importance,
            peer_ease=_peer_ease(text),
        )

    # ---------- Reviews ----------

    async def review_note(
        self,
        document: str,
        response: ReviewResponse,
        today: date | None = None,
    ) -> ScheduleInfo:
        """Review a whole note and persist its new schedule in the front matter."""
        p = self.current_pass
        today = today or p.today
        text = self.store.get_text(document)

        parsed = parse_note_schedule(text)
        if parsed.error:
            logger.warning(f"{document}: treating note as unscheduled ({parsed.error})")

        note = Note(
            document=document,
            item_id=parsed.item_id,
            schedule=parsed.schedule,
            links=p.graph.get_links(document),
        )
        new_schedule = self.engine.update(
            note.schedule,
            response,
            today,
            histogram=p.histogram,
            note_signals=self.note_signals(document, text),
        )
        note.schedule = new_schedule
        item_id = ensure_id(note)

        self.store.write_text(document, write_note_schedule(text, new_schedule, item_id))
        await self.history.record_review(item_id, response, new_schedule, today=today)

        logger.info(
            f"[review] {document} {ReviewResponse(response).value}: "
            f"due {new_schedule.due_date} interval={new_schedule.interval} ease={new_schedule.ease}"
        )
        return new_schedule

    async def review_card(
        self,
        card: Card,
        response: ReviewResponse,
        today: date | None = None,
    ) -> ScheduleInfo:
        """
        Review one flashcard and rewrite its marker slot.

        The marker currently in the document wins over the schedule carried by
        ``card``; the card's id is used when the marker slot has none. A card
        carrying a fingerprint is found again by content if its line moved.
        """
        p = self.current_pass
        today = today or p.today
        text = self.store.get_text(card.document)

        if card.fingerprint is not None:
            card.line_no = _locate_card(text, card)

        markers = dict(iter_card_markers(text))
        slots = markers[card.line_no].writable_slots() if card.line_no in markers else []

        if card.sibling_index < len(slots) and isinstance(slots[card.sibling_index], MarkerSlot):
            current: MarkerSlot = slots[card.sibling_index]  # type: ignore[assignment]
            card.schedule = current.schedule
            card.item_id = current.item_id or card.item_id
        if card.question and card.fingerprint is None:
            card.fingerprint = content_fingerprint(card.question)

        new_schedule = self.engine.update(card.schedule, response, today, histogram=p.histogram)
        card.schedule = new_schedule
        item_id = ensure_id(card)

        new_slot = MarkerSlot(schedule=new_schedule, item_id=item_id)
        if card.sibling_index < len(slots):
            slots[card.sibling_index] = new_slot
        else:
            if card.sibling_index > len(slots):
                logger.warning(
                    f"{card.document}:{card.line_no + 1}: sibling {card.sibling_index} "
                    f"has no preceding slots, appending at position {len(slots)}"
                )
            slots.append(new_slot)

        new_text = apply_card_marker(text, card.line_no, format_card_marker(slots))
        self.store.write_text(card.document, new_text)
        await self.history.record_review(item_id, response, new_schedule, today=today)
        return new_schedule

    # ---------- Identity backfill ----------

    def _items_in(self, document: str, text: str) -> list[ReviewItem]:
        """Note and Card items scheduled in one document; malformed slots are skipped."""
        items: list[ReviewItem] = []

        note = parse_note_schedule(text)
        if note.schedule is not None or note.item_id is not None:
            items.append(Note(document=document, item_id=note.item_id, schedule=note.schedule))

        lines = text.split("\n")
        for line_no, parsed in iter_card_markers(text):
            question = _strip_marker(lines[line_no])
            for index, slot in enumerate(parsed.slots):
                if slot is None:
                    continue
                items.append(
                    Card(
                        document=document,
                        item_id=slot.item_id,
                        schedule=slot.schedule,
                        fingerprint=content_fingerprint(question) if question else None,
                        line_no=line_no,
                        sibling_index=index,
                        question=question,
                    )
                )
        return items

    def collect_items(self) -> list[ReviewItem]:
        """Build Note and Card items for everything scheduled in the store."""
        items: list[ReviewItem] = []
        for doc in self.store.list_documents():
            text = self._read(doc)
            if text is not None:
                items.extend(self._items_in(doc, text))
        return items

    def assign_item_ids(self, dry_run: bool = False) -> MigrationProgress:
        """
        Scans the store and ensures every scheduled item has a stable id.

        A document that cannot be read or written is recorded in
        ``errors`` and the backfill moves on to the next one.
        """
        progress = MigrationProgress()

        by_doc: dict[str, list[ReviewItem]] = defaultdict(list)
        for doc in self.store.list_documents():
            try:
                text = self.store.get_text(doc)
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping {doc}: {e}")
                progress.errors.append(f"{doc}: {e}")
                continue

            items = self._items_in(doc, text)
            progress.total_items += len(items)
            migrate(items)
            by_doc[doc] = [item for item in items if item.has_changed]

        for doc, changed in by_doc.items():
            if not changed:
                continue
            if dry_run:
                logger.info(f"[DRY RUN] Would assign {len(changed)} IDs in {doc}")
                progress.ids_assigned += len(changed)
                continue

            try:
                text = self.store.get_text(doc)
                # Cards first: rewriting front matter shifts the marker line numbers.
                for item in sorted(changed, key=lambda i: isinstance(i, Note)):
                    if isinstance(item, Note):
                        text = write_note_schedule(text, None, item.item_id)
                    elif isinstance(item, Card):
                        text = self._rewrite_card_id(text, item)
                self.store.write_text(doc, text)
            except (OSError, UnicodeDecodeError) as e:
                logger.error(f"Failed to assign IDs in {doc}: {e}")
                progress.errors.append(f"{doc}: {e}")
                continue

            progress.ids_assigned += len(changed)
            logger.info(f"Assigned {len(changed)} IDs in {doc}")

        return progress

    @staticmethod
    def _rewrite_card_id(text: str, card: Card) -> str:
        markers = dict(iter_card_markers(text))
        slots = markers[card.line_no].writable_slots()
        slot = slots[card.sibling_index]
        if not isinstance(slot, MarkerSlot):
            return text
        slots[card.sibling_index] = MarkerSlot(schedule=slot.schedule, item_id=card.item_id)
        return apply_card_marker(text, card.line_no, format_card_marker(slots))
