"""
Domain models for review scheduling.

These are pure data structures with no I/O or external dependencies.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import date
from enum import Enum


class ReviewResponse(str, Enum):
    """Button pressed by the user when reviewing an item."""

    EASY = "easy"
    GOOD = "good"
    HARD = "hard"
    RESET = "reset"


class ItemKind(str, Enum):
    CARD = "card"
    NOTE = "note"


@dataclass(frozen=True)
class ScheduleInfo:
    """
    Scheduling state of a single review item.

    Attributes:
        due_date: Calendar date the item is next due.
        interval: Days between the last review and the due date (>= 1).
        ease: Fixed-point percentage (250 = 2.50x).
    """

    due_date: date
    interval: int
    ease: int


@dataclass(frozen=True)
class NoteSignals:
    """
    Graph-derived inputs for the initial ease of a note.

    Attributes:
        link_contribution: Weight of the link-graph term, in [0, 1].
        importance: PageRank score of the note itself.
        linked_importance: Sum of PageRank scores of the notes it links to.
        total_importance: Sum of PageRank scores of every note.
        peer_ease: Average ease of the flashcards inside the note, if any.
    """

    link_contribution: float
    importance: float
    linked_importance: float
    total_importance: float
    peer_ease: float | None = None


@dataclass
class ReviewItem(ABC):
    """
    Base for anything that can be reviewed.

    ``item_id`` is the persistent identity used as the history key.
    ``fingerprint`` is a transient content hash, recomputed on every parse.
    It locates a card again after its line has moved and is never stored.
    """

    document: str
    item_id: str | None = None
    schedule: ScheduleInfo | None = None
    fingerprint: str | None = None
    has_changed: bool = False

    @property
    @abstractmethod
    def kind(self) -> ItemKind:
        pass


@dataclass
class Card(ReviewItem):
    """A flashcard: one slot of an inline schedule marker."""

    line_no: int = 0  # 0-based line carrying the marker
    sibling_index: int = 0  # slot inside a multi-card marker
    question: str = ""

    @property
    def kind(self) -> ItemKind:
        return ItemKind.CARD


@dataclass
class Note(ReviewItem):
    """A whole document scheduled through its front matter."""

    links: list[str] = field(default_factory=list)

    @property
    def kind(self) -> ItemKind:
        return ItemKind.NOTE
