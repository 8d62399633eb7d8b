"""
Review history records.

The persisted document keeps the camelCase keys of the file format;
the dataclasses expose snake_case attributes.
"""

from dataclasses import dataclass, field
from typing import Any

from .constants import HISTORY_FORMAT_VERSION


@dataclass(frozen=True)
class ReviewHistoryEntry:
    """
    One review event.

    Attributes:
        date: ISO date (YYYY-MM-DD) of the review.
        response: "easy", "good", "hard" or "reset".
        interval: Interval in days resulting from this review (0 if unknown).
        ease: Ease resulting from this review (0 if unknown).
    """

    date: str
    response: str
    interval: int
    ease: int

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date,
            "response": self.response,
            "interval": self.interval,
            "ease": self.ease,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewHistoryEntry":
        return cls(
            date=data["date"],
            response=data["response"],
            interval=data["interval"],
            ease=data["ease"],
        )


@dataclass
class CardReviewHistory:
    """Complete history of a single item. Entries are in chronological order."""

    created: str
    last_reviewed: str
    history: list[ReviewHistoryEntry] = field(default_factory=list)

    @property
    def lapses(self) -> int:
        return sum(1 for e in self.history if e.response == "reset")

    def to_dict(self) -> dict[str, Any]:
        return {
            "history": [e.to_dict() for e in self.history],
            "created": self.created,
            "lastReviewed": self.last_reviewed,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "CardReviewHistory":
        return cls(
            created=data["created"],
            last_reviewed=data["lastReviewed"],
            history=[ReviewHistoryEntry.from_dict(e) for e in data["history"]],
        )


@dataclass
class ReviewHistoryStoreData:
    """The whole history document; the unit of persistence."""

    last_updated: str
    version: str = HISTORY_FORMAT_VERSION
    cards: dict[str, CardReviewHistory] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "cards": {item_id: h.to_dict() for item_id, h in self.cards.items()},
            "metadata": {"lastUpdated": self.last_updated},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "ReviewHistoryStoreData":
        return cls(
            version=data["version"],
            cards={item_id: CardReviewHistory.from_dict(h) for item_id, h in data["cards"].items()},
            last_updated=data["metadata"]["lastUpdated"],
        )
