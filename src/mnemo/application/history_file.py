"""Defaults and schema validation for the review history document."""

from datetime import datetime, timezone
from typing import Any

from mnemo.domain.constants import HISTORY_FORMAT_VERSION
from mnemo.domain.history import ReviewHistoryStoreData

VALID_RESPONSES = frozenset({"easy", "good", "hard", "reset"})


def utc_timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def create_default_review_history_store() -> ReviewHistoryStoreData:
    return ReviewHistoryStoreData(
        version=HISTORY_FORMAT_VERSION,
        cards={},
        last_updated=utc_timestamp(),
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def _validate_entry(entry: Any) -> bool:
    if not isinstance(entry, dict):
        return False
    if not isinstance(entry.get("date"), str):
        return False
    if entry.get("response") not in VALID_RESPONSES:
        return False
    return _is_int(entry.get("interval")) and _is_int(entry.get("ease"))


def _validate_card_history(record: Any) -> bool:
    if not isinstance(record, dict):
        return False
    if not isinstance(record.get("history"), list):
        return False
    if not isinstance(record.get("created"), str):
        return False
    if not isinstance(record.get("lastReviewed"), str):
        return False
    return all(_validate_entry(e) for e in record["history"])


def validate_review_history_store(data: Any) -> bool:
    """
    Check that a parsed JSON document has the review history shape.

    Every required field must be present with the right primitive type:
    version (str), cards (mapping of id -> record), metadata.lastUpdated (str).
    """
    if not isinstance(data, dict):
        return False
    if not isinstance(data.get("version"), str):
        return False
    cards = data.get("cards")
    if not isinstance(cards, dict):
        return False
    metadata = data.get("metadata")
    if not isinstance(metadata, dict):
        return False
    if not isinstance(metadata.get("lastUpdated"), str):
        return False
    return all(
        isinstance(item_id, str) and _validate_card_history(record)
        for item_id, record in cards.items()
    )
