"""Service for managing stable ids for review items."""

import hashlib
import logging
import re
from collections.abc import Iterable
from typing import Any

from ulid import ULID

from mnemo.domain.constants import ITEM_ID_PREFIX
from mnemo.domain.models import ReviewItem

logger = logging.getLogger(__name__)

_ITEM_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def generate_item_id() -> str:
    """Generate a stable item id using ULID."""
    return f"{ITEM_ID_PREFIX}{ULID()}"


def is_valid_item_id(value: Any) -> bool:
    """An id is any non-empty URL-safe token."""
    return isinstance(value, str) and bool(_ITEM_ID_RE.match(value))


def content_fingerprint(text: str) -> str:
    """
    Hash of an item's content.

    Only used to match legacy data keyed by content; never a persistent id.
    """
    return hashlib.md5(text.strip().encode("utf-8")).hexdigest()


def ensure_id(item: ReviewItem) -> str:
    """
    Return the item's id, assigning a fresh one if it has none or an invalid one.
    Assigning marks the item as changed so its annotation gets rewritten.
    """
    if is_valid_item_id(item.item_id):
        return item.item_id  # type: ignore[return-value]

    if item.item_id:
        logger.warning(f"Replacing invalid id {item.item_id!r} in {item.document}")

    item.item_id = generate_item_id()
    item.has_changed = True
    return item.item_id


def migrate(items: Iterable[ReviewItem]) -> int:
    """
    Ensures every item has a stable id.
    Returns the number of ids assigned.
    """
    ids_assigned = 0
    for item in items:
        before = item.item_id
        if ensure_id(item) != before:
            ids_assigned += 1
    return ids_assigned
