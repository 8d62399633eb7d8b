"""
Schedule codec: conversions between ScheduleInfo and the textual annotations
embedded in documents.

Cards use an inline HTML comment holding one slot per sibling card:

    <!--SR:!2024-05-01,3,250,sr_01HV...!2024-05-04,10,270-->

The trailing id is optional (legacy markers have none). Notes use front matter
keys ``sr-due``, ``sr-interval``, ``sr-ease`` and ``sr-id``.

Malformed annotations never raise: the affected slot or note is reported as
unscheduled and the problem is logged.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import date, datetime

from mnemo.application.utils.text import parse_frontmatter, rebuild_markdown_with_frontmatter
from mnemo.domain.constants import (
    CARD_MARKER_PREFIX,
    CARD_MARKER_SUFFIX,
    NOTE_DUE_KEY,
    NOTE_EASE_KEY,
    NOTE_ID_KEY,
    NOTE_INTERVAL_KEY,
)
from mnemo.domain.models import ScheduleInfo

logger = logging.getLogger(__name__)

MARKER_RE = re.compile(re.escape(CARD_MARKER_PREFIX) + r"(.*?)" + re.escape(CARD_MARKER_SUFFIX))
_DATE_RE = re.compile(r"^\d{4}-\d{2}-\d{2}$")
_INT_RE = re.compile(r"^-?\d+$")


@dataclass(frozen=True)
class MarkerSlot:
    schedule: ScheduleInfo
    item_id: str | None = None


@dataclass
class CardMarkerParse:
    """
    Result of parsing one inline marker.

    ``slots[i]`` is None when slot ``i`` was malformed; ``raw[i]`` keeps its
    original text so rewriting the marker does not destroy it.
    """

    slots: list[MarkerSlot | None] = field(default_factory=list)
    raw: list[str] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)

    def writable_slots(self) -> list["MarkerSlot | str"]:
        return [slot if slot is not None else raw for slot, raw in zip(self.slots, self.raw)]


@dataclass
class NoteScheduleParse:
    schedule: ScheduleInfo | None = None
    item_id: str | None = None
    error: str | None = None


# ---------- Card markers ----------


def _parse_date(value: object) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    text = str(value).strip()
    if not _DATE_RE.match(text):
        raise ValueError(f"bad date {text!r}")
    return date.fromisoformat(text)


def _parse_int(value: object, name: str) -> int:
    if isinstance(value, bool):
        raise ValueError(f"bad {name} {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not _INT_RE.match(text):
        raise ValueError(f"bad {name} {text!r}")
    return int(text)


def parse_slot(raw: str) -> MarkerSlot:
    """Parse ``YYYY-MM-DD,interval,ease[,id]``. Raises ValueError if malformed."""
    parts = [p.strip() for p in raw.split(",")]
    if len(parts) not in (3, 4):
        raise ValueError(f"expected 3 or 4 fields, got {len(parts)}")

    schedule = ScheduleInfo(
        due_date=_parse_date(parts[0]),
        interval=_parse_int(parts[1], "interval"),
        ease=_parse_int(parts[2], "ease"),
    )
    item_id = parts[3] if len(parts) == 4 and parts[3] else None
    return MarkerSlot(schedule=schedule, item_id=item_id)


def parse_card_marker(marker_body: str) -> CardMarkerParse:
    """Parse the content between ``<!--SR:`` and ``-->``."""
    result = CardMarkerParse()
    for raw in marker_body.split("!")[1:]:
        result.raw.append(raw)
        try:
            result.slots.append(parse_slot(raw))
        except ValueError as e:
            result.slots.append(None)
            result.errors.append(f"slot {len(result.slots) - 1}: {e}")
    return result


def iter_card_markers(text: str) -> list[tuple[int, CardMarkerParse]]:
    """Return (line_no, parse) for every line carrying a marker."""
    found = []
    for line_no, line in enumerate(text.split("\n")):
        m = MARKER_RE.search(line)
        if not m:
            continue
        parsed = parse_card_marker(m.group(1))
        for err in parsed.errors:
            logger.warning(f"Skipping malformed schedule marker on line {line_no + 1}: {err}")
        found.append((line_no, parsed))
    return found


def format_slot(slot: MarkerSlot) -> str:
    s = slot.schedule
    fields = [s.due_date.isoformat(), str(s.interval), str(s.ease)]
    if slot.item_id:
        fields.append(slot.item_id)
    return ",".join(fields)


def format_card_marker(slots: Sequence[MarkerSlot | str]) -> str:
    """Render a marker; plain strings are written back verbatim."""
    body = "".join("!" + (s if isinstance(s, str) else format_slot(s)) for s in slots)
    return f"{CARD_MARKER_PREFIX}{body}{CARD_MARKER_SUFFIX}"


def apply_card_marker(text: str, line_no: int, marker: str) -> str:
    """Replace the marker on ``line_no``, or append one to that line."""
    lines = text.split("\n")
    if not 0 <= line_no < len(lines):
        raise IndexError(f"line {line_no} out of range (document has {len(lines)} lines)")

    line = lines[line_no]
    if MARKER_RE.search(line):
        lines[line_no] = MARKER_RE.sub(lambda _: marker, line, count=1)
    else:
        lines[line_no] = f"{line} {marker}" if line.strip() else marker
    return "\n".join(lines)


# ---------- Note front matter ----------


def parse_note_schedule(text: str) -> NoteScheduleParse:
    """
    Read a note's schedule from its front matter.

    A note without any schedule keys is simply unscheduled; partial or
    malformed keys are reported in ``error``.
    """
    meta, _ = parse_frontmatter(text)
    if "__yaml_error__" in meta:
        return NoteScheduleParse(error=f"front matter: {meta['__yaml_error__']}")

    raw_id = meta.get(NOTE_ID_KEY)
    item_id = str(raw_id) if raw_id is not None else None

    keys = (NOTE_DUE_KEY, NOTE_INTERVAL_KEY, NOTE_EASE_KEY)
    if not any(k in meta for k in keys):
        return NoteScheduleParse(item_id=item_id)

    try:
        missing = [k for k in keys if k not in meta]
        if missing:
            raise ValueError(f"missing {', '.join(missing)}")
        schedule = ScheduleInfo(
            due_date=_parse_date(meta[NOTE_DUE_KEY]),
            interval=_parse_int(meta[NOTE_INTERVAL_KEY], "interval"),
            ease=_parse_int(meta[NOTE_EASE_KEY], "ease"),
        )
    except ValueError as e:
        return NoteScheduleParse(item_id=item_id, error=str(e))

    return NoteScheduleParse(schedule=schedule, item_id=item_id)


def write_note_schedule(text: str, schedule: ScheduleInfo | None, item_id: str | None) -> str:
    """
    Return ``text`` with the schedule (and id) written into its front matter.

    Other front matter keys and the body are preserved. If the front matter
    cannot be parsed the text is returned unchanged.
    """
    meta, body = parse_frontmatter(text)
    if "__yaml_error__" in meta:
        logger.error(f"Cannot write schedule, front matter is invalid: {meta['__yaml_error__']}")
        return text

    if schedule is not None:
        meta[NOTE_DUE_KEY] = schedule.due_date
        meta[NOTE_INTERVAL_KEY] = schedule.interval
        meta[NOTE_EASE_KEY] = schedule.ease
    if item_id:
        meta[NOTE_ID_KEY] = item_id

    return rebuild_markdown_with_frontmatter(meta, body)
