"""
Schedule engine: interval/ease updates with load balancing.

Pure computation except for the histogram passed in, which is incremented
with every due date the engine hands out.
"""

import logging
import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from decimal import ROUND_HALF_UP, Decimal

from mnemo.application.histogram import DueDateHistogram
from mnemo.domain.constants import (
    BALANCE_WINDOW_FRACTION,
    DEFAULT_BASE_EASE,
    DEFAULT_EASE_STEP,
    DEFAULT_EASY_BONUS,
    DEFAULT_HARD_INTERVAL_FACTOR,
    DEFAULT_MAX_LINK_FACTOR,
    DEFAULT_MIN_EASE,
    LINK_CONTRIBUTION_SATURATION,
    MIN_BALANCE_WINDOW,
)
from mnemo.domain.models import NoteSignals, ReviewResponse, ScheduleInfo

logger = logging.getLogger(__name__)


@dataclass
class SchedulerSettings:
    """Tunables of the schedule engine."""

    base_ease: int = DEFAULT_BASE_EASE
    easy_bonus: float = DEFAULT_EASY_BONUS
    hard_interval_factor: float = DEFAULT_HARD_INTERVAL_FACTOR
    min_ease: int = DEFAULT_MIN_EASE
    ease_step: int = DEFAULT_EASE_STEP
    max_link_factor: float = DEFAULT_MAX_LINK_FACTOR
    load_balance: bool = True
    balance_window_fraction: float = BALANCE_WINDOW_FRACTION


def round_half_up(value: float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero (2.5 -> 3)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def link_contribution(link_count: int, max_link_factor: float = DEFAULT_MAX_LINK_FACTOR) -> float:
    """
    Weight of the link-graph term for a note with ``link_count`` outgoing links.

    Grows logarithmically and saturates at LINK_CONTRIBUTION_SATURATION links.
    """
    if link_count <= 0:
        return 0.0
    growth = min(1.0, math.log(link_count + 0.5) / math.log(LINK_CONTRIBUTION_SATURATION))
    return min(1.0, max(0.0, max_link_factor * growth))


def _as_date(today: date) -> date:
    if isinstance(today, datetime):
        return today.date()
    if not isinstance(today, date):
        raise TypeError(f"today must be a date, got {type(today).__name__}")
    return today


def _is_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


class ScheduleEngine:
    """
    Computes the next schedule of an item from its current schedule and a response.

    Stateless apart from its settings; the histogram is pass-scoped and
    owned by the caller.
    """

    def __init__(self, settings: SchedulerSettings | None = None):
        self.settings = settings or SchedulerSettings()

    # ---------- Initial schedules ----------

    def initial_card_schedule(self, base_ease: int, today: date) -> ScheduleInfo:
        today = _as_date(today)
        ease = max(self.settings.min_ease, base_ease)
        return ScheduleInfo(due_date=today + timedelta(days=1), interval=1, ease=ease)

    def initial_note_schedule(
        self,
        today: date,
        base_ease: int,
        link_contribution: float,
        importance: float,
        linked_importance: float,
        total_importance: float,
        peer_ease: float | None = None,
    ) -> ScheduleInfo:
        """
        Seed a note's ease from the importance of the notes it links to.

        link_ease = linked_importance / total_importance, blended with the
        base ease by ``link_contribution``, then averaged with the ease of the
        note's own flashcards when there are any.
        """
        today = _as_date(today)
        contribution = min(1.0, max(0.0, link_contribution))
        link_ease = linked_importance / total_importance if total_importance > 0 else 0.0

        ease = (1.0 - contribution) * base_ease + contribution * link_ease * base_ease
        if peer_ease is not None:
            ease = (ease + peer_ease) / 2

        final_ease = max(self.settings.min_ease, round_half_up(ease))
        logger.debug(
            f"Initial note ease {final_ease} (importance={importance:.4f}, "
            f"link_ease={link_ease:.4f}, contribution={contribution:.2f}, peer={peer_ease})"
        )
        return ScheduleInfo(due_date=today + timedelta(days=1), interval=1, ease=final_ease)

    # ---------- Updates ----------

    def update(
        self,
        current: ScheduleInfo | None,
        response: ReviewResponse,
        today: date,
        histogram: DueDateHistogram | None = None,
        base_ease: int | None = None,
        note_signals: NoteSignals | None = None,
    ) -> ScheduleInfo:
        """
        Apply a review response.

        A missing or malformed ``current`` schedule is treated as unscheduled
        and gets the initial schedule (the note path when ``note_signals`` is
        given). Out-of-range interval/ease values are clamped.
        """
        if not isinstance(response, ReviewResponse):
            raise TypeError(f"response must be a ReviewResponse, got {type(response).__name__}")
        if current is not None and not isinstance(current, ScheduleInfo):
            raise TypeError(f"current must be a ScheduleInfo, got {type(current).__name__}")
        today = _as_date(today)

        s = self.settings
        base = max(s.min_ease, s.base_ease if base_ease is None else base_ease)

        if current is None or not self._is_well_formed(current):
            if current is not None:
                logger.warning(f"Malformed schedule {current!r}, treating item as unscheduled")
            result = self._initial(today, base, note_signals)
            if histogram is not None:
                histogram.increment(result.due_date)
            return result

        interval = max(1, current.interval)
        ease = max(s.min_ease, current.ease)

        if response == ReviewResponse.RESET:
            result = ScheduleInfo(due_date=today + timedelta(days=1), interval=1, ease=base)
            if histogram is not None:
                histogram.increment(result.due_date)
            return result

        if response == ReviewResponse.HARD:
            new_ease = max(s.min_ease, ease - s.ease_step)
            raw = Decimal(interval) * Decimal(str(s.hard_interval_factor))
        elif response == ReviewResponse.GOOD:
            new_ease = ease
            raw = Decimal(interval) * Decimal(ease) / Decimal(100)
        else:
            new_ease = ease + s.ease_step
            raw = Decimal(interval) * Decimal(ease) / Decimal(100) * Decimal(str(s.easy_bonus))

        new_interval = max(1, round_half_up(raw))
        due = today + timedelta(days=new_interval)

        if histogram is not None:
            if s.load_balance:
                due = histogram.find_balanced_date(due, self.balance_window(new_interval))
            histogram.increment(due)

        return ScheduleInfo(due_date=due, interval=new_interval, ease=new_ease)

    def balance_window(self, interval: int) -> int:
        """Days a due date may be pushed back for an item with this interval."""
        return max(
            MIN_BALANCE_WINDOW,
            round_half_up(Decimal(interval) * Decimal(str(self.settings.balance_window_fraction))),
        )

    def _initial(
        self, today: date, base_ease: int, note_signals: NoteSignals | None
    ) -> ScheduleInfo:
        if note_signals is None:
            return self.initial_card_schedule(base_ease, today)
        return self.initial_note_schedule(
            today,
            base_ease,
            note_signals.link_contribution,
            note_signals.importance,
            note_signals.linked_importance,
            note_signals.total_importance,
            note_signals.peer_ease,
        )

    @staticmethod
    def _is_well_formed(info: ScheduleInfo) -> bool:
        return (
            isinstance(info.due_date, date)
            and _is_int(info.interval)
            and _is_int(info.ease)
        )
