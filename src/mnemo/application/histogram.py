"""
Due-date histogram used for load balancing.

This is a pure in-memory structure with no I/O.
"""

from collections import Counter
from collections.abc import Iterable
from datetime import date, timedelta

from mnemo.domain.models import ScheduleInfo


class DueDateHistogram:
    """
    Count of items scheduled due on each calendar date.

    Rebuilt at the start of every sync pass, then incremented by each
    scheduling decision made during the pass.
    """

    def __init__(self) -> None:
        self._counts: Counter[date] = Counter()

    def increment(self, due: date) -> None:
        self._counts[due] += 1

    def count(self, due: date) -> int:
        return self._counts.get(due, 0)

    def build(self, schedules: Iterable[ScheduleInfo | None]) -> None:
        """Reset and repopulate from every known schedule."""
        self._counts.clear()
        for info in schedules:
            if info is not None:
                self.increment(info.due_date)

    def find_balanced_date(self, candidate: date, window: int) -> date:
        """
        Pick the least-loaded date in ``[candidate, candidate + window]``.

        Ties go to the date closest to the candidate. The result is never
        earlier than the candidate, so balancing can only postpone a review.
        """
        best = candidate
        best_count = self.count(candidate)
        for offset in range(1, max(0, window) + 1):
            day = candidate + timedelta(days=offset)
            c = self.count(day)
            if c < best_count:
                best, best_count = day, c
        return best

    @property
    def total(self) -> int:
        return sum(self._counts.values())

    def items(self) -> list[tuple[date, int]]:
        return sorted(self._counts.items())
