from __future__ import annotations

import logging
from calendar import monthrange
from dataclasses import dataclass
from datetime import MAXYEAR, MINYEAR, date, datetime, time, timedelta
from typing import Optional

from ..csv_codec import parse_local_date
from ..schemas import Event, RecurrenceInterval, RecurrenceRule
from ..tables import EventTable, RecurrenceRuleTable

logger = logging.getLogger(__name__)

DEFAULT_MAX_OCCURRENCES = 50


def _add_months(base: datetime, months: int) -> datetime:
    total_month = (base.month - 1) + months
    year = base.year + total_month // 12
    month = (total_month % 12) + 1
    if not MINYEAR <= year <= MAXYEAR:
        raise OverflowError("date value out of range")
    return base.replace(year=year, month=month, day=min(base.day, monthrange(year, month)[1]))


def shift_recurring(base: datetime, interval: str, step: int) -> Optional[datetime]:
    """Return ``base`` moved ``step`` interval units ahead, or None for unknown codes.

    Raises OverflowError when the result falls outside the supported date range.
    """
    if interval == RecurrenceInterval.daily.value:
        return base + timedelta(days=step)
    if interval == RecurrenceInterval.weekly.value:
        return base + timedelta(weeks=step)
    if interval == RecurrenceInterval.monthly.value:
        return _add_months(base, step)
    if interval == RecurrenceInterval.yearly.value:
        return _add_months(base, step * 12)
    return None


def _parse_times(value: Optional[str]) -> int:
    try:
        return int((value or "").strip())
    except ValueError:
        return 0


@dataclass
class StopCondition:
    until: Optional[datetime] = None
    total: int = DEFAULT_MAX_OCCURRENCES

    @classmethod
    def for_event(cls, event: Event) -> "StopCondition":
        # end date wins over a repeat count when both are present
        end_date: Optional[date] = parse_local_date(event.recurrentEndDate)
        if end_date is not None:
            return cls(until=datetime.combine(end_date, time.max))
        times = _parse_times(event.recurrentTimes)
        if times > 0:
            return cls(total=times)
        return cls()

    def reached(self, candidate_start: datetime, emitted: int) -> bool:
        if self.until is not None:
            return candidate_start > self.until
        return emitted >= self.total


def expand_occurrences(base: Event) -> list[Event]:
    """Build the derived instances that follow ``base``; the base itself is not included.

    Each instance is computed from the base start/end so monthly and yearly
    series keep the base day-of-month wherever the month allows it.
    """
    interval = (base.recurrentInterval or "").strip()
    if base.startDateTime is None or shift_recurring(base.startDateTime, interval, 0) is None:
        return []
    stop = StopCondition.for_event(base)
    instances: list[Event] = []
    step = 1
    while True:
        try:
            start = shift_recurring(base.startDateTime, interval, step)
            end = shift_recurring(base.endDateTime, interval, step) if base.endDateTime else None
        except OverflowError:
            logger.info("series for %r reached the end of the calendar after %d occurrence(s)", base.title, step)
            break
        if stop.reached(start, emitted=1 + len(instances)):
            break
        instances.append(
            Event(
                userId=base.userId,
                title=base.title,
                description=base.description,
                category=base.category,
                startDateTime=start,
                endDateTime=end,
            )
        )
        step += 1
    return instances


class RecurrenceExpander:
    def __init__(self, events: EventTable, rules: RecurrenceRuleTable) -> None:
        self.events = events
        self.rules = rules

    def generate_and_save(self, base: Event) -> list[Event]:
        """Persist ``base`` plus every generated instance; returns them in order."""
        interval = (base.recurrentInterval or "").strip()
        instances = expand_occurrences(base)
        with self.events.lock:
            self.events.append_batch([base] + instances)
            if interval:
                self.rules.append(
                    RecurrenceRule(
                        eventId=base.id,
                        recurrentInterval=interval,
                        recurrentTimes=base.recurrentTimes or "",
                        recurrentEndDate=base.recurrentEndDate or "",
                    )
                )
        logger.info(
            "saved recurring series for event %s (%s): %d occurrence(s)",
            base.id,
            interval or "none",
            1 + len(instances),
        )
        return [base] + instances
