"""
Recurrence rules and occurrence generation.

A RecurrenceRule describes how often a service repeats and on which
weekdays. The generator expands a rule into concrete calendar dates.

Weekdays use the 0=Sunday..6=Saturday numbering stored on ServiceWeekday.
Every comparison is made on ``date`` values, never on datetimes.
"""

import itertools
from dataclasses import dataclass
from datetime import date, timedelta
from typing import FrozenSet, Iterable, Iterator, List, Optional, Union

from dateutil.relativedelta import relativedelta


MAX_ITERATIONS = 10000

WEEKDAY_NAMES = (
    'Sunday',
    'Monday',
    'Tuesday',
    'Wednesday',
    'Thursday',
    'Friday',
    'Saturday',
)

FREQUENCY_STEP_MONTHS = {
    'NONE': 0,
    'DAILY': 0,
    'WEEKLY': 0,
    'MONTHLY': 1,
    'EVERY_2_MONTHS': 2,
    'QUARTERLY': 3,
    'EVERY_4_MONTHS': 4,
    'EVERY_6_MONTHS': 6,
    'YEARLY': 12,
}

ORDINAL_POSITIONS = {
    'FIRST': 1,
    'SECOND': 2,
    'THIRD': 3,
    'FOURTH': 4,
}


@dataclass(frozen=True)
class DayGranular:
    """Walk the calendar one day at a time (NONE, DAILY and WEEKLY)."""


@dataclass(frozen=True)
class EveryNMonths:
    """Step the anchor forward by a fixed number of calendar months."""
    months: int

    def __post_init__(self):
        if self.months < 1:
            raise ValueError("Month step must be at least 1")


@dataclass(frozen=True)
class Next:
    """The weekday in the anchor's own week."""


@dataclass(frozen=True)
class Nth:
    """The 1st to 4th occurrence of a weekday within the anchor month."""
    n: int

    def __post_init__(self):
        if not 1 <= self.n <= 4:
            raise ValueError("Ordinal position must be between 1 and 4")


@dataclass(frozen=True)
class Last:
    """The last occurrence of a weekday within the anchor month."""


Frequency = Union[DayGranular, EveryNMonths]
Ordinal = Union[Next, Nth, Last]


@dataclass(frozen=True)
class RecurrenceRule:
    """
    Declarative description of a recurrence.

    An ordinal only means something for month-stepped rules, so a
    day-granular rule always carries ``Next`` whatever it was built with.
    An empty weekday set means "every day" for day-granular rules.
    """
    frequency: Frequency = DayGranular()
    ordinal: Ordinal = Next()
    weekdays: FrozenSet[int] = frozenset()

    def __post_init__(self):
        weekdays = frozenset(self.weekdays)
        for weekday in weekdays:
            if not 0 <= weekday <= 6:
                raise ValueError("Weekday must be between 0 (Sunday) and 6 (Saturday)")
        object.__setattr__(self, 'weekdays', weekdays)

        if isinstance(self.frequency, DayGranular) and not isinstance(self.ordinal, Next):
            object.__setattr__(self, 'ordinal', Next())

    @classmethod
    def from_choices(
        cls,
        frequency: str,
        ordinal: str,
        weekdays: Iterable[int]
    ) -> 'RecurrenceRule':
        """Build a rule from stored choice names such as ('MONTHLY', 'FIRST')."""
        try:
            step = FREQUENCY_STEP_MONTHS[frequency]
        except KeyError:
            raise ValueError(f"Unknown frequency: {frequency}") from None
        return cls.from_step(step, ordinal, weekdays)

    @classmethod
    def from_step(
        cls,
        frequency_step_months: int,
        ordinal: str,
        weekdays: Iterable[int]
    ) -> 'RecurrenceRule':
        """Build a rule from a month step (0 = day-granular) and ordinal name."""
        if frequency_step_months < 0:
            raise ValueError("Month step cannot be negative")

        if frequency_step_months == 0:
            return cls(DayGranular(), Next(), frozenset(weekdays))

        return cls(
            EveryNMonths(frequency_step_months),
            _parse_ordinal(ordinal),
            frozenset(weekdays),
        )

    @property
    def is_day_granular(self) -> bool:
        return isinstance(self.frequency, DayGranular)

    @property
    def step_months(self) -> int:
        if isinstance(self.frequency, EveryNMonths):
            return self.frequency.months
        return 0


def _parse_ordinal(name: str) -> Ordinal:
    if name == 'NEXT':
        return Next()
    if name == 'LAST':
        return Last()
    if name in ORDINAL_POSITIONS:
        return Nth(ORDINAL_POSITIONS[name])
    raise ValueError(f"Unknown ordinal: {name}")


def weekday_of(day: date) -> int:
    """Weekday number with Sunday as 0."""
    return day.isoweekday() % 7


def weekday_name(weekday: int) -> str:
    return WEEKDAY_NAMES[weekday]


def nth_weekday_of_month(year: int, month: int, weekday: int, n: int) -> Optional[date]:
    """
    Return the nth occurrence of ``weekday`` in the given month.

    Returns None when the month has fewer than ``n`` such weekdays
    (e.g. a fifth Friday), so the candidate can be dropped.
    """
    first = date(year, month, 1)
    offset = (weekday - weekday_of(first) + 7) % 7 + (n - 1) * 7
    candidate = first + timedelta(days=offset)
    if candidate.month != month:
        return None
    return candidate


def last_weekday_of_month(year: int, month: int, weekday: int) -> date:
    """Return the last occurrence of ``weekday`` in the given month."""
    last = date(year, month, 1) + relativedelta(day=31)
    offset = (weekday_of(last) - weekday + 7) % 7
    return last - timedelta(days=offset)


def _ordinal_weekday(month_start: date, weekday: int, ordinal: Ordinal) -> Optional[date]:
    if isinstance(ordinal, Last):
        return last_weekday_of_month(month_start.year, month_start.month, weekday)
    return nth_weekday_of_month(month_start.year, month_start.month, weekday, ordinal.n)


def _anchors(start: date, step_months: int) -> Iterator[date]:
    """Yield ``start`` advanced by 0, 1, 2... steps, bounded by MAX_ITERATIONS."""
    for i in range(MAX_ITERATIONS):
        try:
            yield start + relativedelta(months=step_months * i)
        except (OverflowError, ValueError):
            # Walked past date.max.
            return


def _day_walk(
    rule: RecurrenceRule,
    from_date: date,
    end_date: Optional[date]
) -> Iterator[date]:
    for offset in range(MAX_ITERATIONS):
        try:
            current = from_date + timedelta(days=offset)
        except OverflowError:
            return
        if end_date is not None and current > end_date:
            return
        if not rule.weekdays or weekday_of(current) in rule.weekdays:
            yield current


def _anchored_week_walk(
    rule: RecurrenceRule,
    from_date: date,
    end_date: Optional[date]
) -> Iterator[date]:
    """
    Monthly ``Next`` rules: for every anchor, pick each weekday of the
    anchor's own week. Candidates may land before the anchor within that
    week, so a single round is not necessarily in date order.
    """
    weekdays = sorted(rule.weekdays)
    for anchor in _anchors(from_date, rule.step_months):
        if end_date is not None and anchor > end_date:
            return
        anchor_weekday = weekday_of(anchor)
        for weekday in weekdays:
            candidate = anchor + timedelta(days=weekday - anchor_weekday)
            if candidate < from_date:
                continue
            if end_date is not None and candidate > end_date:
                continue
            yield candidate


def _ordinal_month_walk(
    rule: RecurrenceRule,
    from_date: date,
    end_date: Optional[date]
) -> Iterator[date]:
    """Monthly Nth/Last rules: each anchor month yields its matches in order."""
    for month_start in _anchors(from_date.replace(day=1), rule.step_months):
        if end_date is not None and month_start > end_date:
            return
        candidates = []
        for weekday in rule.weekdays:
            candidate = _ordinal_weekday(month_start, weekday, rule.ordinal)
            if candidate is None or candidate < from_date:
                continue
            if end_date is not None and candidate > end_date:
                continue
            candidates.append(candidate)
        yield from sorted(candidates)


def iter_occurrences(
    rule: RecurrenceRule,
    from_date: date,
    end_date: Optional[date] = None
) -> Iterator[date]:
    """
    Lazily expand ``rule`` from ``from_date`` (inclusive) up to ``end_date``.

    The underlying walk is bounded, so the iterator always terminates.
    Day-granular and Nth/Last walks yield in date order; monthly ``Next``
    walks may not, which is why ``generate`` sorts its result.
    """
    if rule.is_day_granular:
        return _day_walk(rule, from_date, end_date)
    if isinstance(rule.ordinal, Next):
        return _anchored_week_walk(rule, from_date, end_date)
    return _ordinal_month_walk(rule, from_date, end_date)


def generate(
    rule: RecurrenceRule,
    from_date: date,
    count: int,
    end_date: Optional[date] = None
) -> List[date]:
    """
    Expand ``rule`` into an ordered list of dates.

    Args:
        rule: RecurrenceRule to expand
        from_date: Inclusive lower bound
        count: Number of occurrences wanted
        end_date: Optional inclusive upper bound

    Returns:
        Sorted list of dates. For day-granular rules with an ``end_date``
        the walk runs to ``end_date`` and ``count`` does not cut it short.
        Results are silently truncated when the iteration bound is hit.
    """
    if count <= 0:
        return []

    occurrences = iter_occurrences(rule, from_date, end_date)
    if rule.is_day_granular and end_date is not None:
        return list(occurrences)

    return sorted(itertools.islice(occurrences, count))


def generate_through(
    rule: RecurrenceRule,
    from_date: date,
    end_date: date
) -> List[date]:
    """Every occurrence from ``from_date`` through ``end_date`` (both inclusive)."""
    return sorted(iter_occurrences(rule, from_date, end_date))


def get_next_occurrences(
    from_date: date,
    allowed_weekdays: Iterable[int],
    count: int,
    end_date: Optional[date] = None,
    frequency_step_months: int = 0,
    ordinal: str = 'NEXT'
) -> List[date]:
    """Flat-argument form of ``generate``."""
    rule = RecurrenceRule.from_step(frequency_step_months, ordinal, allowed_weekdays)
    return generate(rule, from_date, count, end_date)


def next_occurrence(
    rule: RecurrenceRule,
    after: date,
    end_date: Optional[date] = None
) -> Optional[date]:
    """First occurrence strictly after ``after``, or None."""
    occurrences = generate(rule, after + timedelta(days=1), 1, end_date)
    return occurrences[0] if occurrences else None
