"""
Recurrence Rule Engine

Date arithmetic and end-condition evaluation for recurrence rules. Nothing
here touches storage or the clock; results depend only on the arguments.

Month based periods use ``dateutil.relativedelta``, which clamps to the last
day of the target month (Jan 31 + 1 month = Feb 29 2024, Feb 29 2024 +
1 year = Feb 28 2025).
"""

from datetime import datetime
from typing import Callable, Dict, List

from dateutil.relativedelta import relativedelta

from recurring_tasks.schemas.recurrence import (
    AfterCount,
    NeverEnds,
    RecurrenceOptions,
    UntilDate,
)
from recurring_tasks.services.errors import InvalidRule
from recurring_tasks.services.recurrence_validator import RecurrenceValidator
from recurring_tasks.utils.timeutils import ensure_aware, ensure_utc

PERIODS: Dict[str, Callable[[int], relativedelta]] = {
    "daily": lambda n: relativedelta(days=n),
    "weekly": lambda n: relativedelta(weeks=n),
    "monthly": lambda n: relativedelta(months=n),
    "quarterly": lambda n: relativedelta(months=3 * n),
    "half-yearly": lambda n: relativedelta(months=6 * n),
    "yearly": lambda n: relativedelta(years=n),
}

UNIT_NAMES = {
    "daily": ("day", "days"),
    "weekly": ("week", "weeks"),
    "monthly": ("month", "months"),
    "quarterly": ("quarter", "quarters"),
    "half-yearly": ("half-year", "half-years"),
    "yearly": ("year", "years"),
}

# Occurrence counts suggested when a user enables recurrence
DEFAULT_END_COUNTS = {
    "daily": 30,
    "weekly": 12,
    "monthly": 12,
    "quarterly": 4,
    "half-yearly": 2,
    "yearly": 1,
}

# Upper bound on a fully expanded series
MAX_OCCURRENCES = 1000


class RecurrenceRuleEngine:
    """Computes occurrence dates for recurrence rules.

    A rule is any object exposing ``type``, ``frequency`` and
    ``end_condition``: unsaved ``RecurrenceOptions`` and stored
    ``RecurrenceRule`` rows both qualify. Malformed rules raise
    ``InvalidRule``; well formed ones never raise.
    """

    def compute_next_date(self, rule, from_date: datetime) -> datetime:
        """
        Add one period of the rule to ``from_date``.

        Args:
            rule: Recurrence rule
            from_date: Reference date, usually the due date of the last occurrence

        Returns:
            The next due date, in the timezone of ``from_date`` (UTC when naive)
        """
        RecurrenceValidator.ensure_valid(rule)
        return self._advance(rule, from_date)

    def has_series_ended(self, rule, next_occurrence_index: int, candidate_date: datetime) -> bool:
        """
        Decide whether the occurrence at ``next_occurrence_index`` due on
        ``candidate_date`` falls outside the series.

        An occurrence due exactly on an ``UntilDate`` is still part of the series.
        """
        RecurrenceValidator.ensure_valid(rule)
        return self._has_ended(rule, next_occurrence_index, candidate_date)

    def generate_preview(self, rule, start_date: datetime, count: int) -> List[datetime]:
        """
        List up to ``count`` occurrence dates following ``start_date``.

        ``start_date`` is occurrence 1, so the first preview date is checked
        against the end condition as occurrence 2.
        """
        RecurrenceValidator.ensure_valid(rule)

        dates: List[datetime] = []
        current = start_date
        index = 1
        while len(dates) < count:
            current = self._advance(rule, current)
            index += 1
            if self._has_ended(rule, index, current):
                break
            dates.append(current)
        return dates

    def generate_all_occurrences(
        self, rule, start_date: datetime, limit: int = MAX_OCCURRENCES
    ) -> List[datetime]:
        """Expand the whole series, ``start_date`` included, capped at ``limit`` dates."""
        if limit < 1:
            return []
        first = ensure_aware(start_date)
        return [first] + self.generate_preview(rule, first, limit - 1)

    def describe(self, rule) -> str:
        """Human readable summary such as ``Repeats every 2 weeks, 5 times``."""
        RecurrenceValidator.ensure_valid(rule)

        singular, plural = UNIT_NAMES[rule.type]
        if rule.frequency == 1:
            description = f"Repeats {rule.type}"
        else:
            description = f"Repeats every {rule.frequency} {plural}"

        end_condition = rule.end_condition
        if isinstance(end_condition, NeverEnds):
            description += " indefinitely"
        elif isinstance(end_condition, AfterCount):
            if end_condition.count == 1:
                description += ", once"
            else:
                description += f", {end_condition.count} times"
        elif isinstance(end_condition, UntilDate):
            until = end_condition.until
            description += f", until {until.strftime('%b')} {until.day}, {until.year}"
        return description

    @staticmethod
    def default_options(recurrence_type: str) -> RecurrenceOptions:
        """Suggested options for a newly enabled recurrence of ``recurrence_type``."""
        if recurrence_type not in DEFAULT_END_COUNTS:
            raise InvalidRule([f"Unknown recurrence type: {recurrence_type}"])
        return RecurrenceOptions(
            type=recurrence_type,
            frequency=1,
            end_condition=AfterCount(count=DEFAULT_END_COUNTS[recurrence_type]),
        )

    def _advance(self, rule, from_date: datetime) -> datetime:
        delta = PERIODS[rule.type](rule.frequency)
        from_date = ensure_aware(from_date)
        tz = from_date.tzinfo
        if hasattr(tz, "localize"):
            # pytz zones pin the UTC offset; localize the shifted wall time again
            return tz.localize(from_date.replace(tzinfo=None) + delta)
        return from_date + delta

    @staticmethod
    def _has_ended(rule, next_occurrence_index: int, candidate_date: datetime) -> bool:
        end_condition = rule.end_condition
        if isinstance(end_condition, AfterCount):
            return next_occurrence_index > end_condition.count
        if isinstance(end_condition, UntilDate):
            return ensure_utc(candidate_date) > ensure_utc(end_condition.until)
        return False
