"""
Cron schedule evaluation.

Turns a textual cron expression into a CronSchedule that answers one
question: given a point in time, when does the schedule fire next?

Two conventions are accepted and told apart purely by field count:
- 5 fields: minute hour day-of-month month day-of-week
- 6 fields: second minute hour day-of-month month day-of-week

Matching itself is delegated to APScheduler's CronTrigger. Expressions are
translated to APScheduler's field syntax first, since APScheduler numbers
weekdays from Monday while cron numbers them from Sunday.
"""

import logging
import re
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Dict, List, Optional

from apscheduler.triggers.combining import OrTrigger
from apscheduler.triggers.cron import CronTrigger

logger = logging.getLogger(__name__)

FIELDS_WITH_SECONDS = ['second', 'minute', 'hour', 'day', 'month', 'day_of_week']
FIELDS_WITHOUT_SECONDS = FIELDS_WITH_SECONDS[1:]

# Cron weekday numbers: 0 and 7 are Sunday
WEEKDAY_NAMES = ['sun', 'mon', 'tue', 'wed', 'thu', 'fri', 'sat']

_WEEKDAY_EXPR = re.compile(r"^(?P<range>\*|\?|\w+(?:-\w+)?)(?:/(?P<step>\d+))?$")
_WILDCARDS = ('*', '?', '*/1', '?/1')


class InvalidScheduleError(ValueError):
    """Raised when a cron expression cannot be parsed."""
    pass


def _weekday_number(value: str, part: str, expression: str) -> int:
    """Cron weekday number for a numeric or three-letter name bound."""
    if value.isdigit():
        return int(value)
    name = value.lower()
    if name not in WEEKDAY_NAMES:
        raise InvalidScheduleError(
            f"Invalid day-of-week '{part}' in cron expression '{expression}'"
        )
    return WEEKDAY_NAMES.index(name)


def _expand_weekdays(part: str, expression: str) -> List[int]:
    """
    Expand one day-of-week list item into cron weekday numbers.

    Bounds may be numbers, names or a mix of both ("1-fri").

    Args:
        part: A single comma-separated item such as "1-5", "*/2", "mon-fri" or "3"
        expression: The full expression (for error messages)

    Returns:
        Sorted weekday numbers in 0..6 (Sunday is 0)
    """
    match = _WEEKDAY_EXPR.match(part)
    if not match:
        raise InvalidScheduleError(
            f"Invalid day-of-week '{part}' in cron expression '{expression}'"
        )

    range_part = match.group('range')
    step = int(match.group('step')) if match.group('step') else 1

    if range_part in ('*', '?'):
        first, last = 0, 6
    elif '-' in range_part:
        first, last = (_weekday_number(value, part, expression) for value in range_part.split('-', 1))
    else:
        first = _weekday_number(range_part, part, expression)
        # "N/step" means "N through Saturday, every step days"
        last = 6 if match.group('step') else first

    if step == 0 or last > 7 or first > last:
        raise InvalidScheduleError(
            f"Invalid day-of-week '{part}' in cron expression '{expression}'"
        )

    return sorted({day % 7 for day in range(first, last + 1, step)})


def _convert_day_of_week(field: str, expression: str) -> str:
    """Translate a cron day-of-week field to APScheduler weekday names."""
    if field in ('*', '?'):
        return '*'

    names = []
    for part in field.split(','):
        names.extend(WEEKDAY_NAMES[day] for day in _expand_weekdays(part, expression))

    # Drop duplicates, keep order
    return ','.join(dict.fromkeys(names))


def _is_wildcard(field: str) -> bool:
    return any(part in _WILDCARDS for part in field.split(','))


class CronSchedule:
    """
    A parsed cron expression.

    Immutable once constructed. ``next()`` is pure and may be called from
    any thread.

    Example:
        >>> schedule = CronSchedule("*/5 * * * * *")
        >>> schedule.next(datetime(2024, 1, 1, 12, 0, 3, tzinfo=timezone.utc))
        datetime.datetime(2024, 1, 1, 12, 0, 5, tzinfo=datetime.timezone.utc)
    """

    def __init__(self, expression: str):
        """
        Parse and validate a cron expression.

        Args:
            expression: 5-field or 6-field cron expression

        Raises:
            InvalidScheduleError: If the expression is malformed
        """
        if not isinstance(expression, str):
            raise InvalidScheduleError(f"Cron expression must be a string, got {type(expression).__name__}")

        self.expression = expression
        parts = expression.split()

        if len(parts) == 6:
            names = FIELDS_WITH_SECONDS
        elif len(parts) == 5:
            names = FIELDS_WITHOUT_SECONDS
        else:
            raise InvalidScheduleError(
                f"Invalid cron expression '{expression}': expected 5 or 6 fields, got {len(parts)}"
            )

        raw = dict(zip(names, parts))
        raw.setdefault('second', '0')

        # Classic cron: when both day fields are restricted, either may match
        self.day_or = not _is_wildcard(raw['day']) and not _is_wildcard(raw['day_of_week'])

        self.fields: Dict[str, str] = {
            name: raw[name].replace('?', '*') for name in FIELDS_WITH_SECONDS
        }
        self.fields['day_of_week'] = _convert_day_of_week(raw['day_of_week'], expression)

        self._triggers: Dict[tzinfo, object] = {}

        try:
            self._trigger_for(timezone.utc)
        except ValueError as e:
            raise InvalidScheduleError(f"Invalid cron expression '{expression}': {e}") from e

        logger.debug(f"Parsed cron expression '{expression}' into {self.fields}")

    def _build_trigger(self, tz: tzinfo):
        if not self.day_or:
            return CronTrigger(timezone=tz, **self.fields)

        by_day = dict(self.fields, day_of_week='*')
        by_weekday = dict(self.fields, day='*')
        return OrTrigger([
            CronTrigger(timezone=tz, **by_day),
            CronTrigger(timezone=tz, **by_weekday),
        ])

    def _trigger_for(self, tz: tzinfo):
        trigger = self._triggers.get(tz)
        if trigger is None:
            trigger = self._build_trigger(tz)
            self._triggers[tz] = trigger
        return trigger

    def next(self, after: datetime) -> Optional[datetime]:
        """
        Get the first fire time strictly after ``after``.

        The schedule is interpreted in ``after``'s timezone and the result
        is expressed in that same timezone.

        Args:
            after: Timezone-aware reference time

        Returns:
            Next matching time (whole seconds), or None if the schedule
            never fires again

        Wall times repeated when clocks fall back are compared as instants,
        so the result is always later than ``after`` in UTC.
        """
        if after.tzinfo is None:
            raise ValueError("CronSchedule.next() requires a timezone-aware datetime")

        tz = after.tzinfo
        trigger = self._trigger_for(tz)
        after_utc = after.astimezone(timezone.utc)
        wall = after.replace(tzinfo=None)

        while True:
            # APScheduler rounds up to the next whole second and may return
            # its input unchanged; nudge forward so the result is later.
            start = (wall + timedelta(microseconds=1)).replace(tzinfo=tz)
            result = trigger.get_next_fire_time(None, start)
            if result is None or result.astimezone(timezone.utc) > after_utc:
                return result

            # Inside a repeated hour, skip wall times that resolve earlier
            wall = max(result.replace(tzinfo=None), wall + timedelta(seconds=1))

    def to_dict(self) -> Dict[str, object]:
        """Compiled representation used when serializing a job."""
        return dict(self.fields, day_or=self.day_or)

    def __eq__(self, other):
        if not isinstance(other, CronSchedule):
            return NotImplemented
        return self.fields == other.fields and self.day_or == other.day_or

    def __hash__(self):
        return hash((tuple(sorted(self.fields.items())), self.day_or))

    def __repr__(self):
        return f"CronSchedule({self.expression!r})"
