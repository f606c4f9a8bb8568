"""Cron expression parsing into APScheduler triggers."""

from datetime import datetime, timezone, tzinfo
from typing import List, Optional, Set

from apscheduler.triggers.cron import CronTrigger

from exporter.config.exceptions import ScheduleError

# Crontab day names indexed by crontab day number (0 is Sunday)
CRONTAB_WEEKDAYS = ("sun", "mon", "tue", "wed", "thu", "fri", "sat")

# APScheduler day names indexed by APScheduler day number (0 is Monday)
APSCHEDULER_WEEKDAYS = ("mon", "tue", "wed", "thu", "fri", "sat", "sun")


def _day_number(value: str) -> int:
    """Crontab day number 0-7 for a number or a day name."""
    value = value.strip().lower()
    if value.isdigit():
        number = int(value)
        if number > 7:
            raise ValueError(f"day of week {number} is out of range 0-7")
        return number
    if value in CRONTAB_WEEKDAYS:
        return CRONTAB_WEEKDAYS.index(value)
    raise ValueError(f"invalid day of week '{value}'")


def _expand_part(part: str) -> Set[int]:
    """Crontab day numbers (0-6) selected by one comma-separated part."""
    expression, slash, step_text = part.partition("/")
    if expression == "*":
        start, end = 0, 6
    elif "-" in expression:
        first, _, last = expression.partition("-")
        start, end = _day_number(first), _day_number(last)
        if end == 0 and start > 0:
            # "fri-sun" ends on the Sunday after
            end = 7
        if start > end:
            raise ValueError(f"day of week range '{expression}' runs backwards")
    else:
        start = _day_number(expression)
        end = max(start, 6) if slash else start

    step = 1
    if slash:
        if not step_text.isdigit() or int(step_text) == 0:
            raise ValueError(f"invalid day of week step '{step_text}'")
        step = int(step_text)

    return {day % 7 for day in range(start, end + 1, step)}


def translate_day_of_week(field: str) -> str:
    """Convert a crontab weekday field (0=Sunday) to APScheduler names.

    APScheduler numbers weekdays from Monday, so numbers, ranges and steps
    are expanded to the crontab days they select, then written back as
    APScheduler names with consecutive days joined into ranges.

    Example:
        >>> translate_day_of_week("0-3,6")
        'mon-wed,sat-sun'
        >>> translate_day_of_week("*/2")
        'tue,thu,sat-sun'
    """
    if field.strip() == "*":
        return "*"

    days: Set[int] = set()
    for part in field.split(","):
        days |= _expand_part(part)
    if len(days) == 7:
        return "*"

    # Crontab Sunday (0) is APScheduler's last day (6)
    indices = sorted((day - 1) % 7 for day in days)
    runs: List[List[int]] = []
    for index in indices:
        if runs and runs[-1][-1] == index - 1:
            runs[-1].append(index)
        else:
            runs.append([index])

    return ",".join(
        APSCHEDULER_WEEKDAYS[run[0]]
        if len(run) == 1
        else f"{APSCHEDULER_WEEKDAYS[run[0]]}-{APSCHEDULER_WEEKDAYS[run[-1]]}"
        for run in runs
    )


class CronSchedule:
    """A five-field crontab or six-field (leading seconds) expression.

    Raises:
        ScheduleError: If the expression has the wrong shape or a bad field
    """

    def __init__(self, expression: str, tz: tzinfo = timezone.utc):
        self.expression = (expression or "").strip()
        self.timezone = tz
        self.trigger = self._parse()

    def _parse(self) -> CronTrigger:
        fields = self.expression.split()
        if len(fields) == 5:
            second = "0"
            minute, hour, day, month, day_of_week = fields
        elif len(fields) == 6:
            second, minute, hour, day, month, day_of_week = fields
        else:
            raise ScheduleError(self.expression, f"Expected 5 or 6 fields, got {len(fields)}")

        try:
            return CronTrigger(
                second=second,
                minute=minute,
                hour=hour,
                day=day,
                month=month,
                day_of_week=translate_day_of_week(day_of_week),
                timezone=self.timezone,
            )
        except ValueError as e:
            raise ScheduleError(self.expression, str(e)) from e

    def next_fire_time(self, after: Optional[datetime] = None) -> Optional[datetime]:
        """First fire time at or after ``after`` (default: now)."""
        moment = after or datetime.now(self.timezone)
        return self.trigger.get_next_fire_time(None, moment)

    def __repr__(self) -> str:
        return f"CronSchedule({self.expression!r})"
