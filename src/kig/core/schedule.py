"""
Cron schedules for pollers.

A poller either runs exactly once (no schedule) or on a cron expression
such as "*/5 * * * *" (every five minutes). Expressions are validated when
the schedule is built, so a malformed one stops the poller from starting.
"""
from datetime import datetime, timezone
from typing import Optional

from croniter import croniter

from kig.utility.exceptions import ConfigError

# Upper bound when counting skipped fire times, a minute-level cron over a
# very long cycle should not make us iterate forever
_MAX_COUNTED_FIRES = 10_000


class Schedule:
    """
    A cron-style recurrence.

    Times are evaluated in the local timezone of the process, the way cron
    itself does. Five-field expressions run at minute resolution, a sixth
    field adds seconds.

    Example:
        ```python
        schedule = Schedule("*/5 * * * *")
        schedule.next_fire(now)         # next datetime after now
        schedule.seconds_until_next(now)
        ```
    """

    def __init__(self, expression: str):
        if expression is None or not str(expression).strip():
            raise ConfigError("Schedule expression cannot be empty")

        expression = " ".join(str(expression).split())
        if not croniter.is_valid(expression):
            raise ConfigError(f"Malformed schedule expression: '{expression}'")

        self.expression = expression

    @classmethod
    def parse(cls, expression: Optional[str]) -> Optional["Schedule"]:
        """Build a schedule, or return None when no expression is configured."""
        if expression is None:
            return None
        return cls(expression)

    @staticmethod
    def _local(moment: Optional[datetime]) -> datetime:
        if moment is None:
            moment = datetime.now()
        # naive datetimes are taken as local time
        return moment.astimezone()

    def next_fire(self, after: Optional[datetime] = None) -> datetime:
        """Next fire time strictly after `after` (default: now)."""
        return croniter(self.expression, self._local(after)).get_next(datetime)

    def seconds_until_next(self, now: Optional[datetime] = None) -> float:
        """Seconds from now until the next fire time."""
        now = self._local(now)
        return max(0.0, (self.next_fire(now) - now).total_seconds())

    def fires_between(self, start: datetime, end: datetime) -> int:
        """Count fire times in the half-open interval (start, end]."""
        start, end = self._local(start), self._local(end)
        iterator = croniter(self.expression, start)
        count = 0
        while count < _MAX_COUNTED_FIRES:
            if iterator.get_next(datetime) > end:
                break
            count += 1
        return count

    def __repr__(self) -> str:
        return f"Schedule({self.expression!r})"


def utc_now() -> datetime:
    """Current wall-clock time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)
