"""References to actors and alarms, alarm leases and alarm properties."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any

from francis.timeutils import add_date, format_quoted, parse_iso8601_duration

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@dataclass(frozen=True)
class ActorRef:
    """Identifies an actor by type and ID."""

    actor_type: str
    actor_id: str

    def __str__(self) -> str:
        return f"{self.actor_type}/{self.actor_id}"


@dataclass(frozen=True)
class AlarmRef:
    """Identifies an alarm by actor type, actor ID and alarm name."""

    actor_type: str
    actor_id: str
    name: str

    def actor_ref(self) -> ActorRef:
        return ActorRef(self.actor_type, self.actor_id)

    def __str__(self) -> str:
        return f"{self.actor_type}/{self.actor_id}/{self.name}"


def _format_millis(moment: datetime) -> str:
    text = (
        f"{moment.year:04d}-{moment.month:02d}-{moment.day:02d}"
        f"T{moment.hour:02d}:{moment.minute:02d}:{moment.second:02d}"
    )
    millis = moment.microsecond // 1000
    if millis:
        text += "." + f"{millis:03d}".rstrip("0")
    return text


def _unix_millis(moment: datetime) -> int:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


class AlarmLease:
    """A lease held on an alarm; queueable by key and due time."""

    def __init__(self, ref: AlarmRef, alarm_id: str, due_time: datetime, lease_id: Any):
        self._ref = ref
        self._alarm_id = alarm_id
        self._due_time = due_time
        self._lease_id = lease_id
        self._attempts = 0
        self._execution_time: datetime | None = None

    @property
    def key(self) -> str:
        """The alarm ID, unique within a queue."""
        return self._alarm_id

    @property
    def due_time(self) -> datetime:
        return self._due_time

    @property
    def lease_id(self) -> Any:
        return self._lease_id

    @property
    def alarm_ref(self) -> AlarmRef:
        return self._ref

    @property
    def actor_ref(self) -> ActorRef:
        return self._ref.actor_ref()

    @property
    def attempts(self) -> int:
        return self._attempts

    def increase_attempts(self, due_time: datetime) -> None:
        """Count another attempt and move the lease to a new due time."""
        self._attempts += 1
        self._due_time = due_time
        self._execution_time = None

    @property
    def execution_time(self) -> datetime | None:
        """When the alarm was executed, or None if it has not been."""
        return self._execution_time

    @execution_time.setter
    def execution_time(self, moment: datetime | None) -> None:
        self._execution_time = moment

    def __str__(self) -> str:
        return (
            f"AlarmLease:[AlarmID={format_quoted(self._alarm_id)} "
            f"DueTime={format_quoted(_format_millis(self._due_time))} "
            f"DueTimeUnix={_unix_millis(self._due_time)} "
            f"LeaseID={format_quoted(self._lease_id)}]"
        )


@dataclass
class AlarmProperties:
    """Properties of an alarm: due time, repeat interval, deadline and data."""

    due_time: datetime
    interval: str = ""
    ttl: datetime | None = None
    data: bytes = b""

    def next_execution(self, execution_time: datetime) -> datetime | None:
        """Return when the alarm runs next, or None if it does not repeat."""
        if not self.interval:
            return None
        try:
            duration = parse_iso8601_duration(self.interval)
        except ValueError:
            return None
        if duration.is_zero():
            return None

        following = add_date(
            execution_time + duration.clock_time,
            duration.years,
            duration.months,
            duration.days,
        )
        if self.ttl is not None and following > self.ttl:
            return None
        return following