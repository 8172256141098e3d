"""Pure scheduling helpers shared by availability and booking.

Both the availability read path and the commit-time re-validation generate
candidate start times through ``candidate_starts`` so the two can never
disagree about which times are bookable.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import IntEnum
from typing import Any, Iterable, Mapping, Optional, Union
import logging
import re
import uuid

from appointly.core.errors import ValidationError

logger = logging.getLogger(__name__)

SLOT_GRANULARITY_MINUTES = 30
MINUTES_PER_DAY = 24 * 60

_CLOCK_RE = re.compile(r"^(\d{1,2}):(\d{2})(?::(\d{2}))?$")


class Weekday(IntEnum):
    MONDAY = 0
    TUESDAY = 1
    WEDNESDAY = 2
    THURSDAY = 3
    FRIDAY = 4
    SATURDAY = 5
    SUNDAY = 6

    @classmethod
    def of(cls, day: date) -> "Weekday":
        return cls(day.weekday())

    @classmethod
    def from_name(cls, name: str) -> "Weekday":
        try:
            return cls[str(name).strip().upper()]
        except KeyError:
            raise ValidationError(f"Unknown weekday '{name}'") from None


def parse_clock(value: str) -> int:
    """Parse "HH:MM" (or "HH:MM:SS") into minutes after midnight.

    "24:00" is accepted as the end of the day.
    """
    match = _CLOCK_RE.match(str(value).strip())
    if not match:
        raise ValidationError(f"Invalid time '{value}'; expected HH:MM")
    hours, minutes = int(match.group(1)), int(match.group(2))
    total = hours * 60 + minutes
    if minutes >= 60 or total > MINUTES_PER_DAY:
        raise ValidationError(f"Invalid time '{value}'; expected HH:MM")
    return total


def format_clock(minutes: int) -> str:
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


def minute_of(value: time) -> int:
    return value.hour * 60 + value.minute


def require_whole_minute(value: time) -> None:
    if value.second or value.microsecond:
        raise ValidationError("Start time must be on a whole minute")


def time_at(minutes: int) -> time:
    return time(hour=minutes // 60, minute=minutes % 60)


def at_minute(day: date, minutes: int) -> datetime:
    return datetime.combine(day, time.min) + timedelta(minutes=minutes)


@dataclass(frozen=True)
class WorkWindow:
    """Working hours of one day as minutes after midnight, end exclusive."""

    start: int
    end: int

    def __post_init__(self):
        if not 0 <= self.start < self.end <= MINUTES_PER_DAY:
            raise ValidationError(
                f"Invalid work window {format_clock(self.start)}-{format_clock(self.end)}"
            )

    @classmethod
    def parse(cls, start: str, end: str) -> "WorkWindow":
        return cls(parse_clock(start), parse_clock(end))

    def to_dict(self) -> dict[str, str]:
        return {"start": format_clock(self.start), "end": format_clock(self.end)}


@dataclass(frozen=True)
class WeeklySchedule:
    """Seven optional work windows indexed by ``Weekday``."""

    windows: tuple[Optional[WorkWindow], ...] = (None,) * 7

    def __post_init__(self):
        if len(self.windows) != 7:
            raise ValidationError("A weekly schedule needs exactly 7 days")

    def window_for(self, day: Union[date, Weekday]) -> Optional[WorkWindow]:
        weekday = day if isinstance(day, Weekday) else Weekday.of(day)
        return self.windows[weekday]

    @classmethod
    def from_mapping(
        cls,
        mapping: Optional[Mapping[str, Any]],
        strict: bool = True,
        owner: Optional[str] = None,
    ) -> "WeeklySchedule":
        """Parse the stored ``{"monday": {"start": "09:00", "end": "18:00"}}`` shape.

        With ``strict=False`` a malformed day is logged and treated as a day off,
        so one bad entry never hides the rest of the week (or other employees).
        """
        windows: list[Optional[WorkWindow]] = [None] * 7
        for day_name, hours in (mapping or {}).items():
            try:
                weekday = Weekday.from_name(day_name)
                if not hours:
                    continue
                if not isinstance(hours, Mapping) or not hours.get("start") or not hours.get("end"):
                    raise ValidationError(f"Work window for {day_name} needs 'start' and 'end'")
                windows[weekday] = WorkWindow.parse(hours["start"], hours["end"])
            except ValidationError as exc:
                if strict:
                    raise
                logger.warning(f"Ignoring work window of {owner or 'schedule'} for {day_name!r}: {exc.message}")
        return cls(tuple(windows))

    def to_mapping(self) -> dict[str, dict[str, str]]:
        return {
            Weekday(index).name.lower(): window.to_dict()
            for index, window in enumerate(self.windows)
            if window is not None
        }


@dataclass(frozen=True)
class SpecificEmployee:
    employee_id: uuid.UUID


@dataclass(frozen=True)
class AnyAvailable:
    pass


EmployeeChoice = Union[SpecificEmployee, AnyAvailable]


def employee_choice(employee_id: Optional[Union[str, uuid.UUID]]) -> EmployeeChoice:
    """Build the tagged choice from an optional id as it arrives from callers."""
    if employee_id is None or employee_id == "":
        return AnyAvailable()
    if isinstance(employee_id, uuid.UUID):
        return SpecificEmployee(employee_id)
    try:
        return SpecificEmployee(uuid.UUID(str(employee_id)))
    except ValueError:
        raise ValidationError(f"Invalid employee id '{employee_id}'") from None


def candidate_starts(
    window: WorkWindow,
    duration_minutes: int,
    granularity: int = SLOT_GRANULARITY_MINUTES,
) -> list[int]:
    """Grid start minutes inside ``window`` at which the service still fits."""
    if duration_minutes <= 0:
        raise ValidationError("Service duration must be positive")
    starts = []
    start = window.start
    while start + duration_minutes <= window.end:
        starts.append(start)
        start += granularity
    return starts


def intervals_overlap(
    a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime
) -> bool:
    """Half-open [start, end) intersection; touching intervals do not overlap."""
    return a_start < b_end and b_start < a_end


def free_starts(
    day: date,
    window: Optional[WorkWindow],
    duration_minutes: int,
    busy: Iterable[tuple[datetime, datetime]],
) -> list[time]:
    """Start times on ``day`` that fit the window and avoid every busy interval."""
    if window is None:
        return []
    busy = list(busy)
    result = []
    for start_minute in candidate_starts(window, duration_minutes):
        slot_start = at_minute(day, start_minute)
        slot_end = slot_start + timedelta(minutes=duration_minutes)
        if any(intervals_overlap(slot_start, slot_end, b_start, b_end) for b_start, b_end in busy):
            continue
        result.append(time_at(start_minute))
    return result
