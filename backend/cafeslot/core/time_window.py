"""
Clock/TimeWindow utilities.

Pure helpers that turn a display start label ("02:00 PM") and a duration in
hours into a half-open interval on the booking date, and enumerate the hour
slots that interval occupies. Availability is evaluated at hour granularity:
two windows overlap iff they occupy at least one common hour slot.
"""

from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
import math
import re
from typing import Any, List, Union

from .exceptions import InvalidDurationException, ValidationException

MINUTES_PER_DAY = 24 * 60
HALF_HOUR = Decimal("0.5")

_LABEL_RE = re.compile(r"^\s*(\d{1,2})(?::(\d{2}))?\s*([AaPp][Mm])?\s*$")

DurationLike = Union[Decimal, float, int, str]


def parse_time_label(label: str) -> int:
    """
    Convert a start label into minutes after midnight.

    Accepts 12-hour labels ("02:00 PM", "2:30 pm", "12:00 AM") and 24-hour
    labels ("14:00").

    Raises:
        ValidationException: If the label cannot be parsed
    """
    match = _LABEL_RE.match(label or "")
    if not match:
        raise ValidationException(
            f"Invalid start time '{label}'", code="INVALID_TIME", details={"start_time": label}
        )
    hours = int(match.group(1))
    minutes = int(match.group(2) or 0)
    meridiem = (match.group(3) or "").upper()

    if minutes >= 60:
        raise ValidationException(
            f"Invalid start time '{label}'", code="INVALID_TIME", details={"start_time": label}
        )
    if meridiem:
        if not 1 <= hours <= 12:
            raise ValidationException(
                f"Invalid start time '{label}'", code="INVALID_TIME", details={"start_time": label}
            )
        hours = hours % 12
        if meridiem == "PM":
            hours += 12
    elif hours > 23:
        raise ValidationException(
            f"Invalid start time '{label}'", code="INVALID_TIME", details={"start_time": label}
        )
    return hours * 60 + minutes


def format_minutes_label(minutes: int) -> str:
    """Render minutes after midnight as a 12-hour label ("02:30 PM")."""
    hours, mins = divmod(minutes % MINUTES_PER_DAY, 60)
    meridiem = "PM" if hours >= 12 else "AM"
    display = hours % 12 or 12
    return f"{display:02d}:{mins:02d} {meridiem}"


def format_hour_label(hour: int) -> str:
    """Render an hour slot as its start label (14 -> "02:00 PM")."""
    return format_minutes_label(hour * 60)


def to_decimal(value: Any) -> Decimal:
    """Coerce floats/ints/strings to Decimal without binary float noise."""
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise InvalidDurationException(value) from exc


def validate_duration(duration: DurationLike) -> Decimal:
    """
    Validate a duration in hours.

    Returns:
        The duration as a Decimal

    Raises:
        InvalidDurationException: If not > 0 or not a multiple of 0.5
    """
    value = to_decimal(duration)
    if not value.is_finite() or value <= 0 or value % HALF_HOUR != 0:
        raise InvalidDurationException(duration)
    return value


@dataclass(frozen=True)
class TimeWindow:
    """Half-open window [start, start + duration) on a single booking date."""

    start_minutes: int
    duration_hours: Decimal

    @classmethod
    def from_label(cls, start_label: str, duration: DurationLike) -> "TimeWindow":
        window = cls(parse_time_label(start_label), validate_duration(duration))
        window.ensure_within_day()
        return window

    @property
    def duration_minutes(self) -> int:
        return int(self.duration_hours * 60)

    @property
    def end_minutes(self) -> int:
        return self.start_minutes + self.duration_minutes

    def ensure_within_day(self) -> None:
        if self.end_minutes > MINUTES_PER_DAY:
            raise ValidationException(
                "Reservation window must end by midnight of the booking date",
                code="WINDOW_CROSSES_MIDNIGHT",
                details={
                    "start_time": format_minutes_label(self.start_minutes),
                    "duration": str(self.duration_hours),
                },
            )

    def hours(self) -> List[int]:
        """Hour slots occupied by the window, in order."""
        first = self.start_minutes // 60
        last = math.ceil(self.end_minutes / 60)
        return list(range(first, last))

    def extended(self, hours_to_add: Decimal) -> "TimeWindow":
        return TimeWindow(self.start_minutes, self.duration_hours + hours_to_add)
