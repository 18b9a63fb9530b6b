"""
Time ranges in the clinic's canonical timezone.

Clinic staff and patients reason in wall-clock time (``Asia/Manila`` by
default) while the database stores naive UTC instants. ``TimeRange`` is the
bridge: it is built from a local date plus start/end times, normalized to
minute precision, and compared using half-open ``[start, end)`` semantics so
back-to-back slots never overlap.
"""
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta, timezone
from typing import List, Optional
from zoneinfo import ZoneInfo

from .config import settings
from .exceptions import InvalidRangeError

UTC = timezone.utc


def clinic_tz(name: Optional[str] = None) -> ZoneInfo:
    """Return the clinic timezone (or an explicit override)."""
    return ZoneInfo(name or settings.CLINIC_TIMEZONE)


def truncate_to_minute(value):
    """Drop seconds and microseconds from a ``time`` or ``datetime``."""
    return value.replace(second=0, microsecond=0)


def to_storage(value: datetime) -> datetime:
    """Convert an aware datetime to the naive UTC form kept in the database."""
    if value.tzinfo is None:
        return value
    return value.astimezone(UTC).replace(tzinfo=None)


def from_storage(value: datetime) -> datetime:
    """Attach UTC to a naive datetime read back from the database."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


@dataclass(frozen=True)
class TimeRange:
    """A half-open interval of UTC instants on a single clinic calendar day."""

    start: datetime
    end: datetime

    def __post_init__(self):
        if self.start.tzinfo is None or self.end.tzinfo is None:
            raise InvalidRangeError("Time range must be timezone-aware")

        start = truncate_to_minute(self.start.astimezone(UTC))
        end = truncate_to_minute(self.end.astimezone(UTC))
        if start >= end:
            raise InvalidRangeError(
                "Start time must be before end time",
                f"Invalid time range {start.isoformat()} - {end.isoformat()}",
            )

        object.__setattr__(self, "start", start)
        object.__setattr__(self, "end", end)

    @classmethod
    def from_local(
        cls,
        day: date,
        start: time,
        end: time,
        tz: Optional[str] = None,
    ) -> "TimeRange":
        """Build a range from a clinic-local date and wall-clock times."""
        if start.tzinfo is not None or end.tzinfo is not None:
            raise InvalidRangeError("Times must be clinic-local wall-clock times")

        start = truncate_to_minute(start)
        end = truncate_to_minute(end)
        if start >= end:
            raise InvalidRangeError(
                "Start time must be before end time",
                f"Invalid time range {start:%H:%M}-{end:%H:%M} on {day.isoformat()}",
            )

        zone = clinic_tz(tz)
        return cls(
            datetime.combine(day, start, tzinfo=zone),
            datetime.combine(day, end, tzinfo=zone),
        )

    @classmethod
    def from_storage(cls, start: datetime, end: datetime) -> "TimeRange":
        """Build a range from naive UTC database values."""
        return cls(from_storage(start), from_storage(end))

    # Local views

    def local_date(self, tz: Optional[str] = None) -> date:
        return self.start.astimezone(clinic_tz(tz)).date()

    def local_start(self, tz: Optional[str] = None) -> time:
        return self.start.astimezone(clinic_tz(tz)).time()

    def local_end(self, tz: Optional[str] = None) -> time:
        return self.end.astimezone(clinic_tz(tz)).time()

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    @property
    def storage_start(self) -> datetime:
        return to_storage(self.start)

    @property
    def storage_end(self) -> datetime:
        return to_storage(self.end)

    # Interval algebra

    def overlaps(self, other: "TimeRange") -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, other: "TimeRange") -> bool:
        return self.start <= other.start and other.end <= self.end

    def subtract(self, other: "TimeRange") -> List["TimeRange"]:
        """Return the parts of this range not covered by ``other``."""
        if not self.overlaps(other):
            return [self]

        remaining = []
        if self.start < other.start:
            remaining.append(TimeRange(self.start, other.start))
        if other.end < self.end:
            remaining.append(TimeRange(other.end, self.end))
        return remaining

    def __str__(self) -> str:
        return f"{self.local_start():%H:%M}-{self.local_end():%H:%M}"


def overlaps(a: TimeRange, b: TimeRange) -> bool:
    """Half-open overlap test: ``a.start < b.end and b.start < a.end``."""
    return a.overlaps(b)


def validate_local_times(start: time, end: time, label: str = "time range") -> None:
    """Reject wall-clock pairs where start is not strictly before end."""
    if truncate_to_minute(start) >= truncate_to_minute(end):
        raise InvalidRangeError(
            f"Invalid {label}",
            f"{label.capitalize()} start {start:%H:%M} must be before end {end:%H:%M}",
        )
