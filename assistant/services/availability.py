"""Free/busy availability checks and next-open-slot search.

Two operations, both pure in-memory computations over a list of busy
intervals that the caller fetched up front:

* ``check_availability`` — does ``[start, start + duration)`` overlap any
  busy interval?  Uses half-open overlap, so back-to-back meetings never
  conflict.
* ``find_next_available_slot`` — forward scan over a 30-minute grid
  restricted to business hours (09:00–18:00 local), bounded to 7 days
  from the starting point.  First free candidate wins.

Busy intervals may arrive unsorted and overlapping (that is what Google's
free/busy endpoint returns for multiple calendars), so nothing here
assumes ordering.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Iterator
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta, tzinfo
from typing import Any
from zoneinfo import ZoneInfo

from assistant.config import CALENDAR_TIMEZONE, DISPLAY_DATETIME_FORMAT

logger = logging.getLogger(__name__)

# ── Search grid ─────────────────────────────────────────────────────
SEARCH_HORIZON = timedelta(days=7)
SLOT_STEP = timedelta(minutes=30)
BUSINESS_START_HOUR = 9
BUSINESS_END_HOUR = 18

NO_SLOTS_MESSAGE = "no slots in 7 days"


def parse_timestamp(value: str | datetime, tz: tzinfo) -> datetime:
    """Parse an ISO 8601 string (``Z`` suffix allowed) into an aware datetime.

    Naive values are interpreted in *tz*.
    """
    if isinstance(value, datetime):
        dt = value
    else:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=tz)
    return dt


# ── Data contracts ──────────────────────────────────────────────────


@dataclass(frozen=True)
class BusyInterval:
    """A half-open ``[start, end)`` block of calendar time that is taken."""

    start: datetime
    end: datetime

    def overlaps(self, start: datetime, end: datetime) -> bool:
        """Half-open overlap test against ``[start, end)``."""
        return self.start < end and self.end > start

    @classmethod
    def from_dict(cls, data: dict[str, Any], tz: tzinfo = UTC) -> BusyInterval:
        """Build from a Google free/busy entry ``{"start": iso, "end": iso}``."""
        return cls(
            start=parse_timestamp(data["start"], tz),
            end=parse_timestamp(data["end"], tz),
        )


@dataclass(frozen=True)
class SlotRequest:
    """A candidate meeting window: local ``date`` + ``time`` plus a duration."""

    date: str
    time: str
    duration_minutes: int = 30

    def __post_init__(self) -> None:
        if self.duration_minutes <= 0:
            raise ValueError(
                f"duration_minutes must be positive, got {self.duration_minutes}"
            )

    def start(self, tz: tzinfo) -> datetime:
        return datetime.fromisoformat(f"{self.date}T{self.time}").replace(tzinfo=tz)

    def end(self, tz: tzinfo) -> datetime:
        return self.start(tz) + timedelta(minutes=self.duration_minutes)


@dataclass(frozen=True)
class Conflict:
    """An overlapping busy interval, kept raw and rendered for display."""

    start: datetime
    end: datetime
    start_display: str
    end_display: str

    def to_dict(self) -> dict[str, str]:
        return {
            "start": self.start_display,
            "end": self.end_display,
            "start_iso": self.start.isoformat(),
            "end_iso": self.end.isoformat(),
        }


@dataclass(frozen=True)
class AvailabilityResult:
    available: bool
    conflicts: list[Conflict] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "available": self.available,
            "conflicts": [c.to_dict() for c in self.conflicts],
        }


@dataclass(frozen=True)
class NextSlotResult:
    """Outcome of a next-slot search.

    ``available=False`` with ``message`` set means the 7-day horizon was
    exhausted.  That is a valid answer, not an error.
    """

    available: bool
    suggested_time: datetime | None = None
    suggested_time_display: str | None = None
    message: str | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.available:
            return {"available": False, "message": self.message}
        return {
            "available": True,
            "suggested_time": self.suggested_time.isoformat(),
            "suggested_time_formatted": self.suggested_time_display,
        }


# ── Finder ──────────────────────────────────────────────────────────


class AvailabilityFinder:
    """Availability checks and next-slot search in one local time zone.

    Business hours, rounding and display strings are all evaluated in
    ``timezone`` (defaults to ``CALENDAR_TIMEZONE``).
    """

    def __init__(
        self,
        timezone: str | tzinfo | None = None,
        *,
        display_format: str | None = None,
        clock: Callable[[], datetime] | None = None,
    ):
        tz = timezone or CALENDAR_TIMEZONE
        self._tz: tzinfo = ZoneInfo(tz) if isinstance(tz, str) else tz
        self._display_format = display_format or DISPLAY_DATETIME_FORMAT
        self._clock = clock or (lambda: datetime.now(UTC))

    @property
    def timezone(self) -> tzinfo:
        return self._tz

    def format(self, moment: datetime) -> str:
        """Render *moment* in the finder's zone with the display format."""
        return moment.astimezone(self._tz).strftime(self._display_format)

    # ── Availability check ───────────────────────────────────────────

    def check_availability(
        self,
        date: str,
        time: str,
        duration_minutes: int,
        busy_intervals: Iterable[BusyInterval],
    ) -> AvailabilityResult:
        """Check whether ``[date time, +duration)`` is free."""
        request = SlotRequest(date=date, time=time, duration_minutes=duration_minutes)
        start = request.start(self._tz)
        end = request.end(self._tz)

        conflicts = [
            Conflict(
                start=busy.start,
                end=busy.end,
                start_display=self.format(busy.start),
                end_display=self.format(busy.end),
            )
            for busy in busy_intervals
            if busy.overlaps(start, end)
        ]
        logger.debug(
            "Availability %s–%s: %d conflict(s)",
            start.isoformat(), end.isoformat(), len(conflicts),
        )
        return AvailabilityResult(available=not conflicts, conflicts=conflicts)

    # ── Next-slot search ─────────────────────────────────────────────

    def _round_up(self, moment: datetime) -> datetime:
        """Round up to the next 30-minute boundary (10:07 → 10:30)."""
        local = moment.astimezone(self._tz)
        floored = local.replace(
            minute=local.minute - local.minute % 30, second=0, microsecond=0,
        )
        if floored == local:
            return floored
        return floored + SLOT_STEP

    @staticmethod
    def _align_to_business_hours(cursor: datetime) -> datetime:
        """Move an out-of-hours cursor to the next 09:00."""
        if cursor.hour < BUSINESS_START_HOUR:
            return cursor.replace(hour=BUSINESS_START_HOUR, minute=0)
        if cursor.hour >= BUSINESS_END_HOUR:
            next_day = cursor + timedelta(days=1)
            return next_day.replace(hour=BUSINESS_START_HOUR, minute=0)
        return cursor

    def iter_candidates(self, start_from: datetime) -> Iterator[datetime]:
        """Yield every candidate start time the search would examine, in order.

        Candidates are on the 30-minute grid, inside business hours, and
        strictly before ``start_from + 7 days``.
        """
        start_from = parse_timestamp(start_from, self._tz)
        search_end = start_from + SEARCH_HORIZON

        current = self._align_to_business_hours(self._round_up(start_from))
        while current < search_end:
            yield current
            current = self._align_to_business_hours(current + SLOT_STEP)

    def find_next_available_slot(
        self,
        duration_minutes: int = 30,
        start_from: datetime | None = None,
        busy_intervals: Iterable[BusyInterval] = (),
    ) -> NextSlotResult:
        """Return the first free business-hours slot within 7 days of *start_from*."""
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive, got {duration_minutes}")

        start_from = start_from or self._clock()
        busy = list(busy_intervals)
        duration = timedelta(minutes=duration_minutes)

        examined = 0
        for candidate in self.iter_candidates(start_from):
            examined += 1
            slot_end = candidate + duration
            if not any(b.overlaps(candidate, slot_end) for b in busy):
                logger.debug(
                    "Next free slot %s (examined %d candidates)",
                    candidate.isoformat(), examined,
                )
                return NextSlotResult(
                    available=True,
                    suggested_time=candidate,
                    suggested_time_display=self.format(candidate),
                )

        logger.info(
            "No free %d-minute slot within 7 days of %s (examined %d candidates)",
            duration_minutes, start_from.isoformat(), examined,
        )
        return NextSlotResult(available=False, message=NO_SLOTS_MESSAGE)
