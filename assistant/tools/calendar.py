"""Calendar tools offered to the model in calendar mode.

Each tool is an async handler returning a JSON-serialisable dict with a
``success`` flag; the orchestrator sends that dict back to the model as the
tool result.  Every tool that touches the calendar is wrapped with
``with_simulated_fallback`` so that missing or expired credentials yield
``{"success": True, "simulated": True, ...}`` instead of an error.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime
from typing import Annotated, Any

from pydantic import BaseModel, Field

from assistant.services.availability import (
    SEARCH_HORIZON,
    AvailabilityFinder,
    SlotRequest,
    parse_timestamp,
)
from assistant.services.calendar_client import (
    CalendarCredentials,
    CalendarProvider,
    EventDetails,
    GoogleCalendarClient,
)
from assistant.tools.registry import ToolRegistry, with_simulated_fallback

logger = logging.getLogger(__name__)

# Locale-independent weekday names (strftime("%A") follows the C locale)
_WEEKDAYS = ("Monday", "Tuesday", "Wednesday", "Thursday", "Friday", "Saturday", "Sunday")

_NOT_CONNECTED = (
    "Google Calendar is not connected for this user, so this is a simulated "
    "result. Ask the user to connect their calendar for real scheduling."
)


# ── Argument schemas ─────────────────────────────────────────────────

DateStr = Annotated[
    str, Field(pattern=r"^\d{4}-\d{2}-\d{2}$", description="Date in YYYY-MM-DD format."),
]
TimeStr = Annotated[
    str, Field(pattern=r"^\d{2}:\d{2}$", description="Start time, 24-hour HH:MM."),
]


class GetCurrentDatetimeArgs(BaseModel):
    pass


class ScheduleMeetingArgs(BaseModel):
    title: str = Field(..., min_length=1, description="Meeting title.")
    date: DateStr
    time: TimeStr
    duration: int = Field(30, ge=5, le=480, description="Duration in minutes.")
    description: str = Field("", description="Optional agenda or notes.")
    attendees: list[str] = Field(default_factory=list, description="Attendee email addresses.")


class CheckAvailabilityArgs(BaseModel):
    date: DateStr
    time: TimeStr
    duration: int = Field(30, ge=5, le=480, description="Duration in minutes.")


class ListEventsArgs(BaseModel):
    max_results: int = Field(10, ge=1, le=50, description="Maximum number of events.")
    time_min: str | None = Field(
        None, description="ISO 8601 lower bound; defaults to now.",
    )


class FindNextAvailableArgs(BaseModel):
    duration: int = Field(30, ge=5, le=480, description="Duration in minutes.")
    start_from: str | None = Field(
        None, description="ISO 8601 datetime to search from; defaults to now. Past values mean now.",
    )


def _summarize_event(item: dict[str, Any]) -> dict[str, Any]:
    """Reduce a Google event resource to what the model needs."""
    start = item.get("start", {})
    end = item.get("end", {})
    meet_link = None
    for entry in item.get("conferenceData", {}).get("entryPoints", []):
        if entry.get("uri"):
            meet_link = entry["uri"]
            break
    return {
        "id": item.get("id"),
        "title": item.get("summary", "(no title)"),
        "start": start.get("dateTime") or start.get("date"),
        "end": end.get("dateTime") or end.get("date"),
        "html_link": item.get("htmlLink"),
        "meet_link": meet_link or item.get("hangoutLink"),
    }


# ── Registry builder ────────────────────────────────────────────────


def build_calendar_registry(
    credentials: CalendarCredentials | None,
    *,
    provider_factory: Callable[[CalendarCredentials], CalendarProvider] = GoogleCalendarClient,
    finder: AvailabilityFinder | None = None,
    clock: Callable[[], datetime] | None = None,
) -> ToolRegistry:
    """Build the tool registry for one chat turn of one user.

    ``credentials=None`` is a normal input: every calendar tool then answers
    with a simulated result and ``provider_factory`` is never called.
    """
    clock = clock or (lambda: datetime.now(UTC))
    finder = finder or AvailabilityFinder(clock=clock)
    tz = finder.timezone
    provider: CalendarProvider | None = None

    def is_authorized() -> bool:
        return credentials is not None and credentials.is_valid(clock())

    def get_provider() -> CalendarProvider:
        nonlocal provider
        if provider is None:
            provider = provider_factory(credentials)
        return provider

    def resolve_start(value: str | None) -> datetime:
        return parse_timestamp(value, tz) if value else clock()

    def search_start(value: str | None) -> datetime:
        # Never search the past, whatever year the model wrote
        return max(resolve_start(value), clock())

    # ── Tool 1: current date and time (pure) ─────────────────────────

    async def get_current_datetime(args: dict[str, Any]) -> dict[str, Any]:
        now = clock().astimezone(tz)
        return {
            "success": True,
            "date": now.strftime("%Y-%m-%d"),
            "time": now.strftime("%H:%M"),
            "weekday": _WEEKDAYS[now.weekday()],
            "iso": now.isoformat(),
            "timezone": str(tz),
            "formatted": finder.format(now),
        }

    # ── Tool 2: create a meeting ─────────────────────────────────────

    async def schedule_meeting(args: dict[str, Any]) -> dict[str, Any]:
        slot = SlotRequest(date=args["date"], time=args["time"], duration_minutes=args["duration"])
        start, end = slot.start(tz), slot.end(tz)
        created = await get_provider().create_event(
            EventDetails(
                title=args["title"],
                start=start,
                end=end,
                description=args.get("description", ""),
                attendees=args.get("attendees", []),
            )
        )
        return {
            "success": True,
            "event_id": created.event_id,
            "html_link": created.html_link,
            "meet_link": created.meet_link,
            "title": args["title"],
            "start": start.isoformat(),
            "end": end.isoformat(),
            "start_formatted": finder.format(start),
        }

    def simulate_schedule(args: dict[str, Any]) -> dict[str, Any]:
        return {
            "message": _NOT_CONNECTED,
            "title": args.get("title"),
            "date": args.get("date"),
            "time": args.get("time"),
            "duration": args.get("duration"),
        }

    # ── Tool 3: is a slot free? ──────────────────────────────────────

    async def check_availability(args: dict[str, Any]) -> dict[str, Any]:
        slot = SlotRequest(date=args["date"], time=args["time"], duration_minutes=args["duration"])
        busy = await get_provider().get_busy_intervals(slot.start(tz), slot.end(tz))
        result = finder.check_availability(slot.date, slot.time, slot.duration_minutes, busy)
        return {"success": True, **result.to_dict()}

    def simulate_availability(args: dict[str, Any]) -> dict[str, Any]:
        return {"available": True, "conflicts": [], "message": _NOT_CONNECTED}

    # ── Tool 4: upcoming events ──────────────────────────────────────

    async def list_events(args: dict[str, Any]) -> dict[str, Any]:
        items = await get_provider().list_events(
            time_min=resolve_start(args.get("time_min")),
            max_results=args["max_results"],
        )
        events = [_summarize_event(item) for item in items]
        return {"success": True, "events": events, "count": len(events)}

    def simulate_events(args: dict[str, Any]) -> dict[str, Any]:
        return {"events": [], "count": 0, "message": _NOT_CONNECTED}

    # ── Tool 5: next free slot ───────────────────────────────────────

    async def find_next_available(args: dict[str, Any]) -> dict[str, Any]:
        start_from = search_start(args.get("start_from"))
        busy = await get_provider().get_busy_intervals(start_from, start_from + SEARCH_HORIZON)
        result = finder.find_next_available_slot(args["duration"], start_from, busy)
        return {"success": True, **result.to_dict()}

    def simulate_next_slot(args: dict[str, Any]) -> dict[str, Any]:
        start_from = search_start(args.get("start_from"))
        result = finder.find_next_available_slot(args.get("duration", 30), start_from, [])
        return {**result.to_dict(), "message": _NOT_CONNECTED}

    # ── Registration ─────────────────────────────────────────────────

    registry = ToolRegistry()
    registry.register(
        "get_current_datetime",
        get_current_datetime,
        description=(
            "Get the current date, time and weekday. Call this before resolving "
            "relative dates such as 'tomorrow' or 'next Monday'."
        ),
        args_schema=GetCurrentDatetimeArgs,
    )
    registry.register(
        "schedule_meeting",
        with_simulated_fallback(schedule_meeting, is_authorized, simulate_schedule),
        description="Create a calendar event with a Google Meet link and invite attendees.",
        args_schema=ScheduleMeetingArgs,
    )
    registry.register(
        "check_availability",
        with_simulated_fallback(check_availability, is_authorized, simulate_availability),
        description="Check whether the user's calendar is free for a given date, time and duration.",
        args_schema=CheckAvailabilityArgs,
    )
    registry.register(
        "list_events",
        with_simulated_fallback(list_events, is_authorized, simulate_events),
        description="List the user's upcoming calendar events.",
        args_schema=ListEventsArgs,
    )
    registry.register(
        "find_next_available",
        with_simulated_fallback(find_next_available, is_authorized, simulate_next_slot),
        description=(
            "Find the next free slot of the given duration during business hours "
            "(09:00-18:00) within the next 7 days."
        ),
        args_schema=FindNextAvailableArgs,
    )
    logger.debug(
        "Calendar tools built (authorized=%s): %s", is_authorized(), registry.names(),
    )
    return registry
