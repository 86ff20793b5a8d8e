"""System prompts and assistant modes.

A mode decides two things for a chat turn: the default system prompt and
whether the calendar tools are offered to the model.  Callers may still
override the prompt per request.
"""

from __future__ import annotations

from dataclasses import dataclass

DEFAULT_MODE = "general"

GENERAL_PROMPT = (
    "You are a helpful and friendly personal assistant. "
    "Reply in the same language the user writes in. "
    "Keep answers concise unless the user asks for detail."
)

CALENDAR_PROMPT = """You are a personal assistant that manages the user's Google Calendar.
Reply in the same language the user writes in.

## Tools
- `get_current_datetime`: ALWAYS call this before resolving relative dates
  ("tomorrow", "next Friday"). Never assume the current year.
- `check_availability`: check a specific date/time before scheduling.
- `find_next_available`: when the requested slot is busy, or the user asks
  for "the next free slot". Business hours are 09:00-18:00.
- `schedule_meeting`: create the meeting once date, time and title are known.
- `list_events`: show upcoming events.

## Rules
- Dates are YYYY-MM-DD and times are 24-hour HH:MM.
- If a tool result has `"simulated": true`, tell the user the calendar is not
  connected and that nothing was actually booked.
- If a tool result has `"success": false`, explain the problem briefly and
  suggest what to try next. Never invent events or links.
"""


@dataclass(frozen=True)
class AssistantMode:
    mode_id: str
    name: str
    prompt: str
    tools_enabled: bool = False


MODES: dict[str, AssistantMode] = {
    "general": AssistantMode("general", "General assistant", GENERAL_PROMPT),
    "calendar": AssistantMode("calendar", "Calendar", CALENDAR_PROMPT, tools_enabled=True),
}


def get_mode(mode_id: str | None) -> AssistantMode:
    """Return the mode for *mode_id*, falling back to the general mode."""
    return MODES.get(mode_id or DEFAULT_MODE, MODES[DEFAULT_MODE])


def get_system_prompt(mode_id: str | None = None, override: str | None = None) -> str:
    """The caller's prompt if given, otherwise the mode's default prompt."""
    if override and override.strip():
        return override
    return get_mode(mode_id).prompt
