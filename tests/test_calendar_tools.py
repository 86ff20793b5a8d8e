"""Tests for the calendar tools: real path via a fake provider, simulated path without credentials."""

from __future__ import annotations

from datetime import datetime, timedelta
from unittest.mock import AsyncMock, MagicMock

import pytest

from assistant.services.availability import AvailabilityFinder, BusyInterval
from assistant.services.calendar_client import CalendarCredentials, CreatedEvent
from assistant.tools.calendar import build_calendar_registry
from assistant.tools.registry import ToolExecutionFailed

CALENDAR_TOOLS = ("schedule_meeting", "check_availability", "list_events", "find_next_available")

SAMPLE_ARGS = {
    "schedule_meeting": {"title": "Sync", "date": "2025-03-13", "time": "15:00", "duration": 45},
    "check_availability": {"date": "2025-03-13", "time": "15:00"},
    "list_events": {},
    "find_next_available": {"duration": 60},
}


@pytest.fixture
def provider():
    fake = MagicMock()
    fake.get_busy_intervals = AsyncMock(return_value=[])
    fake.list_events = AsyncMock(return_value=[])
    fake.create_event = AsyncMock(
        return_value=CreatedEvent(
            event_id="evt-1",
            html_link="https://calendar.google.com/event?eid=evt-1",
            meet_link="https://meet.google.com/abc-defg-hij",
        )
    )
    return fake


@pytest.fixture
def provider_factory(provider):
    return MagicMock(return_value=provider)


@pytest.fixture
def build(provider_factory, fixed_now):
    def _build(credentials):
        return build_calendar_registry(
            credentials,
            provider_factory=provider_factory,
            finder=AvailabilityFinder("America/Mexico_City", clock=lambda: fixed_now),
            clock=lambda: fixed_now,
        )

    return _build


@pytest.fixture
def credentials():
    return CalendarCredentials(access_token="ya29.token")


class TestRegistryShape:
    def test_registers_the_five_tools_in_order(self, build):
        registry = build(None)
        assert registry.names() == ["get_current_datetime", *CALENDAR_TOOLS]

    def test_every_tool_has_a_schema_and_description(self, build):
        for schema in build(None).schemas():
            assert schema["function"]["description"]
            assert schema["function"]["parameters"]["type"] == "object"


class TestSimulatedResults:
    @pytest.mark.parametrize("tool", CALENDAR_TOOLS)
    async def test_missing_credentials_simulate_success(self, build, provider_factory, tool):
        result = await build(None).invoke(tool, SAMPLE_ARGS[tool])

        assert result["success"] is True
        assert result["simulated"] is True
        provider_factory.assert_not_called()

    @pytest.mark.parametrize("tool", CALENDAR_TOOLS)
    async def test_expired_credentials_simulate_success(self, build, provider_factory, fixed_now, tool):
        expired = CalendarCredentials(
            access_token="ya29.old", expires_at=fixed_now - timedelta(minutes=1),
        )
        result = await build(expired).invoke(tool, SAMPLE_ARGS[tool])

        assert result["simulated"] is True
        provider_factory.assert_not_called()

    async def test_simulated_schedule_echoes_request(self, build):
        result = await build(None).invoke("schedule_meeting", SAMPLE_ARGS["schedule_meeting"])
        assert result["title"] == "Sync"
        assert result["date"] == "2025-03-13"
        assert result["duration"] == 45
        assert "not connected" in result["message"]

    async def test_simulated_availability_is_free(self, build):
        result = await build(None).invoke("check_availability", SAMPLE_ARGS["check_availability"])
        assert result["available"] is True
        assert result["conflicts"] == []

    async def test_simulated_next_slot_uses_the_clock(self, build):
        result = await build(None).invoke("find_next_available", {})
        assert result["available"] is True
        assert result["suggested_time"] == "2025-03-12T10:30:00-06:00"

    async def test_simulated_next_slot_ignores_past_start(self, build):
        result = await build(None).invoke("find_next_available", {"start_from": "2023-03-12T09:00:00"})
        assert result["suggested_time"] == "2025-03-12T10:30:00-06:00"

    async def test_current_datetime_never_simulated(self, build):
        result = await build(None).invoke("get_current_datetime", {})
        assert "simulated" not in result
        assert result["date"] == "2025-03-12"
        assert result["time"] == "10:07"
        assert result["weekday"] == "Wednesday"
        assert result["timezone"] == "America/Mexico_City"


class TestRealCalendar:
    async def test_schedule_meeting_creates_event_in_local_time(self, build, credentials, provider, mexico_city):
        result = await build(credentials).invoke(
            "schedule_meeting",
            {**SAMPLE_ARGS["schedule_meeting"], "attendees": ["ana@example.com"]},
        )

        details = provider.create_event.await_args.args[0]
        assert details.title == "Sync"
        assert details.start == datetime(2025, 3, 13, 15, 0, tzinfo=mexico_city)
        assert details.end == datetime(2025, 3, 13, 15, 45, tzinfo=mexico_city)
        assert details.attendees == ["ana@example.com"]
        assert result["success"] is True
        assert result["event_id"] == "evt-1"
        assert result["meet_link"] == "https://meet.google.com/abc-defg-hij"
        assert "simulated" not in result

    async def test_check_availability_reports_conflicts(self, build, credentials, provider, mexico_city):
        provider.get_busy_intervals.return_value = [
            BusyInterval(
                datetime(2025, 3, 13, 14, 30, tzinfo=mexico_city),
                datetime(2025, 3, 13, 15, 15, tzinfo=mexico_city),
            )
        ]
        result = await build(credentials).invoke("check_availability", SAMPLE_ARGS["check_availability"])

        assert result["success"] is True
        assert result["available"] is False
        assert result["conflicts"][0]["start"] == "13/03/2025, 14:30:00"
        time_min, time_max = provider.get_busy_intervals.await_args.args
        assert time_min == datetime(2025, 3, 13, 15, 0, tzinfo=mexico_city)
        assert time_max == datetime(2025, 3, 13, 15, 30, tzinfo=mexico_city)

    async def test_list_events_summarizes_items(self, build, credentials, provider, fixed_now):
        provider.list_events.return_value = [
            {
                "id": "e1",
                "summary": "Standup",
                "start": {"dateTime": "2025-03-12T11:00:00-06:00"},
                "end": {"dateTime": "2025-03-12T11:15:00-06:00"},
                "hangoutLink": "https://meet.google.com/xyz",
            },
            {"id": "e2", "start": {"date": "2025-03-14"}, "end": {"date": "2025-03-15"}},
        ]
        result = await build(credentials).invoke("list_events", {"max_results": 5})

        assert result["count"] == 2
        assert result["events"][0]["title"] == "Standup"
        assert result["events"][0]["meet_link"] == "https://meet.google.com/xyz"
        assert result["events"][1]["title"] == "(no title)"
        assert result["events"][1]["start"] == "2025-03-14"
        provider.list_events.assert_awaited_once_with(time_min=fixed_now, max_results=5)

    async def test_find_next_available_fetches_seven_days(self, build, credentials, provider, mexico_city):
        start = datetime(2025, 3, 12, 10, 7, tzinfo=mexico_city)
        provider.get_busy_intervals.return_value = [
            BusyInterval(
                datetime(2025, 3, 12, 10, 30, tzinfo=mexico_city),
                datetime(2025, 3, 12, 12, 0, tzinfo=mexico_city),
            )
        ]
        result = await build(credentials).invoke(
            "find_next_available", {"duration": 30, "start_from": "2025-03-12T10:07:00"},
        )

        time_min, time_max = provider.get_busy_intervals.await_args.args
        assert time_min == start
        assert time_max == start + timedelta(days=7)
        assert result["available"] is True
        assert result["suggested_time"] == "2025-03-12T12:00:00-06:00"

    async def test_find_next_available_ignores_past_start(self, build, credentials, provider, fixed_now):
        result = await build(credentials).invoke(
            "find_next_available", {"duration": 30, "start_from": "2023-03-12T09:00:00"},
        )

        time_min, time_max = provider.get_busy_intervals.await_args.args
        assert time_min == fixed_now
        assert time_max == fixed_now + timedelta(days=7)
        assert result["suggested_time"] == "2025-03-12T10:30:00-06:00"

    async def test_provider_built_once_per_registry(self, build, credentials, provider_factory):
        registry = build(credentials)
        await registry.invoke("check_availability", SAMPLE_ARGS["check_availability"])
        await registry.invoke("list_events", {})
        provider_factory.assert_called_once_with(credentials)

    async def test_provider_error_becomes_execution_failure(self, build, credentials, provider):
        provider.list_events.side_effect = RuntimeError("403 forbidden")
        with pytest.raises(ToolExecutionFailed, match="403 forbidden"):
            await build(credentials).invoke("list_events", {})

    async def test_invalid_date_rejected_before_calendar_call(self, build, credentials, provider):
        with pytest.raises(ToolExecutionFailed):
            await build(credentials).invoke(
                "check_availability", {"date": "13/03/2025", "time": "15:00"},
            )
        provider.get_busy_intervals.assert_not_awaited()
