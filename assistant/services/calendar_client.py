"""Async HTTP client for the Google Calendar API v3 with retry logic.

Google Calendar docs: https://developers.google.com/calendar/api/v3/reference
Requests carry the user's OAuth access token as a Bearer token.  Obtaining
and refreshing that token is the auth provider's job; this module only
checks whether the credentials it was handed are usable.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Protocol
from urllib.parse import quote

import httpx

from assistant.config import CALENDAR_ID, CALENDAR_TIMEZONE, GOOGLE_CALENDAR_BASE_URL
from assistant.services.availability import BusyInterval, parse_timestamp
from assistant.services.metrics import metrics

logger = logging.getLogger(__name__)

# ── Retry configuration ─────────────────────────────────────────────
MAX_RETRIES = 3
INITIAL_BACKOFF_SECONDS = 1.0
REQUEST_TIMEOUT_SECONDS = 15.0

# Reminders attached to every created event
EVENT_REMINDERS = {
    "useDefault": False,
    "overrides": [
        {"method": "email", "minutes": 24 * 60},
        {"method": "popup", "minutes": 10},
    ],
}


class CalendarAPIError(Exception):
    """Raised when a Google Calendar call fails after all retries."""

    def __init__(self, message: str, status_code: int | None = None):
        self.status_code = status_code
        super().__init__(message)


# ── Data contracts ──────────────────────────────────────────────────


@dataclass(frozen=True)
class CalendarCredentials:
    """OAuth tokens for one user's calendar.

    Expired or empty credentials are treated exactly like missing ones:
    the calendar tools answer with simulated results.
    """

    access_token: str
    refresh_token: str | None = None
    expires_at: datetime | None = None

    def is_valid(self, now: datetime | None = None) -> bool:
        if not self.access_token:
            return False
        if self.expires_at is None:
            return True
        return self.expires_at > (now or datetime.now(UTC))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CalendarCredentials:
        """Accept ``expires_at`` (ISO string) or ``expiry_date`` (epoch ms)."""
        expires_at: datetime | None = None
        if data.get("expires_at"):
            expires_at = parse_timestamp(data["expires_at"], UTC)
        elif data.get("expiry_date"):
            expires_at = datetime.fromtimestamp(int(data["expiry_date"]) / 1000, tz=UTC)
        return cls(
            access_token=data.get("access_token") or "",
            refresh_token=data.get("refresh_token"),
            expires_at=expires_at,
        )


@dataclass(frozen=True)
class EventDetails:
    title: str
    start: datetime
    end: datetime
    description: str = ""
    attendees: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class CreatedEvent:
    event_id: str
    html_link: str | None = None
    meet_link: str | None = None


class CalendarProvider(Protocol):
    """What the calendar tools need from a calendar backend."""

    async def get_busy_intervals(
        self, time_min: datetime, time_max: datetime,
    ) -> list[BusyInterval]: ...

    async def create_event(self, details: EventDetails) -> CreatedEvent: ...

    async def list_events(
        self, time_min: datetime | None = None, max_results: int = 10,
    ) -> list[dict[str, Any]]: ...


# ── Google implementation ───────────────────────────────────────────


class GoogleCalendarClient:
    """Thin async wrapper around the Calendar v3 REST API.

    Pass ``http_client`` to reuse a connection pool (or a mock transport in
    tests); otherwise a short-lived ``httpx.AsyncClient`` is opened per
    request.
    """

    def __init__(
        self,
        credentials: CalendarCredentials,
        *,
        calendar_id: str | None = None,
        timezone: str | None = None,
        base_url: str | None = None,
        http_client: httpx.AsyncClient | None = None,
    ):
        if not credentials.access_token:
            raise ValueError("GoogleCalendarClient requires an access token")
        self._credentials = credentials
        self._calendar_id = calendar_id or CALENDAR_ID
        self._timezone = timezone or CALENDAR_TIMEZONE
        self._base_url = base_url or GOOGLE_CALENDAR_BASE_URL
        self._http = http_client

    @property
    def _headers(self) -> dict[str, str]:
        return {
            "Authorization": f"Bearer {self._credentials.access_token}",
            "Content-Type": "application/json",
        }

    @property
    def _calendar_path(self) -> str:
        return f"/calendars/{quote(self._calendar_id, safe='')}"

    # ── Internal helpers ─────────────────────────────────────────────

    @asynccontextmanager
    async def _session(self) -> AsyncIterator[httpx.AsyncClient]:
        if self._http is not None:
            yield self._http
            return
        async with httpx.AsyncClient(timeout=REQUEST_TIMEOUT_SECONDS) as client:
            yield client

    async def _request(
        self,
        operation: str,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        json_body: dict[str, Any] | None = None,
    ) -> dict[str, Any]:
        """Execute an HTTP request with exponential-backoff retries.

        ``operation`` is the API method name (``events.insert``) recorded in
        metrics.  Paths embed the calendar id, often an email address, so
        they never become a metric dimension.
        """
        with metrics.track("google_calendar", operation):
            async with self._session() as client:
                return await self._request_with_retries(
                    client, method, path, params=params, json_body=json_body,
                )

    async def _request_with_retries(
        self,
        client: httpx.AsyncClient,
        method: str,
        path: str,
        *,
        params: dict[str, Any] | None,
        json_body: dict[str, Any] | None,
    ) -> dict[str, Any]:
        last_error: Exception | None = None
        for attempt in range(1, MAX_RETRIES + 1):
            try:
                response = await client.request(
                    method,
                    f"{self._base_url}{path}",
                    params=params,
                    json=json_body,
                    headers=self._headers,
                )
                if response.status_code >= 500:
                    raise CalendarAPIError(
                        f"Server error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code >= 400:
                    raise CalendarAPIError(
                        f"Client error {response.status_code}: {response.text}",
                        status_code=response.status_code,
                    )
                if response.status_code == 204 or not response.content:
                    return {}
                return response.json()

            except (httpx.TimeoutException, httpx.ConnectError) as exc:
                last_error = exc
                logger.warning(
                    "Google Calendar attempt %d/%d failed (%s). Retrying in %.1fs…",
                    attempt,
                    MAX_RETRIES,
                    type(exc).__name__,
                    INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)),
                )
            except CalendarAPIError as exc:
                if exc.status_code and exc.status_code >= 500:
                    last_error = exc
                    logger.warning(
                        "Google Calendar server error on attempt %d/%d. Retrying…",
                        attempt,
                        MAX_RETRIES,
                    )
                else:
                    raise  # 4xx errors are not retried

            await asyncio.sleep(INITIAL_BACKOFF_SECONDS * (2 ** (attempt - 1)))

        raise CalendarAPIError(
            f"Google Calendar request failed after {MAX_RETRIES} retries: {last_error}"
        )

    # ── Public API methods ───────────────────────────────────────────

    async def get_busy_intervals(
        self, time_min: datetime, time_max: datetime,
    ) -> list[BusyInterval]:
        """Return the busy blocks of the calendar inside ``[time_min, time_max)``."""
        data = await self._request(
            "freebusy.query",
            "POST",
            "/freeBusy",
            json_body={
                "timeMin": time_min.isoformat(),
                "timeMax": time_max.isoformat(),
                "timeZone": self._timezone,
                "items": [{"id": self._calendar_id}],
            },
        )
        calendar = data.get("calendars", {}).get(self._calendar_id, {})
        if calendar.get("errors"):
            reasons = ", ".join(e.get("reason", "unknown") for e in calendar["errors"])
            raise CalendarAPIError(f"Free/busy lookup failed: {reasons}")
        return [BusyInterval.from_dict(b) for b in calendar.get("busy", [])]

    async def list_events(
        self, time_min: datetime | None = None, max_results: int = 10,
    ) -> list[dict[str, Any]]:
        """List upcoming single events ordered by start time."""
        time_min = time_min or datetime.now(UTC)
        data = await self._request(
            "events.list",
            "GET",
            f"{self._calendar_path}/events",
            params={
                "timeMin": time_min.isoformat(),
                "maxResults": max_results,
                "singleEvents": "true",
                "orderBy": "startTime",
            },
        )
        return data.get("items", [])

    async def create_event(self, details: EventDetails) -> CreatedEvent:
        """Create an event with a Google Meet link and email the attendees.

        The event id is generated here, so a retried insert whose first
        attempt already landed gets a 409 instead of a second event (and a
        second round of invitations).  That 409 counts as success and the
        stored event is fetched instead.
        """
        event_id = uuid.uuid4().hex
        body: dict[str, Any] = {
            "id": event_id,
            "summary": details.title,
            "description": details.description,
            "start": {"dateTime": details.start.isoformat(), "timeZone": self._timezone},
            "end": {"dateTime": details.end.isoformat(), "timeZone": self._timezone},
            "attendees": [{"email": email} for email in details.attendees],
            "conferenceData": {
                "createRequest": {
                    "requestId": f"meet-{uuid.uuid4().hex}",
                    "conferenceSolutionKey": {"type": "hangoutsMeet"},
                }
            },
            "reminders": EVENT_REMINDERS,
        }
        try:
            created = await self._request(
                "events.insert",
                "POST",
                f"{self._calendar_path}/events",
                params={"conferenceDataVersion": 1, "sendUpdates": "all"},
                json_body=body,
            )
        except CalendarAPIError as exc:
            if exc.status_code != 409:
                raise
            logger.info("Event %s already exists (earlier attempt landed); fetching it", event_id)
            created = await self._request(
                "events.get", "GET", f"{self._calendar_path}/events/{event_id}",
            )

        meet_link = None
        for entry in created.get("conferenceData", {}).get("entryPoints", []):
            if entry.get("uri"):
                meet_link = entry["uri"]
                break
        meet_link = meet_link or created.get("hangoutLink")

        logger.info("Created calendar event %s (%s)", created.get("id"), details.title)
        return CreatedEvent(
            event_id=created["id"],
            html_link=created.get("htmlLink"),
            meet_link=meet_link,
        )
