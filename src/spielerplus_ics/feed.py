"""Downloads and parses the user's raw SpielerPlus calendar feed."""

from __future__ import annotations

import logging
from datetime import date, datetime
from zoneinfo import ZoneInfo

import requests
from icalendar import Calendar

from .exceptions import FetchError
from .models import CalendarEvent, Credentials

logger = logging.getLogger(__name__)

LOCAL_TIMEZONE = "Europe/Berlin"


def _wall_clock(value: datetime | date | None, tz: ZoneInfo) -> datetime | date | None:
    """Return *value* as naive local time.

    Aware datetimes are converted to *tz* first; naive datetimes and dates
    are returned unchanged.
    """
    if isinstance(value, datetime) and value.tzinfo is not None:
        return value.astimezone(tz).replace(tzinfo=None)
    return value


def _text(component, name: str) -> str | None:
    value = component.get(name)
    if value is None:
        return None
    return str(value)


def parse_calendar(ics: str | bytes, timezone: str = LOCAL_TIMEZONE) -> dict[str, CalendarEvent]:
    """Parse ICS data into events keyed by UID.

    Only ``VEVENT`` components are kept; absence entries (UIDs containing
    ``absence``) are skipped, as are events whose start or end cannot be
    read as a date or datetime.

    :raises FetchError: If *ics* is not valid iCalendar data.
    """
    try:
        cal = Calendar.from_ical(ics)
    except ValueError as e:
        raise FetchError(f"Failed to parse calendar: {e}") from e

    tz = ZoneInfo(timezone)
    events: dict[str, CalendarEvent] = {}

    for component in cal.walk("VEVENT"):
        uid = _text(component, "uid")
        if not uid or "absence" in uid:
            continue
        if component.get("dtstart") is None:
            logger.warning(f"Skipping event {uid} without DTSTART")
            continue

        try:
            start = component.decoded("dtstart")
            end = component.decoded("dtend") if component.get("dtend") is not None else None
        except ValueError:
            start = end = None
        if not isinstance(start, date) or not (end is None or isinstance(end, date)):
            logger.warning(f"Skipping event {uid} with an unreadable DTSTART or DTEND")
            continue

        events[uid] = CalendarEvent(
            uid=uid,
            summary=_text(component, "summary") or "",
            start=_wall_clock(start, tz),
            end=_wall_clock(end, tz),
            description=_text(component, "description"),
            location=_text(component, "location"),
            url=_text(component, "url"),
            status=_text(component, "status"),
        )

    return events


def fetch_calendar(
    feed_url: str,
    credentials: Credentials,
    timeout: float = 30.0,
    timezone: str = LOCAL_TIMEZONE,
) -> dict[str, CalendarEvent]:
    """Download the calendar at *feed_url* and parse it.

    :param feed_url: The ``/events/ics`` subscription URL.
    :param credentials: Sent as HTTP basic authentication.
    :param timeout: Request timeout in seconds.
    :param timezone: Zone that event times are converted to.
    :returns: Events keyed by UID, in feed order.
    :raises FetchError: On transport, HTTP or parse errors.
    """
    try:
        resp = requests.get(
            feed_url,
            auth=(credentials.username, credentials.password),
            timeout=timeout,
        )
        resp.raise_for_status()
    except requests.RequestException as e:
        raise FetchError(f"Failed to fetch calendar: {e}") from e

    events = parse_calendar(resp.content, timezone=timezone)
    logger.info(f"Fetched {len(events)} events from calendar feed")
    return events
