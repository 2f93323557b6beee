"""Builds the published ICS document from annotated events."""

from __future__ import annotations

import time
from datetime import datetime, timedelta, timezone
from typing import Iterable

from icalendar import Calendar, Event, Timezone, TimezoneDaylight, TimezoneStandard

from .models import CalendarEvent

TZID = "Europe/Berlin"
PRODID = "-//SpielerPlus Filter//Calendar Filter//DE"
CALENDAR_DESCRIPTION = "Calendar with attendance status indicators"


def berlin_timezone() -> Timezone:
    """Return a fixed ``VTIMEZONE`` for Europe/Berlin (CET/CEST).

    Daylight saving time starts on the last Sunday of March at 02:00 and
    ends on the last Sunday of October at 03:00.
    """
    tz = Timezone()
    tz.add("tzid", TZID)

    daylight = TimezoneDaylight()
    daylight.add("dtstart", datetime(1970, 3, 29, 2, 0, 0))
    daylight.add("tzoffsetfrom", timedelta(hours=1))
    daylight.add("tzoffsetto", timedelta(hours=2))
    daylight.add("tzname", "CEST")
    daylight.add("rrule", {"freq": "YEARLY", "bymonth": 3, "byday": "-1SU"})
    tz.add_component(daylight)

    standard = TimezoneStandard()
    standard.add("dtstart", datetime(1970, 10, 25, 3, 0, 0))
    standard.add("tzoffsetfrom", timedelta(hours=2))
    standard.add("tzoffsetto", timedelta(hours=1))
    standard.add("tzname", "CET")
    standard.add("rrule", {"freq": "YEARLY", "bymonth": 10, "byday": "-1SU"})
    tz.add_component(standard)

    return tz


def _add_time(event: Event, name: str, value) -> None:
    # Datetimes are local wall-clock values and must not be converted.
    if isinstance(value, datetime):
        event.add(name, value.replace(tzinfo=None), parameters={"TZID": TZID})
    else:
        event.add(name, value)


def build_calendar(events: Iterable[CalendarEvent], name: str) -> Calendar:
    """Build an :class:`icalendar.Calendar` from annotated events.

    * Timed events keep their wall-clock components and are tagged with
      ``TZID=Europe/Berlin``; a matching ``VTIMEZONE`` is embedded.
    * All-day events are written as ``DATE`` values.
    * ``SEQUENCE`` is the current Unix time so that clients pick up
      changed attendance emoji on every refresh.

    :param events: Events in publishing order.
    :param name: Calendar display name.
    :returns: A fully populated :class:`icalendar.Calendar`.
    """
    cal = Calendar()
    cal.add("prodid", PRODID)
    cal.add("version", "2.0")
    cal.add("calscale", "GREGORIAN")
    cal.add("x-wr-calname", name)
    cal.add("x-wr-caldesc", CALENDAR_DESCRIPTION)
    cal.add("x-wr-timezone", TZID)
    cal.add_component(berlin_timezone())

    sequence = int(time.time())
    stamp = datetime.now(timezone.utc)

    for ev in events:
        event = Event()
        event.add("uid", ev.uid)
        event.add("summary", ev.summary)
        event.add("dtstamp", stamp)
        event.add("sequence", sequence)
        _add_time(event, "dtstart", ev.start)
        if ev.end is not None:
            _add_time(event, "dtend", ev.end)
        if ev.description:
            event.add("description", ev.description)
        if ev.location:
            event.add("location", ev.location)
        if ev.url:
            event.add("url", ev.url)
        if ev.status:
            event.add("status", ev.status)
        cal.add_component(event)

    return cal
