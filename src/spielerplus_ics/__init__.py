"""Publishes a SpielerPlus team calendar with attendance status emoji.

Main public symbols:

* :class:`SpielerPlusIcs`: login, fetch, classify and emit in one call.
* :class:`AttendanceClassifier`: infers attendance from an event page.
* :class:`EventPipeline`: annotates and filters a list of events.
* :class:`CalendarEvent`, :class:`AttendanceResult`,
  :class:`AttendanceStatus`, :class:`FilterRequest`: data classes.
"""

from .classifier import AttendanceClassifier, RetryPolicy, parse_attendance
from .exceptions import AuthError, ClassificationDegradation, FetchError, SpielerPlusError
from .models import AttendanceResult, AttendanceStatus, CalendarEvent, Credentials, FilterRequest
from .pipeline import EventPipeline
from .session import SpielerPlusSession, authenticate
from .spielerplus_ics import SpielerPlusIcs

__all__ = [
    "AttendanceClassifier",
    "AttendanceResult",
    "AttendanceStatus",
    "AuthError",
    "CalendarEvent",
    "ClassificationDegradation",
    "Credentials",
    "EventPipeline",
    "FetchError",
    "FilterRequest",
    "RetryPolicy",
    "SpielerPlusError",
    "SpielerPlusIcs",
    "SpielerPlusSession",
    "authenticate",
    "parse_attendance",
]
