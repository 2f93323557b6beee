"""Data classes shared by the fetcher, classifier, pipeline and emitter."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from urllib.parse import urlencode

FEED_URL = "https://www.spielerplus.de/events/ics"
"""Endpoint serving a user's raw calendar subscription."""


class AttendanceStatus(str, Enum):
    """The user's attendance state for one event.

    Every member carries its calendar emoji; the mapping is fixed.
    """

    ATTENDING = "attending"
    NOT_ATTENDING = "not_attending"
    MAYBE = "maybe"
    NO_RESPONSE = "no_response"
    NOT_NOMINATED = "not_nominated"
    AUTH_FAILED = "auth_failed"

    @property
    def emoji(self) -> str:
        return _EMOJI[self]


_EMOJI = {
    AttendanceStatus.ATTENDING: "👍",
    AttendanceStatus.NOT_ATTENDING: "👎",
    AttendanceStatus.MAYBE: "❓",
    AttendanceStatus.NO_RESPONSE: "🤷",
    AttendanceStatus.NOT_NOMINATED: "❌",
    AttendanceStatus.AUTH_FAILED: "🔒",
}


@dataclass(frozen=True)
class AttendanceResult:
    """Outcome of classifying one event detail page.

    Use :meth:`from_status` rather than the constructor; the constructor
    only validates that the four fields agree with each other.

    :param nominated: ``False`` only when the user is not nominated.
    :param attending: ``True`` only for :attr:`AttendanceStatus.ATTENDING`.
    :param status: The inferred :class:`AttendanceStatus`.
    :param emoji: The emoji belonging to *status*.
    """

    nominated: bool
    attending: bool
    status: AttendanceStatus
    emoji: str

    def __post_init__(self) -> None:
        if self.emoji != self.status.emoji:
            raise ValueError(f"emoji {self.emoji!r} does not match {self.status.value}")
        if self.attending != (self.status is AttendanceStatus.ATTENDING):
            raise ValueError(f"attending={self.attending} contradicts {self.status.value}")
        if self.nominated == (self.status is AttendanceStatus.NOT_NOMINATED):
            raise ValueError(f"nominated={self.nominated} contradicts {self.status.value}")

    @classmethod
    def from_status(cls, status: AttendanceStatus) -> AttendanceResult:
        """Build the one valid result for *status*."""
        return cls(
            nominated=status is not AttendanceStatus.NOT_NOMINATED,
            attending=status is AttendanceStatus.ATTENDING,
            status=status,
            emoji=status.emoji,
        )


@dataclass
class CalendarEvent:
    """A single event read from the user's calendar feed.

    :param uid: Unique identifier from the feed.
    :param summary: Display title. The pipeline prefixes it with an emoji.
    :param start: Local wall-clock start, or a ``date`` for all-day events.
    :param end: Local wall-clock end, or a ``date`` for all-day events.
    :param description: Optional free text.
    :param location: Optional location text.
    :param url: Link to the event's attendance page, if the feed has one.
    :param status: The feed's own ``STATUS`` token, passed through as-is.
    :param attendance: Set by the pipeline once the event is classified.
    """

    uid: str
    summary: str
    start: datetime | date
    end: datetime | date | None = None
    description: str | None = None
    location: str | None = None
    url: str | None = None
    status: str | None = None
    attendance: AttendanceResult | None = None


@dataclass(frozen=True)
class Credentials:
    """SpielerPlus login, used for both the website and the ICS feed."""

    username: str
    password: str = field(repr=False)


@dataclass(frozen=True)
class FilterRequest:
    """Everything needed to generate one filtered calendar.

    :param feed_url: URL of the raw ICS subscription.
    :param credentials: The user's SpielerPlus login.
    :param display_name: Calendar name shown by calendar clients.
    :param show_not_nominated: Keep events the user is not nominated for.
    """

    feed_url: str
    credentials: Credentials
    display_name: str = "Team Calendar"
    show_not_nominated: bool = False

    @classmethod
    def for_token(
        cls,
        token: str,
        user_id: str,
        credentials: Credentials,
        display_name: str = "Team Calendar",
        show_not_nominated: bool = False,
    ) -> FilterRequest:
        """Build a request from the ``t`` and ``u`` values of a subscription URL."""
        feed_url = f"{FEED_URL}?{urlencode({'t': token, 'u': user_id})}"
        return cls(
            feed_url=feed_url,
            credentials=credentials,
            display_name=display_name,
            show_not_nominated=show_not_nominated,
        )
