"""SpielerPlusIcs class module.

Ties the session, feed, pipeline and emitter together into one call that
turns a :class:`~spielerplus_ics.models.FilterRequest` into ICS text.
"""

from __future__ import annotations

import logging
from pathlib import Path

from icalendar import Calendar

from .classifier import AttendanceClassifier, RetryPolicy
from .emitter import build_calendar
from .feed import LOCAL_TIMEZONE, fetch_calendar
from .models import CalendarEvent, FilterRequest
from .pipeline import EventPipeline
from .session import BASE_URL, SpielerPlusSession

logger = logging.getLogger(__name__)


class SpielerPlusIcs:
    """Produces a user's SpielerPlus calendar annotated with attendance emoji.

    The flow is: log in, download the raw feed, classify every event's
    attendance page, drop events the user is not nominated for (unless
    requested), and serialize the rest.

    :param request: Feed URL, credentials, calendar name and filter flag.
    :param session: A session to reuse. A new one is created if omitted;
        it is logged in (or reused as is) on every :meth:`filter_events`.
    :param policy: Retry limits and delays for classification.
    :param base_url: SpielerPlus origin.
    :param timezone: Zone that feed times are converted to.

    Example usage::

        request = FilterRequest.for_token(
            token="abc123",
            user_id="42",
            credentials=Credentials("me@example.com", "secret"),
            display_name="First Team",
        )
        SpielerPlusIcs(request).write_ics("team.ics")
    """

    def __init__(
        self,
        request: FilterRequest,
        session: SpielerPlusSession | None = None,
        policy: RetryPolicy | None = None,
        base_url: str = BASE_URL,
        timezone: str = LOCAL_TIMEZONE,
    ) -> None:
        self.request = request
        self.policy = policy or RetryPolicy()
        self.session = session or SpielerPlusSession(base_url=base_url, timeout=self.policy.timeout)
        self.timezone = timezone
        self.pipeline = EventPipeline(AttendanceClassifier(self.policy, base_url=base_url), self.policy)

    def filter_events(self) -> list[CalendarEvent]:
        """Log in, fetch the feed and return the annotated, filtered events.

        :raises AuthError: If logging into SpielerPlus fails.
        :raises FetchError: If the feed cannot be fetched or parsed.
        """
        creds = self.request.credentials
        self.session.login(creds.username, creds.password)

        events = fetch_calendar(
            self.request.feed_url,
            creds,
            timeout=self.policy.timeout,
            timezone=self.timezone,
        )
        return self.pipeline.process(
            events.values(),
            self.session,
            show_not_nominated=self.request.show_not_nominated,
        )

    def _build_calendar(self) -> Calendar:
        return build_calendar(self.filter_events(), self.request.display_name)

    def get_ics(self) -> str:
        """Build the filtered calendar and return it as an ICS string."""
        return self._build_calendar().to_ical().decode("utf-8")

    def write_ics(self, path: str | Path) -> None:
        """Build the filtered calendar and write it to *path*.

        :param path: Destination file path. Parent directories must exist.
        """
        Path(path).write_text(self.get_ics(), encoding="utf-8")
