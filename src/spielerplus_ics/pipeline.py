"""Runs the attendance classifier over a calendar's events."""

from __future__ import annotations

import logging
from typing import Iterable

from .classifier import AttendanceClassifier, PageSession, RetryPolicy
from .exceptions import ClassificationDegradation
from .models import AttendanceResult, AttendanceStatus, CalendarEvent

logger = logging.getLogger(__name__)


class EventPipeline:
    """Annotates events with their attendance status and filters them.

    Events are classified one at a time with a pause between consecutive
    page fetches so that the website does not throttle the session.

    :param classifier: Classifier used for events with a detail URL.
    :param policy: Supplies the pacing delay. Defaults to the
        classifier's policy.
    """

    def __init__(
        self,
        classifier: AttendanceClassifier | None = None,
        policy: RetryPolicy | None = None,
    ) -> None:
        self.classifier = classifier or AttendanceClassifier(policy)
        self.policy = policy or self.classifier.policy

    def _classify(self, session: PageSession, event: CalendarEvent) -> AttendanceResult:
        try:
            return self.classifier.classify(session, event.url)
        except Exception as e:
            degradation = ClassificationDegradation(str(e), url=event.url)
            logger.warning(
                f"Classification failed for event {event.uid}: {degradation}",
                exc_info=True,
            )
            return AttendanceResult.from_status(AttendanceStatus.NO_RESPONSE)

    def process(
        self,
        events: Iterable[CalendarEvent],
        session: PageSession,
        show_not_nominated: bool = False,
    ) -> list[CalendarEvent]:
        """Classify *events* in order and return the ones to publish.

        Each event's summary is prefixed with its status emoji and the
        :class:`AttendanceResult` is stored on ``event.attendance``. Events
        without a detail URL count as attending.

        :param events: Events in feed order.
        :param session: Authenticated session used for every page fetch.
        :param show_not_nominated: Keep events the user is not nominated for.
        :returns: The annotated events, in their original order.
        """
        annotated: list[CalendarEvent] = []
        classified = 0

        for event in events:
            if not event.url:
                result = AttendanceResult.from_status(AttendanceStatus.ATTENDING)
            else:
                if classified:
                    self.policy.pause(self.policy.pacing_delay)
                result = self._classify(session, event)
                classified += 1

            event.summary = f"{result.emoji} {event.summary}"
            event.attendance = result
            annotated.append(event)

        kept = [e for e in annotated if show_not_nominated or e.attendance.nominated]
        logger.info(
            f"Classified {classified} of {len(annotated)} events, "
            f"publishing {len(kept)}"
        )
        return kept
