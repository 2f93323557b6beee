"""Tests for EventPipeline.process."""

from datetime import datetime
from unittest.mock import MagicMock

import pytest

from spielerplus_ics.classifier import AttendanceClassifier, RetryPolicy
from spielerplus_ics.models import AttendanceResult, AttendanceStatus, CalendarEvent
from spielerplus_ics.pipeline import EventPipeline


def _event(uid, url=None, summary=None):
    return CalendarEvent(
        uid=uid,
        summary=summary or f"Event {uid}",
        start=datetime(2025, 3, 5, 18, 30),
        end=datetime(2025, 3, 5, 20, 0),
        url=url,
    )


def _classifier(statuses):
    """A classifier mock returning the given status for each URL."""
    classifier = MagicMock(spec=AttendanceClassifier)

    def classify(session, url):
        status = statuses[url]
        if isinstance(status, Exception):
            raise status
        return AttendanceResult.from_status(status)

    classifier.classify.side_effect = classify
    return classifier


@pytest.fixture()
def events():
    return [
        _event("a", "https://x/a"),
        _event("b", "https://x/b"),
        _event("c"),
        _event("d", "https://x/d"),
        _event("e", "https://x/e"),
    ]


STATUSES = {
    "https://x/a": AttendanceStatus.ATTENDING,
    "https://x/b": AttendanceStatus.NOT_NOMINATED,
    "https://x/d": AttendanceStatus.MAYBE,
    "https://x/e": AttendanceStatus.NOT_NOMINATED,
}


def test_not_nominated_events_are_dropped(events, policy):
    """N=5 events, K=2 not nominated: 3 remain."""
    pipeline = EventPipeline(_classifier(STATUSES), policy)
    result = pipeline.process(events, session=object())
    assert [e.uid for e in result] == ["a", "c", "d"]


def test_show_not_nominated_keeps_all(events, policy):
    pipeline = EventPipeline(_classifier(STATUSES), policy)
    result = pipeline.process(events, session=object(), show_not_nominated=True)
    assert [e.uid for e in result] == ["a", "b", "c", "d", "e"]
    assert result[1].summary == "❌ Event b"


def test_summary_prefix_and_attached_result(events, policy):
    pipeline = EventPipeline(_classifier(STATUSES), policy)
    result = pipeline.process(events, session=object())
    assert result[0].summary == "👍 Event a"
    assert result[0].attendance.status is AttendanceStatus.ATTENDING
    assert result[2].summary == "❓ Event d"
    assert result[2].attendance.emoji == "❓"


def test_event_without_url_is_attending_without_classifying(policy):
    classifier = _classifier({})
    pipeline = EventPipeline(classifier, policy)
    result = pipeline.process([_event("x"), _event("y")], session=object())
    assert [e.summary for e in result] == ["👍 Event x", "👍 Event y"]
    assert all(e.attendance.status is AttendanceStatus.ATTENDING for e in result)
    classifier.classify.assert_not_called()


def test_classification_error_degrades_to_no_response(policy):
    statuses = {
        "https://x/1": RuntimeError("boom"),
        "https://x/2": AttendanceStatus.NOT_ATTENDING,
    }
    pipeline = EventPipeline(_classifier(statuses), policy)
    result = pipeline.process(
        [_event("1", "https://x/1"), _event("2", "https://x/2")], session=object()
    )
    assert [e.summary for e in result] == ["🤷 Event 1", "👎 Event 2"]
    assert result[0].attendance.status is AttendanceStatus.NO_RESPONSE


def test_classification_is_sequential_in_feed_order(events, policy):
    classifier = _classifier(STATUSES)
    EventPipeline(classifier, policy).process(events, session="session")
    urls = [c.args[1] for c in classifier.classify.call_args_list]
    assert urls == ["https://x/a", "https://x/b", "https://x/d", "https://x/e"]
    assert all(c.args[0] == "session" for c in classifier.classify.call_args_list)


def test_pacing_delay_between_classifications(events):
    pauses = []
    policy = RetryPolicy(sleep=pauses.append)
    EventPipeline(_classifier(STATUSES), policy).process(events, session=object())
    # Four classified events: three pauses between them, none for the URL-less one.
    assert pauses == [1.0, 1.0, 1.0]


def test_empty_input(policy):
    assert EventPipeline(_classifier({}), policy).process([], session=object()) == []
