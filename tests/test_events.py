from datetime import datetime, timedelta, timezone

import pytest

from kubelens.diagnostics.events import EventsAnalyzer
from kubelens.kube import KubeError


class FakeClient:
    def __init__(self, events=None, fail=False):
        self.events = events or []
        self.fail = fail
        self.calls = []

    def list(self, resource, namespace=None, label_selector=None, field_selector=None):
        self.calls.append((resource, namespace, label_selector, field_selector))
        if self.fail:
            raise KubeError("forbidden", 403)
        return list(self.events)


def stamp(delta):
    return (datetime.now(timezone.utc) - delta).strftime("%Y-%m-%dT%H:%M:%SZ")


def event(kind, reason, age, name="web", object_kind="Pod", message="details"):
    item = {
        "type": kind,
        "reason": reason,
        "message": message,
        "involvedObject": {"kind": object_kind, "name": name},
    }
    if age is not None:
        item["lastTimestamp"] = stamp(age)
    return item


@pytest.fixture
def mixed_events():
    return [
        event("Warning", "BackOff", timedelta(minutes=10)),
        event("Normal", "Pulled", timedelta(hours=2)),
        event("Warning", "Failed", timedelta(hours=30)),
    ]


def test_categorizes_events(mixed_events):
    analysis = EventsAnalyzer(FakeClient(mixed_events), "default").analyze_events("web", "Pod")
    assert analysis.total_events == len(mixed_events)
    assert [e["reason"] for e in analysis.warning_events] == ["BackOff", "Failed"]
    assert [e["reason"] for e in analysis.normal_events] == ["Pulled"]
    assert [e["reason"] for e in analysis.recent_events] == ["BackOff", "Pulled"]


def test_only_last_hour_warnings_become_issues(mixed_events):
    analysis = EventsAnalyzer(FakeClient(mixed_events), "default").analyze_events("web", "Pod")
    assert len(analysis.issues) == 1
    assert analysis.issues[0].startswith("Recent warning: ")
    assert "BackOff" in analysis.issues[0]


def test_field_selector_names_resource_and_kind():
    client = FakeClient([])
    EventsAnalyzer(client, "prod").analyze_events("db", "StatefulSet")
    resource, namespace, _, selector = client.calls[0]
    assert resource == "events"
    assert namespace == "prod"
    assert "involvedObject.name=db" in selector
    assert "involvedObject.kind=StatefulSet" in selector


def test_event_without_timestamp_is_neither_recent_nor_issue():
    items = [event("Warning", "BackOff", None)]
    analysis = EventsAnalyzer(FakeClient(items), "default").analyze_events("web", "Pod")
    assert analysis.recent_events == []
    assert analysis.issues == []
    assert len(analysis.warning_events) == 1


def test_namespace_events_issue_format():
    items = [event("Warning", "BackOff", timedelta(minutes=5), message="restarting")]
    analysis = EventsAnalyzer(FakeClient(items), "default").analyze_namespace_events()
    assert analysis.issues == ["[Pod] web: BackOff - restarting"]


def test_namespace_events_lists_whole_namespace():
    client = FakeClient([])
    analysis = EventsAnalyzer(client, "team").analyze_namespace_events()
    assert analysis.total_events == 0
    assert client.calls[0][3] is None


def test_resource_events_error_is_wrapped():
    analyzer = EventsAnalyzer(FakeClient(fail=True), "default")
    with pytest.raises(KubeError) as info:
        analyzer.analyze_events("web", "Pod")
    assert str(info.value).startswith("failed to get events for Pod web")
    assert info.value.status_code == 403


def test_namespace_events_error_is_wrapped():
    analyzer = EventsAnalyzer(FakeClient(fail=True), "team")
    with pytest.raises(KubeError, match="failed to get events for namespace team"):
        analyzer.analyze_namespace_events()