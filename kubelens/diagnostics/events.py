"""Analysis of Kubernetes events for a resource or a whole namespace."""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Iterable, Iterator, Mapping

from kubelens.kube import KubeError

_ZERO_TIME = datetime.min.replace(tzinfo=timezone.utc)

Event = dict[str, Any]


@contextmanager
def _failure(message: str) -> Iterator[None]:
    try:
        yield
    except KubeError as err:
        raise KubeError(f"{message}: {err}", err.status_code) from err


def _parse_time(value: str | None) -> datetime:
    if not value:
        return _ZERO_TIME
    return datetime.fromisoformat(value.replace("Z", "+00:00"))


@dataclass
class EventAnalysis:
    total_events: int = 0
    warning_events: list[Event] = field(default_factory=list)
    normal_events: list[Event] = field(default_factory=list)
    recent_events: list[Event] = field(default_factory=list)
    issues: list[str] = field(default_factory=list)


def _analyze(items: Iterable[Event], describe: Callable[[Mapping[str, Any]], str]) -> EventAnalysis:
    events = list(items)
    analysis = EventAnalysis(total_events=len(events))
    now = datetime.now(timezone.utc)
    last_day = now - timedelta(hours=24)
    last_hour = now - timedelta(hours=1)

    for event in events:
        if _parse_time(event.get("lastTimestamp")) > last_day:
            analysis.recent_events.append(event)
        if event.get("type") == "Warning":
            analysis.warning_events.append(event)
        else:
            analysis.normal_events.append(event)

    analysis.issues.extend(
        describe(event)
        for event in analysis.warning_events
        if _parse_time(event.get("lastTimestamp")) > last_hour
    )
    return analysis


class EventsAnalyzer:
    """Sorts events by type and age and reports recent warnings."""

    def __init__(self, client, namespace: str) -> None:
        self._client = client
        self._namespace = namespace

    def analyze_events(self, resource_name: str, resource_type: str) -> EventAnalysis:
        """Analyze the events of one resource of the given kind."""
        selector = f"involvedObject.name={resource_name},involvedObject.kind={resource_type}"
        with _failure(f"failed to get events for {resource_type} {resource_name}"):
            items = self._client.list("events", self._namespace, field_selector=selector)
        return _analyze(
            items,
            lambda event: f"Recent warning: {event.get('reason', '')} - {event.get('message', '')}",
        )

    def analyze_namespace_events(self) -> EventAnalysis:
        """Analyze every event in the namespace."""
        with _failure(f"failed to get events for namespace {self._namespace}"):
            items = self._client.list("events", self._namespace)

        def describe(event: Mapping[str, Any]) -> str:
            involved = event.get("involvedObject") or {}
            return (
                f"[{involved.get('kind', '')}] {involved.get('name', '')}: "
                f"{event.get('reason', '')} - {event.get('message', '')}"
            )

        return _analyze(items, describe)