from __future__ import annotations

import logging
import numbers
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

import pandas as pd

from auditverse.graph import (
    GraphSnapshot,
    TemporalDataset,
    frame_records,
    is_missing,
    links_frame,
    nodes_frame,
    resolve_endpoint,
    to_utc_timestamp,
)
from auditverse.models import AuditNode, ControlNode, IncidentNode, IssueNode

LOGGER = logging.getLogger(__name__)

RISK_ASSESSMENT_NUMERIC_FIELDS = (
    "inherent_likelihood",
    "inherent_severity",
    "inherent_rating",
    "residual_likelihood",
    "residual_severity",
    "residual_rating",
    "confidence",
)
RISK_ASSESSMENT_TEXT_FIELDS = ("last_assessment",)


@dataclass
class _WorkingGraph:
    nodes: dict[str, dict[str, Any]] = field(default_factory=dict)
    links: list[dict[str, Any]] = field(default_factory=list)

    @classmethod
    def from_snapshot(cls, snapshot: GraphSnapshot) -> _WorkingGraph:
        nodes: dict[str, dict[str, Any]] = {}
        for record in frame_records(snapshot.nodes):
            nodes[str(record["id"])] = record
        return cls(nodes=nodes, links=frame_records(snapshot.links))

    def to_snapshot(self) -> GraphSnapshot:
        return GraphSnapshot(
            nodes=nodes_frame(self.nodes.values()),
            links=links_frame(self.links),
        )


def _require_entity_id(event: Mapping[str, Any]) -> str:
    entity_id = event.get("entity_id")
    if not isinstance(entity_id, str) or not entity_id.strip():
        raise ValueError(f"event is missing a usable entity id: {entity_id!r}")
    return entity_id


def _related_ids(event: Mapping[str, Any]) -> list[str]:
    related = event.get("related_ids")
    if is_missing(related) or not related:
        return []
    resolved: list[str] = []
    for value in related:
        related_id = resolve_endpoint(value)
        if related_id is None:
            LOGGER.warning(
                "Skipping unusable related id %r on %s event for %s",
                value,
                event.get("type"),
                event.get("entity_id"),
            )
            continue
        resolved.append(related_id)
    return resolved


def _changes(event: Mapping[str, Any]) -> dict[str, Any]:
    changes = event.get("changes")
    if isinstance(changes, Mapping):
        return dict(changes)
    return {}


def _display_name(event: Mapping[str, Any], fallback: str) -> str:
    description = event.get("description")
    if isinstance(description, str) and description.strip():
        return description
    return fallback


def _description(event: Mapping[str, Any]) -> str | None:
    description = event.get("description")
    return description if isinstance(description, str) else None


def _add_entity(
    graph: _WorkingGraph,
    entity_id: str,
    record: dict[str, Any],
    related_ids: list[str],
    link_type: str,
) -> None:
    graph.nodes[entity_id] = record
    for related_id in related_ids:
        graph.links.append({"source": entity_id, "target": related_id, "type": link_type})


def _handle_risk_assessment(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    risk = graph.nodes.get(entity_id)
    if risk is None or risk.get("type") != "risk":
        LOGGER.warning("risk_assessment targets unknown risk %s; ignoring", entity_id)
        return
    changes = _changes(event)

    updates: dict[str, Any] = {}
    for key in RISK_ASSESSMENT_NUMERIC_FIELDS:
        if key not in changes or changes[key] is None:
            continue
        value = changes[key]
        if isinstance(value, bool) or not isinstance(value, numbers.Real):
            raise ValueError(f"risk_assessment change {key}={value!r} is not numeric")
        updates[key] = value
    for key in RISK_ASSESSMENT_TEXT_FIELDS:
        if key in changes and changes[key] is not None:
            updates[key] = str(changes[key])
    risk.update(updates)


def _handle_audit_completed(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    if entity_id in graph.nodes:
        return
    audit = AuditNode(
        id=entity_id,
        name=_display_name(event, "Audit"),
        date=event.get("date"),
        status="completed",
        description=_description(event),
    )
    _add_entity(graph, entity_id, audit.model_dump(), _related_ids(event), "assessed_by")


def _handle_control_added(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    if entity_id in graph.nodes:
        return
    effectiveness = _changes(event).get("effectiveness")
    control = ControlNode(
        id=entity_id,
        name=_display_name(event, "Control"),
        effectiveness=0.7 if effectiveness is None else effectiveness,
        description=_description(event),
    )
    _add_entity(graph, entity_id, control.model_dump(), _related_ids(event), "mitigates")


def _handle_incident_occurred(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    if entity_id in graph.nodes:
        return
    impact = _changes(event).get("impact")
    incident = IncidentNode(
        id=entity_id,
        name=_display_name(event, "Incident"),
        date=event.get("date"),
        impact=5 if impact is None else impact,
        description=_description(event),
    )
    _add_entity(graph, entity_id, incident.model_dump(), _related_ids(event), "causes")


def _handle_issue_raised(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    if entity_id in graph.nodes:
        return
    severity = _changes(event).get("severity")
    issue = IssueNode(
        id=entity_id,
        name=_display_name(event, "Issue"),
        severity="medium" if severity is None else severity,
        status="open",
        description=_description(event),
    )
    _add_entity(graph, entity_id, issue.model_dump(), _related_ids(event), "reports")


def _handle_issue_resolved(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    issue = graph.nodes.get(entity_id)
    if issue is None or issue.get("type") != "issue":
        LOGGER.warning("issue_resolved targets unknown issue %s; ignoring", entity_id)
        return
    issue["status"] = "resolved"


def _handle_control_removed(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    entity_id = _require_entity_id(event)
    graph.nodes.pop(entity_id, None)

    kept: list[dict[str, Any]] = []
    for index, link in enumerate(graph.links):
        source_id = resolve_endpoint(link.get("source"))
        target_id = resolve_endpoint(link.get("target"))
        if source_id is None or target_id is None:
            LOGGER.warning(
                "Malformed link at index %d encountered while removing control %s; skipping",
                index,
                entity_id,
            )
            kept.append(link)
            continue
        if source_id == entity_id or target_id == entity_id:
            continue
        kept.append(link)
    graph.links = kept


def _handle_risk_mitigated(graph: _WorkingGraph, event: Mapping[str, Any]) -> None:
    # Links are intentionally left in place; consumers drop dangling endpoints.
    entity_id = _require_entity_id(event)
    graph.nodes.pop(entity_id, None)


EventHandler = Callable[[_WorkingGraph, Mapping[str, Any]], None]

EVENT_HANDLERS: dict[str, EventHandler] = {
    "risk_assessment": _handle_risk_assessment,
    "audit_completed": _handle_audit_completed,
    "control_added": _handle_control_added,
    "control_removed": _handle_control_removed,
    "incident_occurred": _handle_incident_occurred,
    "issue_raised": _handle_issue_raised,
    "issue_resolved": _handle_issue_resolved,
    "risk_mitigated": _handle_risk_mitigated,
}


def _event_times(events: pd.DataFrame) -> pd.Series:
    if events.empty:
        return pd.Series(pd.NaT, index=events.index, dtype="datetime64[ns, UTC]")
    parsed = events["date"].map(to_utc_timestamp)
    return pd.to_datetime(parsed, utc=True)


def _ordered_events(
    events: pd.DataFrame,
    *,
    after: pd.Timestamp | None = None,
    until: pd.Timestamp | None = None,
) -> pd.DataFrame:
    """Select events in (after, until] and sort them by date, keeping log order on ties."""
    times = _event_times(events)
    invalid = times.isna()
    if invalid.any():
        LOGGER.warning("Skipping %d event(s) with unparseable dates", int(invalid.sum()))

    mask = ~invalid
    if until is not None:
        mask &= times <= until
    if after is not None:
        mask &= times > after
    selected = events[mask].assign(_event_time=times[mask])
    return selected.sort_values("_event_time", kind="stable").drop(columns="_event_time")


def _replay(snapshot: GraphSnapshot, ordered_events: pd.DataFrame) -> GraphSnapshot:
    graph = _WorkingGraph.from_snapshot(snapshot)
    for event in frame_records(ordered_events):
        event_type = event.get("type")
        handler = EVENT_HANDLERS.get(event_type) if isinstance(event_type, str) else None
        if handler is None:
            LOGGER.warning(
                "Unknown event type %r for entity %r; ignoring",
                event_type,
                event.get("entity_id"),
            )
            continue
        try:
            handler(graph, event)
        except Exception:
            LOGGER.exception(
                "Failed to process %s event for %r dated %r; continuing",
                event_type,
                event.get("entity_id"),
                event.get("date"),
            )
    return graph.to_snapshot()


def _require_timestamp(value: Any, *, name: str) -> pd.Timestamp:
    parsed = to_utc_timestamp(value)
    if parsed is None:
        raise ValueError(f"{name} must be an ISO date, date or datetime: {value!r}")
    return parsed


def apply_events(snapshot: GraphSnapshot, events: pd.DataFrame) -> GraphSnapshot:
    """Replay every event in `events` onto a copy of `snapshot` in chronological order."""
    return _replay(snapshot, _ordered_events(events))


def reconstruct(dataset: TemporalDataset, target_date: Any) -> GraphSnapshot:
    """Return the graph as it existed at `target_date` (events dated on it included)."""
    until = _require_timestamp(target_date, name="target_date")
    if not dataset.has_events:
        return dataset.base.copy()
    return _replay(dataset.base, _ordered_events(dataset.events, until=until))


def advance(
    snapshot: GraphSnapshot,
    dataset: TemporalDataset,
    from_date: Any,
    to_date: Any,
) -> GraphSnapshot:
    """Continue a snapshot reconstructed at `from_date` forward to `to_date`."""
    after = _require_timestamp(from_date, name="from_date")
    until = _require_timestamp(to_date, name="to_date")
    if until < after:
        raise ValueError("to_date must not precede from_date")
    if not dataset.has_events:
        return snapshot.copy()
    return _replay(snapshot, _ordered_events(dataset.events, after=after, until=until))


def event_date_range(dataset: TemporalDataset) -> tuple[pd.Timestamp, pd.Timestamp]:
    times = _event_times(dataset.events).dropna()
    if times.empty:
        today = pd.Timestamp.now(tz="UTC").normalize()
        return today, today
    return times.min(), times.max()


def timeline_positions(dataset: TemporalDataset, step_months: int = 1) -> list[pd.Timestamp]:
    """Timeline scrub positions from the first to the last event, stepping whole months."""
    if step_months < 1:
        raise ValueError("step_months must be >= 1")
    start, end = event_date_range(dataset)
    positions: list[pd.Timestamp] = []
    current = start
    offset = pd.DateOffset(months=step_months)
    while current <= end:
        positions.append(current)
        current = current + offset
    if positions[-1] < end:
        positions.append(end)
    return positions
