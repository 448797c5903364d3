from __future__ import annotations

import logging

import pandas as pd
import pytest

from auditverse.graph import GraphSnapshot, TemporalDataset, events_frame, frame_records
from auditverse.temporal import (
    advance,
    apply_events,
    event_date_range,
    reconstruct,
    timeline_positions,
)


def _risk(risk_id: str = "R1", **extra):
    return {
        "id": risk_id,
        "type": "risk",
        "name": f"Risk {risk_id}",
        "inherent_likelihood": 7,
        "inherent_severity": 7,
        "residual_likelihood": 5,
        "residual_severity": 6,
        **extra,
    }


def _node(snapshot: GraphSnapshot, node_id: str) -> dict:
    matches = [record for record in frame_records(snapshot.nodes) if record["id"] == node_id]
    assert len(matches) == 1
    return matches[0]


def test_control_added_then_removed_scenario() -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {"date": "2024-01-01", "type": "control_added", "entityId": "C1", "relatedIds": ["R1"]},
            {"date": "2024-06-01", "type": "control_removed", "entityId": "C1"},
        ],
    )

    mid = reconstruct(dataset, "2024-03-01")
    assert mid.node_ids() == ["R1", "C1"]
    assert mid.to_dict()["links"] == [{"source": "C1", "target": "R1", "type": "mitigates"}]
    control = _node(mid, "C1")
    assert control["type"] == "control"
    assert control["name"] == "Control"
    assert control["effectiveness"] == pytest.approx(0.7)

    late = reconstruct(dataset, "2024-12-01")
    assert late.node_ids() == ["R1"]
    assert late.to_dict()["links"] == []


def test_reconstruct_without_events_returns_base(sample_snapshot: GraphSnapshot) -> None:
    dataset = TemporalDataset(base=sample_snapshot, events=events_frame([]))

    snapshot = reconstruct(dataset, "1999-01-01")

    assert snapshot == sample_snapshot
    assert snapshot.nodes is not sample_snapshot.nodes


def test_reconstruct_includes_events_dated_on_target(sample_dataset: TemporalDataset) -> None:
    snapshot = reconstruct(sample_dataset, "2024-03-01")

    assert snapshot.node_ids()[-2:] == ["C3", "A2"]
    audit = _node(snapshot, "A2")
    assert audit["status"] == "completed"
    assert audit["date"] == "2024-03-01"
    assert {"source": "A2", "target": "R2", "type": "assessed_by"} in snapshot.to_dict()["links"]


def test_reconstruct_does_not_mutate_dataset(sample_dataset: TemporalDataset) -> None:
    before_nodes = sample_dataset.nodes.copy()
    before_links = sample_dataset.links.copy()

    reconstruct(sample_dataset, "2025-01-01")

    pd.testing.assert_frame_equal(sample_dataset.nodes, before_nodes)
    pd.testing.assert_frame_equal(sample_dataset.links, before_links)


def test_reconstruct_is_deterministic(sample_dataset: TemporalDataset) -> None:
    first = reconstruct(sample_dataset, "2024-05-15")
    second = reconstruct(sample_dataset, "2024-05-15")

    assert first == second


def test_advance_matches_direct_reconstruction(sample_dataset: TemporalDataset) -> None:
    early = reconstruct(sample_dataset, "2024-02-15")

    advanced = advance(early, sample_dataset, "2024-02-15", "2024-12-31")
    direct = reconstruct(sample_dataset, "2024-12-31")

    assert advanced.to_dict() == direct.to_dict()


def test_advance_rejects_backwards_range(sample_dataset: TemporalDataset) -> None:
    snapshot = reconstruct(sample_dataset, "2024-06-01")

    with pytest.raises(ValueError, match="precede"):
        advance(snapshot, sample_dataset, "2024-06-01", "2024-01-01")


def test_later_assessment_wins_regardless_of_log_order() -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {
                "date": "2024-05-01",
                "type": "risk_assessment",
                "entityId": "R1",
                "changes": {"residual_likelihood": 3},
            },
            {
                "date": "2024-02-01",
                "type": "risk_assessment",
                "entityId": "R1",
                "changes": {"residual_likelihood": 9, "residual_severity": 2},
            },
        ],
    )

    risk = _node(reconstruct(dataset, "2024-12-31"), "R1")

    assert risk["residual_likelihood"] == 3
    assert risk["residual_severity"] == 2
    assert risk["inherent_likelihood"] == 7


def test_same_day_events_keep_log_order() -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {
                "date": "2024-02-01",
                "type": "risk_assessment",
                "entityId": "R1",
                "changes": {"residual_likelihood": 4},
            },
            {
                "date": "2024-02-01",
                "type": "risk_assessment",
                "entityId": "R1",
                "changes": {"residual_likelihood": 8},
            },
        ],
    )

    assert _node(reconstruct(dataset, "2024-02-01"), "R1")["residual_likelihood"] == 8


def test_risk_assessment_ignores_non_risk_targets(caplog: pytest.LogCaptureFixture) -> None:
    dataset = TemporalDataset.from_records(
        [_risk(), {"id": "C1", "type": "control", "name": "Control", "effectiveness": 0.4}],
        [],
        [
            {
                "date": "2024-01-01",
                "type": "risk_assessment",
                "entityId": "C1",
                "changes": {"residual_likelihood": 9},
            }
        ],
    )

    with caplog.at_level(logging.WARNING):
        snapshot = reconstruct(dataset, "2024-12-31")

    assert _node(snapshot, "C1").get("residual_likelihood") is None
    assert "unknown risk C1" in caplog.text


def test_creation_events_are_idempotent_for_existing_ids() -> None:
    dataset = TemporalDataset.from_records(
        [_risk(), {"id": "C1", "type": "control", "name": "Existing", "effectiveness": 0.2}],
        [],
        [{"date": "2024-01-01", "type": "control_added", "entityId": "C1", "relatedIds": ["R1"]}],
    )

    snapshot = reconstruct(dataset, "2024-12-31")

    assert _node(snapshot, "C1")["name"] == "Existing"
    assert snapshot.to_dict()["links"] == []


def test_incident_and_issue_events_synthesize_entities() -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {
                "date": "2024-01-01",
                "type": "incident_occurred",
                "entityId": "X1",
                "description": "Data center flood",
                "relatedIds": ["R1"],
            },
            {"date": "2024-02-01", "type": "issue_raised", "entityId": "I1", "relatedIds": ["R1"]},
            {"date": "2024-03-01", "type": "issue_resolved", "entityId": "I1"},
        ],
    )

    before_resolution = reconstruct(dataset, "2024-02-15")
    after_resolution = reconstruct(dataset, "2024-03-15")

    incident = _node(before_resolution, "X1")
    assert incident["name"] == "Data center flood"
    assert incident["impact"] == 5
    assert _node(before_resolution, "I1")["status"] == "open"
    assert _node(after_resolution, "I1")["status"] == "resolved"
    assert before_resolution.to_dict()["links"] == [
        {"source": "X1", "target": "R1", "type": "causes"},
        {"source": "I1", "target": "R1", "type": "reports"},
    ]


def test_risk_mitigated_leaves_links_dangling(sample_dataset: TemporalDataset) -> None:
    snapshot = reconstruct(sample_dataset, "2024-12-31")

    assert "R3" not in snapshot.node_ids()
    dangling = [link for link in snapshot.to_dict()["links"] if link["target"] == "R3"]
    assert {link["source"] for link in dangling} == {"S1", "BU1", "C3", "X2"}


def test_control_removed_prunes_links_and_skips_malformed(
    caplog: pytest.LogCaptureFixture,
) -> None:
    dataset = TemporalDataset.from_records(
        [_risk(), {"id": "C1", "type": "control", "name": "Control", "effectiveness": 0.6}],
        [
            {"source": {"id": "C1"}, "target": "R1", "type": "mitigates"},
            {"source": None, "target": "R1", "type": "mitigates"},
        ],
        [{"date": "2024-01-01", "type": "control_removed", "entityId": "C1"}],
    )

    with caplog.at_level(logging.WARNING):
        snapshot = reconstruct(dataset, "2024-12-31")

    assert snapshot.node_ids() == ["R1"]
    assert snapshot.to_dict()["links"] == [{"source": None, "target": "R1", "type": "mitigates"}]
    assert "Malformed link at index 1" in caplog.text


def test_malformed_event_does_not_abort_replay(caplog: pytest.LogCaptureFixture) -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {"date": "2024-01-01", "type": "control_added", "entityId": None},
            {
                "date": "2024-01-02",
                "type": "risk_assessment",
                "entityId": "R1",
                "changes": {"residual_likelihood": "high"},
            },
            {"date": "2024-01-03", "type": "audit_completed", "entityId": "A1", "relatedIds": ["R1"]},
        ],
    )

    with caplog.at_level(logging.WARNING):
        snapshot = reconstruct(dataset, "2024-12-31")

    assert snapshot.node_ids() == ["R1", "A1"]
    assert _node(snapshot, "R1")["residual_likelihood"] == 5
    assert caplog.text.count("Failed to process") == 2


def test_unknown_event_types_and_bad_dates_are_skipped(caplog: pytest.LogCaptureFixture) -> None:
    dataset = TemporalDataset.from_records(
        [_risk()],
        [],
        [
            {"date": "2024-01-01", "type": "risk_renamed", "entityId": "R1"},
            {"date": "not-a-date", "type": "control_added", "entityId": "C9"},
        ],
    )

    with caplog.at_level(logging.WARNING):
        snapshot = reconstruct(dataset, "2024-12-31")

    assert snapshot.node_ids() == ["R1"]
    assert "Unknown event type 'risk_renamed'" in caplog.text
    assert "unparseable dates" in caplog.text


def test_reconstruct_rejects_invalid_target_date(sample_dataset: TemporalDataset) -> None:
    with pytest.raises(ValueError, match="target_date"):
        reconstruct(sample_dataset, "sometime")


def test_apply_events_replays_an_event_frame(sample_snapshot: GraphSnapshot) -> None:
    events = events_frame(
        [{"date": "2024-01-01", "type": "control_removed", "entityId": "C2"}]
    )

    snapshot = apply_events(sample_snapshot, events)

    assert "C2" not in snapshot.node_ids()
    assert all(link["source"] != "C2" for link in snapshot.to_dict()["links"])
    assert "C2" in sample_snapshot.node_ids()


def test_event_date_range_and_timeline_positions(sample_dataset: TemporalDataset) -> None:
    start, end = event_date_range(sample_dataset)
    positions = timeline_positions(sample_dataset)

    assert start == pd.Timestamp("2024-01-15", tz="UTC")
    assert end == pd.Timestamp("2024-06-01", tz="UTC")
    assert [position.strftime("%Y-%m-%d") for position in positions] == [
        "2024-01-15",
        "2024-02-15",
        "2024-03-15",
        "2024-04-15",
        "2024-05-15",
        "2024-06-01",
    ]
    assert len(timeline_positions(sample_dataset, step_months=3)) == 3


def test_event_date_range_without_events_is_today(sample_snapshot: GraphSnapshot) -> None:
    dataset = TemporalDataset(base=sample_snapshot, events=events_frame([]))

    start, end = event_date_range(dataset)

    assert start == end == pd.Timestamp.now(tz="UTC").normalize()
