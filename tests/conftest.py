from __future__ import annotations

from typing import Any

import pytest

from auditverse.graph import GraphSnapshot, TemporalDataset


def _risk(risk_id: str, name: str, residual: tuple[int, int], inherent: tuple[int, int], **extra: Any):
    return {
        "id": risk_id,
        "type": "risk",
        "name": name,
        "residual_likelihood": residual[0],
        "residual_severity": residual[1],
        "inherent_likelihood": inherent[0],
        "inherent_severity": inherent[1],
        **extra,
    }


SAMPLE_NODES: list[dict[str, Any]] = [
    _risk("R1", "Customer data breach", (8, 8), (9, 9), category="cyber"),
    _risk("R2", "Regulatory fine", (6, 8), (8, 9), category="Compliance", confidence=0.8),
    _risk("R3", "Vendor outage", (3, 4), (5, 5), description="Third-party hosting failure"),
    {"id": "C1", "type": "control", "name": "Perimeter firewall", "effectiveness": 0.9},
    {"id": "C2", "type": "control", "name": "Manual review", "effectiveness": 0.3},
    {"id": "A1", "type": "audit", "name": "IT general controls audit", "status": "completed"},
    {"id": "I1", "type": "issue", "name": "Patch backlog", "severity": "high", "status": "open"},
    {"id": "X1", "type": "incident", "name": "Phishing campaign", "impact": 6},
    {"id": "S1", "type": "standard", "name": "ISO 27001"},
    {"id": "S2", "type": "standard", "name": "SOX"},
    {"id": "BU1", "type": "businessUnit", "name": "Technology"},
    {"id": "BU2", "type": "businessUnit", "name": "Finance"},
]

SAMPLE_LINKS: list[dict[str, Any]] = [
    {"source": "C1", "target": "R1", "type": "mitigates"},
    {"source": "C2", "target": "R2", "type": "mitigates"},
    {"source": "A1", "target": "R1", "type": "assessed_by"},
    {"source": "I1", "target": "R1", "type": "reports"},
    {"source": "X1", "target": "R1", "type": "causes"},
    {"source": "S1", "target": "R1", "type": "requires"},
    {"source": "S1", "target": "R3", "type": "requires"},
    {"source": "S2", "target": "R2", "type": "requires"},
    {"source": "BU1", "target": "R1", "type": "owned_by"},
    {"source": "BU1", "target": "R3", "type": "owned_by"},
    {"source": "BU2", "target": "R2", "type": "owned_by"},
]

SAMPLE_EVENTS: list[dict[str, Any]] = [
    {"date": "2024-01-15", "type": "control_added", "entityId": "C3", "relatedIds": ["R3"]},
    {
        "date": "2024-02-01",
        "type": "risk_assessment",
        "entityId": "R1",
        "changes": {"residual_likelihood": 5},
    },
    {"date": "2024-03-01", "type": "audit_completed", "entityId": "A2", "relatedIds": ["R2"]},
    {"date": "2024-04-10", "type": "incident_occurred", "entityId": "X2", "relatedIds": ["R3"]},
    {"date": "2024-05-01", "type": "control_removed", "entityId": "C1"},
    {"date": "2024-06-01", "type": "risk_mitigated", "entityId": "R3"},
]


@pytest.fixture
def sample_snapshot() -> GraphSnapshot:
    return GraphSnapshot.from_records(SAMPLE_NODES, SAMPLE_LINKS)


@pytest.fixture
def sample_dataset() -> TemporalDataset:
    return TemporalDataset.from_records(SAMPLE_NODES, SAMPLE_LINKS, SAMPLE_EVENTS)


@pytest.fixture
def sample_document() -> dict[str, Any]:
    arrays = {
        "risk": "risks",
        "control": "controls",
        "audit": "audits",
        "issue": "issues",
        "incident": "incidents",
        "standard": "standards",
        "businessUnit": "businessUnits",
    }
    document: dict[str, Any] = {key: [] for key in arrays.values()}
    for node in SAMPLE_NODES:
        record = {key: value for key, value in node.items() if key != "type"}
        document[arrays[node["type"]]].append(record)
    document["relationships"] = [dict(link) for link in SAMPLE_LINKS]
    document["events"] = [dict(event) for event in SAMPLE_EVENTS]
    return document
