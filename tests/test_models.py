from __future__ import annotations

import datetime as dt

import pytest
from pydantic import ValidationError

from auditverse.models import AuditNode, ChangeEvent, ControlNode, RiskNode, parse_entity


def test_parse_entity_dispatches_on_type_tag() -> None:
    risk = parse_entity(
        {
            "id": "R1",
            "type": "risk",
            "name": "Data breach",
            "inherent_likelihood": 9,
            "inherent_severity": 7,
            "residual_likelihood": 5,
            "residual_severity": 4,
        }
    )
    control = parse_entity({"id": "C1", "type": "control", "name": "Firewall"})

    assert isinstance(risk, RiskNode)
    assert risk.inherent_rating == 8.0
    assert risk.residual_rating == 4.5
    assert isinstance(control, ControlNode)
    assert control.effectiveness == 0.7


def test_explicit_ratings_are_kept() -> None:
    risk = parse_entity(
        {
            "id": "R1",
            "type": "risk",
            "name": "Data breach",
            "inherent_likelihood": 9,
            "inherent_severity": 7,
            "residual_likelihood": 5,
            "residual_severity": 4,
            "residual_rating": 20,
        }
    )

    assert risk.residual_rating == 20


def test_parse_entity_rejects_unknown_type() -> None:
    with pytest.raises(ValidationError):
        parse_entity({"id": "V1", "type": "vendor", "name": "Acme"})


def test_dates_are_stored_as_iso_strings() -> None:
    audit = AuditNode(id="A1", name="Audit", date=dt.date(2024, 3, 1), last_assessment=dt.date(2024, 1, 2))

    assert audit.date == "2024-03-01"
    assert audit.last_assessment == "2024-01-02"
    assert audit.status == "planned"


def test_change_event_accepts_document_aliases() -> None:
    event = ChangeEvent.model_validate(
        {"date": "2024-01-01", "type": "control_added", "entityId": "C1", "relatedIds": ["R1"]}
    )

    assert event.entity_id == "C1"
    assert event.related_ids == ["R1"]
    assert event.changes == {}
    assert ChangeEvent(date="2024-01-01", type="x", entity_id="E1").entity_id == "E1"
