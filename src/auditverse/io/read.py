from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from auditverse.graph import TemporalDataset
from auditverse.models import (
    DOCUMENT_NODE_ARRAYS,
    LINK_TYPES,
    ChangeEvent,
    ControlNode,
    Link,
    RiskNode,
    parse_entity,
)

LOGGER = logging.getLogger(__name__)

RELATIONSHIPS_KEY = "relationships"
EVENTS_KEY = "events"
_RISK_SCORE_FIELDS = (
    "inherent_likelihood",
    "inherent_severity",
    "residual_likelihood",
    "residual_severity",
)


def _first_error(exc: ValidationError, tag: str | None = None) -> str:
    error = exc.errors()[0]
    loc = list(error.get("loc", ()))
    # Discriminated-union errors are prefixed with the entity type tag.
    if tag is not None and loc[:1] == [tag]:
        loc = loc[1:]
    location = ".".join(str(part) for part in loc)
    return f"{location}: {error.get('msg')}" if location else str(error.get("msg"))


def _array(document: dict[str, Any], key: str, errors: list[str]) -> list[Any]:
    value = document.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        errors.append(f"{key} must be an array")
        return []
    return value


def _warn_out_of_range(entity: Any, where: str) -> None:
    if isinstance(entity, RiskNode):
        for field in _RISK_SCORE_FIELDS:
            value = getattr(entity, field)
            if not 1 <= value <= 10:
                LOGGER.warning("%s.%s=%s is outside 1-10", where, field, value)
    elif isinstance(entity, ControlNode) and not 0 <= entity.effectiveness <= 1:
        LOGGER.warning("%s.effectiveness=%s is outside 0-1", where, entity.effectiveness)


def read_document(path: Path) -> dict[str, Any]:
    """Parse a JSON or YAML graph document into a mapping."""
    suffix = path.suffix.lower()
    text = path.read_text(encoding="utf-8")
    try:
        if suffix == ".json":
            data = json.loads(text)
        elif suffix in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            raise ValueError(f"Unsupported document file type: {path.suffix}")
    except (json.JSONDecodeError, yaml.YAMLError) as exc:
        raise ValueError(f"Could not parse {path}: {exc}") from exc
    if not isinstance(data, dict):
        raise ValueError(f"Document must be a JSON/YAML object: {path}")
    return data


def dataset_from_document(document: dict[str, Any]) -> TemporalDataset:
    """Validate a graph document and build the base snapshot plus its event log."""
    errors: list[str] = []

    nodes: list[dict[str, Any]] = []
    for key, node_type in DOCUMENT_NODE_ARRAYS:
        for index, raw in enumerate(_array(document, key, errors)):
            where = f"{key}[{index}]"
            if not isinstance(raw, dict):
                errors.append(f"{where}: must be an object")
                continue
            try:
                entity = parse_entity({**raw, "type": node_type})
            except ValidationError as exc:
                errors.append(f"{where}.{_first_error(exc, node_type)}")
                continue
            _warn_out_of_range(entity, where)
            nodes.append(entity.model_dump())

    if not nodes and not errors:
        errors.append("No valid nodes found; the document needs at least one entity")

    node_ids = {node["id"] for node in nodes}
    links: list[dict[str, Any]] = []
    for index, raw in enumerate(_array(document, RELATIONSHIPS_KEY, errors)):
        where = f"{RELATIONSHIPS_KEY}[{index}]"
        try:
            link = Link.model_validate(raw)
        except ValidationError as exc:
            errors.append(f"{where}.{_first_error(exc)}")
            continue
        missing = [end for end in (link.source, link.target) if end not in node_ids]
        if missing:
            errors.append(f"{where}: unknown node id(s) {', '.join(missing)}")
            continue
        if link.type not in LINK_TYPES:
            LOGGER.warning("%s has unrecognized relationship type %r", where, link.type)
        links.append(link.model_dump())

    raw_events = _array(document, EVENTS_KEY, errors)
    if errors:
        raise ValueError("Invalid graph document:\n  " + "\n  ".join(errors))

    connected = {link["source"] for link in links} | {link["target"] for link in links}
    isolated = [node["id"] for node in nodes if node["id"] not in connected]
    if isolated:
        LOGGER.warning("%d node(s) have no connections: %s", len(isolated), ", ".join(isolated[:3]))

    events: list[dict[str, Any]] = []
    for index, raw in enumerate(raw_events):
        try:
            events.append(ChangeEvent.model_validate(raw).model_dump())
        except ValidationError as exc:
            LOGGER.warning("Skipping malformed event %s[%d]: %s", EVENTS_KEY, index, _first_error(exc))

    LOGGER.info("Loaded %d nodes, %d links, %d events", len(nodes), len(links), len(events))
    return TemporalDataset.from_records(nodes, links, events)


def load_dataset(path: Path) -> TemporalDataset:
    return dataset_from_document(read_document(path))
