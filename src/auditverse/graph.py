from __future__ import annotations

import datetime as dt
import math
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Any

import pandas as pd

NODE_COLUMNS = [
    "id",
    "type",
    "name",
    "description",
    "owner",
    "last_assessment",
    "confidence",
    "category",
    "business_unit",
    "inherent_likelihood",
    "inherent_severity",
    "inherent_rating",
    "residual_likelihood",
    "residual_severity",
    "residual_rating",
    "effectiveness",
    "status",
    "date",
    "impact",
    "severity",
    "framework",
    "department",
]
LINK_COLUMNS = ["source", "target", "type"]
EVENT_COLUMNS = ["date", "type", "entity_id", "description", "related_ids", "changes"]

_EVENT_KEY_ALIASES = {
    "entityId": "entity_id",
    "relatedIds": "related_ids",
}


def is_missing(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    return value is pd.NA or value is pd.NaT


def resolve_endpoint(value: Any) -> str | None:
    """Return the node id a link endpoint refers to, or None when unresolvable."""
    if isinstance(value, Mapping):
        value = value.get("id")
    if isinstance(value, str) and value.strip():
        return value
    return None


def to_utc_timestamp(value: Any) -> pd.Timestamp | None:
    """Parse an ISO date/datetime (string, date, datetime) into a UTC timestamp."""
    if is_missing(value):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    if not isinstance(value, (str, dt.date, dt.datetime, pd.Timestamp)):
        return None
    try:
        parsed = pd.Timestamp(value)
    except (TypeError, ValueError):
        return None
    if pd.isna(parsed):
        return None
    if parsed.tzinfo is None:
        return parsed.tz_localize("UTC")
    return parsed.tz_convert("UTC")


def _frame(records: Iterable[Mapping[str, Any]], columns: list[str]) -> pd.DataFrame:
    rows = [dict(record) for record in records]
    if not rows:
        return pd.DataFrame({column: pd.Series(dtype="object") for column in columns})
    all_columns = list(columns)
    for row in rows:
        all_columns.extend(key for key in row if key not in all_columns)
    # Every row carries every column so missing values always enter as None.
    normalized = [
        {column: (None if is_missing(row.get(column)) else row.get(column)) for column in all_columns}
        for row in rows
    ]
    return pd.DataFrame(normalized, columns=all_columns)


def nodes_frame(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    return _frame(records, NODE_COLUMNS)


def links_frame(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    resolved = []
    for record in records:
        row = dict(record)
        row["source"] = resolve_endpoint(row.get("source"))
        row["target"] = resolve_endpoint(row.get("target"))
        resolved.append(row)
    return _frame(resolved, LINK_COLUMNS)


def events_frame(records: Iterable[Mapping[str, Any]]) -> pd.DataFrame:
    rows = []
    for record in records:
        row = {_EVENT_KEY_ALIASES.get(key, key): value for key, value in dict(record).items()}
        related = row.get("related_ids")
        row["related_ids"] = list(related) if isinstance(related, (list, tuple)) else []
        changes = row.get("changes")
        row["changes"] = dict(changes) if isinstance(changes, Mapping) else {}
        rows.append(row)
    return _frame(rows, EVENT_COLUMNS)


def frame_records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    """Row dicts with NA normalized to None."""
    records = frame.astype(object).where(frame.notna(), None).to_dict(orient="records")
    return [dict(record) for record in records]


@dataclass(frozen=True, eq=False)
class GraphSnapshot:
    nodes: pd.DataFrame
    links: pd.DataFrame

    @classmethod
    def empty(cls) -> GraphSnapshot:
        return cls(nodes=nodes_frame([]), links=links_frame([]))

    @classmethod
    def from_records(
        cls,
        nodes: Iterable[Mapping[str, Any]],
        links: Iterable[Mapping[str, Any]] = (),
    ) -> GraphSnapshot:
        return cls(nodes=nodes_frame(nodes), links=links_frame(links))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, GraphSnapshot):
            return NotImplemented
        return self.nodes.equals(other.nodes) and self.links.equals(other.links)

    __hash__ = None  # type: ignore[assignment]

    def node_ids(self) -> list[str]:
        return [str(value) for value in self.nodes["id"].tolist()]

    def nodes_of_type(self, node_type: str) -> pd.DataFrame:
        return self.nodes[self.nodes["type"] == node_type]

    def copy(self) -> GraphSnapshot:
        return GraphSnapshot(nodes=self.nodes.copy(), links=self.links.copy())

    def restrict_to(self, node_ids: Iterable[str]) -> GraphSnapshot:
        """Keep nodes in `node_ids` (snapshot order) and links whose endpoints both survive."""
        keep = set(node_ids)
        nodes = self.nodes[self.nodes["id"].isin(keep)].reset_index(drop=True)
        surviving = set(nodes["id"].tolist())
        links_mask = self.links["source"].isin(surviving) & self.links["target"].isin(surviving)
        links = self.links[links_mask].reset_index(drop=True)
        return GraphSnapshot(nodes=nodes, links=links)

    def to_dict(self) -> dict[str, list[dict[str, Any]]]:
        return {
            "nodes": [
                {key: value for key, value in record.items() if value is not None}
                for record in frame_records(self.nodes)
            ],
            "links": frame_records(self.links),
        }


@dataclass(frozen=True, eq=False)
class TemporalDataset:
    base: GraphSnapshot
    events: pd.DataFrame

    @classmethod
    def from_records(
        cls,
        nodes: Iterable[Mapping[str, Any]],
        links: Iterable[Mapping[str, Any]] = (),
        events: Iterable[Mapping[str, Any]] = (),
    ) -> TemporalDataset:
        return cls(
            base=GraphSnapshot.from_records(nodes, links),
            events=events_frame(events),
        )

    @property
    def nodes(self) -> pd.DataFrame:
        return self.base.nodes

    @property
    def links(self) -> pd.DataFrame:
        return self.base.links

    @property
    def has_events(self) -> bool:
        return not self.events.empty
