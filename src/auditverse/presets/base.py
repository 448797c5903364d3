from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Literal

import pandas as pd

from auditverse.graph import GraphSnapshot

PresetCategory = Literal["overview", "coverage", "hotspots", "planning"]


@dataclass(frozen=True)
class PresetResult:
    preset: str
    data: GraphSnapshot
    message: str
    summary: dict[str, Any] = field(default_factory=dict)


class Preset:
    id: str
    label: str
    description: str
    category: PresetCategory

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        raise NotImplementedError

    def _result(
        self,
        snapshot: GraphSnapshot,
        node_ids: Iterable[str],
        message: str,
        **summary: Any,
    ) -> PresetResult:
        data = snapshot.restrict_to(node_ids)
        summary.setdefault("n_nodes", int(len(data.nodes)))
        summary.setdefault("n_links", int(len(data.links)))
        return PresetResult(preset=self.id, data=data, message=message, summary=summary)


def numeric(frame: pd.DataFrame, column: str) -> pd.Series:
    if column not in frame.columns:
        return pd.Series(float("nan"), index=frame.index, dtype="float64")
    return pd.to_numeric(frame[column], errors="coerce")


def typed_links(snapshot: GraphSnapshot, *link_types: str) -> pd.DataFrame:
    links = snapshot.links
    mask = links["type"].isin(link_types) & links["source"].notna() & links["target"].notna()
    return links[mask]


def ids_of_type(snapshot: GraphSnapshot, node_type: str) -> list[str]:
    return snapshot.nodes_of_type(node_type)["id"].tolist()


def link_targets(snapshot: GraphSnapshot, link_type: str) -> set[str]:
    return set(typed_links(snapshot, link_type)["target"].tolist())


def sources_into(snapshot: GraphSnapshot, seed_ids: Iterable[str], *link_types: str) -> set[str]:
    """Sources of `link_types` links that point at any seed id (one hop, no cascading)."""
    seeds = set(seed_ids)
    links = typed_links(snapshot, *link_types)
    return set(links.loc[links["target"].isin(seeds), "source"].tolist())


def targets_from(snapshot: GraphSnapshot, seed_ids: Iterable[str], *link_types: str) -> set[str]:
    """Targets of `link_types` links that leave any seed id (one hop, no cascading)."""
    seeds = set(seed_ids)
    links = typed_links(snapshot, *link_types)
    return set(links.loc[links["source"].isin(seeds), "target"].tolist())


def rank_by_count(ids: pd.Series, top_n: int) -> list[str]:
    """Most frequent ids first; ties keep first-encounter order."""
    if ids.empty:
        return []
    counts = ids.groupby(ids, sort=False).size()
    ranked = counts.sort_values(ascending=False, kind="stable")
    return ranked.head(top_n).index.tolist()


def percent(numerator: int, denominator: int) -> int:
    """Whole-number percentage, half rounded up; zero when there is no denominator."""
    if denominator <= 0:
        return 0
    value = Decimal(numerator) * Decimal(100) / Decimal(denominator)
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def format_number(value: float) -> str:
    return f"{value:g}"
