from __future__ import annotations

import dataclasses
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Any, Literal

import pandas as pd

from auditverse.graph import GraphSnapshot
from auditverse.models import NODE_TYPES
from auditverse.presets.base import numeric

RiskViewMode = Literal["residual", "inherent"]
RISK_VIEW_MODES: tuple[str, ...] = ("residual", "inherent")
UNKNOWN_CATEGORY = "unknown"

_SELECTION_FIELDS = (
    "selected_audits",
    "selected_units",
    "selected_standards",
    "selected_risk_categories",
    "active_types",
)


def _clamp_threshold(value: Any) -> float:
    parsed = pd.to_numeric(value, errors="coerce")
    if pd.isna(parsed):
        return 0.0
    return float(min(10.0, max(0.0, parsed)))


@dataclass(frozen=True)
class FilterState:
    """User-selected criteria; empty selections mean "no restriction" except for active_types."""

    selected_audits: frozenset[str] = frozenset()
    selected_units: frozenset[str] = frozenset()
    selected_standards: frozenset[str] = frozenset()
    selected_risk_categories: frozenset[str] = frozenset()
    active_types: frozenset[str] = frozenset(NODE_TYPES)
    likelihood_threshold: float = 0.0
    severity_threshold: float = 0.0
    risk_view_mode: RiskViewMode = "residual"
    search_query: str = ""

    def __post_init__(self) -> None:
        for name in _SELECTION_FIELDS:
            value = getattr(self, name)
            if isinstance(value, str):
                value = [value]
            object.__setattr__(self, name, frozenset(str(item) for item in value))
        for name in ("likelihood_threshold", "severity_threshold"):
            object.__setattr__(self, name, _clamp_threshold(getattr(self, name)))
        if self.risk_view_mode not in RISK_VIEW_MODES:
            raise ValueError(f"risk_view_mode must be one of {RISK_VIEW_MODES}")
        object.__setattr__(self, "search_query", str(self.search_query or ""))

    @classmethod
    def default(cls, risk_view_mode: RiskViewMode = "residual") -> FilterState:
        return cls(risk_view_mode=risk_view_mode)

    def reset(self) -> FilterState:
        return FilterState.default()

    def with_changes(self, **changes: Any) -> FilterState:
        return dataclasses.replace(self, **changes)

    def toggle_type(self, node_type: str) -> FilterState:
        if node_type in self.active_types:
            return self.with_changes(active_types=self.active_types - {node_type})
        return self.with_changes(active_types=self.active_types | {node_type})

    def show_all_types(self) -> FilterState:
        return self.with_changes(active_types=frozenset(NODE_TYPES))

    def hide_all_types(self) -> FilterState:
        return self.with_changes(active_types=frozenset())


@dataclass(frozen=True)
class _CategoryRule:
    selection: str
    entity_type: str
    link_type: str


CATEGORY_RULES: tuple[_CategoryRule, ...] = (
    _CategoryRule(selection="selected_audits", entity_type="audit", link_type="assessed_by"),
    _CategoryRule(selection="selected_units", entity_type="businessUnit", link_type="owned_by"),
    _CategoryRule(selection="selected_standards", entity_type="standard", link_type="requires"),
)


def _column(nodes: pd.DataFrame, column: str) -> pd.Series:
    if column not in nodes.columns:
        return pd.Series(None, index=nodes.index, dtype=object)
    return nodes[column]


def _type_mask(nodes: pd.DataFrame, active_types: Iterable[str]) -> pd.Series:
    return nodes["type"].isin(set(active_types))


def _search_mask(nodes: pd.DataFrame, query: str) -> pd.Series:
    if not query.strip():
        return pd.Series(True, index=nodes.index, dtype=bool)
    needle = query.lower()
    names = _column(nodes, "name").fillna("").astype(str).str.lower()
    descriptions = _column(nodes, "description").fillna("").astype(str).str.lower()
    return names.str.contains(needle, regex=False) | descriptions.str.contains(
        needle, regex=False
    )


def _category_mask(
    nodes: pd.DataFrame,
    links: pd.DataFrame,
    selected: frozenset[str],
    rule: _CategoryRule,
) -> pd.Series:
    if not selected:
        return pd.Series(True, index=nodes.index, dtype=bool)
    linked = links[(links["type"] == rule.link_type) & links["source"].isin(selected)]
    related_risks = set(linked["target"].dropna().tolist())

    is_category = nodes["type"] == rule.entity_type
    is_risk = nodes["type"] == "risk"
    return (
        ~(is_category | is_risk)
        | (is_category & nodes["id"].isin(selected))
        | (is_risk & nodes["id"].isin(related_risks))
    )


def _risk_category_mask(nodes: pd.DataFrame, selected: frozenset[str]) -> pd.Series:
    if not selected:
        return pd.Series(True, index=nodes.index, dtype=bool)
    categories = _column(nodes, "category")
    categories = categories.where(categories.notna(), UNKNOWN_CATEGORY)
    return (nodes["type"] != "risk") | categories.astype(str).isin(selected)


def _threshold_mask(nodes: pd.DataFrame, state: FilterState) -> pd.Series:
    mask = pd.Series(True, index=nodes.index, dtype=bool)
    is_risk = nodes["type"] == "risk"
    prefix = state.risk_view_mode
    for column, threshold in (
        (f"{prefix}_likelihood", state.likelihood_threshold),
        (f"{prefix}_severity", state.severity_threshold),
    ):
        if threshold <= 0:
            continue
        values = numeric(nodes, column)
        mask &= ~is_risk | (values >= threshold)
    return mask


def apply_filters(snapshot: GraphSnapshot, state: FilterState | None = None) -> GraphSnapshot:
    """AND every active criterion over the snapshot, then keep links between survivors."""
    state = state or FilterState.default()
    nodes = snapshot.nodes
    links = snapshot.links

    mask = _type_mask(nodes, state.active_types)
    mask &= _search_mask(nodes, state.search_query)
    for rule in CATEGORY_RULES:
        mask &= _category_mask(nodes, links, getattr(state, rule.selection), rule)
    mask &= _risk_category_mask(nodes, state.selected_risk_categories)
    mask &= _threshold_mask(nodes, state)

    return snapshot.restrict_to(nodes.loc[mask, "id"].tolist())
