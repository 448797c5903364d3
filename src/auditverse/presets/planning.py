from __future__ import annotations

from collections.abc import Iterable

from auditverse.config import DEFAULT_REGULATORY_KEYWORDS
from auditverse.graph import GraphSnapshot
from auditverse.presets.base import (
    Preset,
    PresetResult,
    ids_of_type,
    numeric,
    rank_by_count,
    sources_into,
    targets_from,
    typed_links,
)


class StandardViolationsPreset(Preset):
    id = "standard-violations"
    label = "Standard Violations"
    description = "Standards with most risks"
    category = "planning"

    def __init__(self, top_n: int = 5) -> None:
        self.top_n = max(1, int(top_n))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        standard_ids = set(ids_of_type(snapshot, "standard"))
        requires = typed_links(snapshot, "requires")
        requiring = requires.loc[requires["source"].isin(standard_ids), "source"]
        top_standards = rank_by_count(requiring, self.top_n)
        required = targets_from(snapshot, top_standards, "requires")
        return self._result(
            snapshot,
            [*top_standards, *required],
            f"Top {len(top_standards)} standards by risk exposure. Compliance focus areas.",
            n_matched=len(top_standards),
            n_required_risks=len(required),
        )


class RegulatoryExposurePreset(Preset):
    id = "regulatory-exposure"
    label = "Regulatory Exposure"
    description = "High regulatory compliance risks"
    category = "planning"

    def __init__(
        self,
        keywords: Iterable[str] | None = None,
        min_severity: float = 7.0,
    ) -> None:
        resolved = DEFAULT_REGULATORY_KEYWORDS if keywords is None else keywords
        self.keywords = tuple(keyword.lower() for keyword in resolved if keyword)
        self.min_severity = float(min_severity)

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risks = snapshot.nodes_of_type("risk")
        category = risks["category"].fillna("").astype(str).str.lower()
        regulatory = category.map(
            lambda value: any(keyword in value for keyword in self.keywords)
        ).astype(bool)
        severe = numeric(risks, "residual_severity").fillna(0.0) >= self.min_severity
        exposed = risks.loc[regulatory & severe, "id"].tolist()
        context = sources_into(snapshot, exposed, "requires", "mitigates")
        return self._result(
            snapshot,
            [*exposed, *context],
            f"Found {len(exposed)} high-severity regulatory risks. "
            "Prioritize compliance activities.",
            n_matched=len(exposed),
        )


class EnterpriseRiskProfilePreset(Preset):
    id = "enterprise-risk-profile"
    label = "Enterprise Risk Profile"
    description = "Top 20 risks by rating"
    category = "planning"

    def __init__(self, top_n: int = 20) -> None:
        self.top_n = max(1, int(top_n))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risks = snapshot.nodes_of_type("risk")
        rating = numeric(risks, "residual_likelihood") * numeric(risks, "residual_severity")
        ranked = rating.sort_values(ascending=False, kind="stable", na_position="last")
        top_risks = risks.loc[ranked.index[: self.top_n], "id"].tolist()

        links = snapshot.links
        seeds = set(top_risks)
        touching = links[links["source"].isin(seeds) | links["target"].isin(seeds)]
        neighbors = set(touching["source"].dropna()) | set(touching["target"].dropna())
        return self._result(
            snapshot,
            [*top_risks, *neighbors],
            f"Top {len(top_risks)} enterprise risks with their controls and audit coverage. "
            "Executive dashboard view.",
            n_matched=len(top_risks),
            n_connected=len(neighbors - seeds),
        )
