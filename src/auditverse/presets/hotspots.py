from __future__ import annotations

from auditverse.graph import GraphSnapshot
from auditverse.presets.base import (
    Preset,
    PresetResult,
    format_number,
    ids_of_type,
    numeric,
    rank_by_count,
    sources_into,
    targets_from,
    typed_links,
)


class HighIssueRisksPreset(Preset):
    id = "high-issue-risks"
    label = "High Issue Risks"
    description = "Risks with most reported issues"
    category = "hotspots"

    def __init__(self, top_n: int = 10) -> None:
        self.top_n = max(1, int(top_n))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risk_ids = set(ids_of_type(snapshot, "risk"))
        reports = typed_links(snapshot, "reports")
        reported = reports.loc[reports["target"].isin(risk_ids), "target"]
        top_risks = rank_by_count(reported, self.top_n)
        issues = sources_into(snapshot, top_risks, "reports")
        return self._result(
            snapshot,
            [*top_risks, *issues],
            f"Top {len(top_risks)} risks by reported issues. Focus on root cause analysis.",
            n_matched=len(top_risks),
            n_issues=len(issues),
        )


class HighIncidentRisksPreset(Preset):
    id = "high-incident-risks"
    label = "High Incident Risks"
    description = "Risks with incident history"
    category = "hotspots"

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        causes = typed_links(snapshot, "causes")
        caused = set(causes["target"].tolist())
        risks = [risk_id for risk_id in ids_of_type(snapshot, "risk") if risk_id in caused]
        incidents = sources_into(snapshot, risks, "causes")
        return self._result(
            snapshot,
            [*risks, *incidents],
            f"Found {len(risks)} risks with incident history. Review control effectiveness.",
            n_matched=len(risks),
            n_incidents=len(incidents),
        )


class FailedControlsPreset(Preset):
    id = "failed-controls"
    label = "Failed Controls"
    description = "Controls with low effectiveness"
    category = "hotspots"

    def __init__(self, max_effectiveness: float = 0.5) -> None:
        self.max_effectiveness = float(min(1.0, max(0.0, max_effectiveness)))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        controls = snapshot.nodes_of_type("control")
        effectiveness = numeric(controls, "effectiveness")
        failed = controls.loc[effectiveness < self.max_effectiveness, "id"].tolist()
        mitigated = targets_from(snapshot, failed, "mitigates")
        threshold_pct = format_number(self.max_effectiveness * 100)
        return self._result(
            snapshot,
            [*failed, *mitigated],
            f"Found {len(failed)} controls with effectiveness < {threshold_pct}%. "
            "Control remediation needed.",
            n_matched=len(failed),
            n_mitigated_risks=len(mitigated),
        )


class HighResidualRiskPreset(Preset):
    id = "high-residual-risk"
    label = "High Residual Risk"
    description = "Critical risks (rating > 49)"
    category = "hotspots"

    def __init__(self, rating_threshold: float = 49.0) -> None:
        self.rating_threshold = float(rating_threshold)

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risks = snapshot.nodes_of_type("risk")
        rating = numeric(risks, "residual_likelihood") * numeric(risks, "residual_severity")
        high = risks.loc[rating > self.rating_threshold, "id"].tolist()
        context = sources_into(snapshot, high, "mitigates", "assessed_by")
        threshold = format_number(self.rating_threshold)
        return self._result(
            snapshot,
            [*high, *context],
            f"Found {len(high)} high residual risks (rating > {threshold}). "
            "Executive attention required.",
            n_matched=len(high),
            rating_threshold=self.rating_threshold,
        )
