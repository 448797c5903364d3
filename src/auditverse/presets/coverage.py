from __future__ import annotations

from auditverse.graph import GraphSnapshot
from auditverse.presets.base import (
    Preset,
    PresetResult,
    format_number,
    ids_of_type,
    link_targets,
    percent,
    typed_links,
)


class DefaultPreset(Preset):
    id = "default"
    label = "Default View"
    description = "All entities and relationships"
    category = "overview"

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        return PresetResult(
            preset=self.id,
            data=snapshot.copy(),
            message="Showing all entities and relationships",
            summary={"n_nodes": int(len(snapshot.nodes)), "n_links": int(len(snapshot.links))},
        )


class UncontrolledRisksPreset(Preset):
    id = "uncontrolled-risks"
    label = "Uncontrolled Risks"
    description = "Risks with no mitigating controls"
    category = "coverage"

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        mitigated = link_targets(snapshot, "mitigates")
        risks = [risk_id for risk_id in ids_of_type(snapshot, "risk") if risk_id not in mitigated]
        return self._result(
            snapshot,
            risks,
            f"Found {len(risks)} uncontrolled risks with no mitigating controls. "
            "These require immediate attention.",
            n_matched=len(risks),
        )


class UnauditedRisksPreset(Preset):
    id = "unaudited-risks"
    label = "Unaudited Risks"
    description = "Risks with no audit coverage"
    category = "coverage"

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        audited = link_targets(snapshot, "assessed_by")
        risks = [risk_id for risk_id in ids_of_type(snapshot, "risk") if risk_id not in audited]
        return self._result(
            snapshot,
            risks,
            f"Found {len(risks)} unaudited risks. "
            "Consider scheduling audit assessments for these areas.",
            n_matched=len(risks),
        )


class UnmonitoredStandardsPreset(Preset):
    id = "unmonitored-standards"
    label = "Unmonitored Standards"
    description = "Standards without monitoring"
    category = "coverage"

    def __init__(self, max_requirements: int = 1) -> None:
        self.max_requirements = max(0, int(max_requirements))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        requires = typed_links(snapshot, "requires")
        counts = requires.groupby("source", sort=False).size()
        standards = [
            standard_id
            for standard_id in ids_of_type(snapshot, "standard")
            if int(counts.get(standard_id, 0)) <= self.max_requirements
        ]
        return self._result(
            snapshot,
            standards,
            f"Found {len(standards)} standards without monitoring controls. "
            "Compliance gaps detected.",
            n_matched=len(standards),
            max_requirements=self.max_requirements,
        )


class AuditBlindSpotsPreset(Preset):
    id = "audit-blind-spots"
    label = "Audit Blind Spots"
    description = "Business units without audits"
    category = "coverage"

    def __init__(self, min_coverage: float = 0.5) -> None:
        self.min_coverage = float(min(1.0, max(0.0, min_coverage)))

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risk_ids = set(ids_of_type(snapshot, "risk"))
        audited = link_targets(snapshot, "assessed_by")
        owned = typed_links(snapshot, "owned_by")
        owned = owned[owned["target"].isin(risk_ids)]

        unit_risks: dict[str, set[str]] = {}
        for unit_id, risk_id in zip(owned["source"], owned["target"]):
            unit_risks.setdefault(unit_id, set()).add(risk_id)

        blind_units: list[str] = []
        for unit_id in ids_of_type(snapshot, "businessUnit"):
            risks = unit_risks.get(unit_id)
            if not risks:
                continue
            coverage = len(risks & audited) / len(risks)
            if coverage < self.min_coverage:
                blind_units.append(unit_id)

        owned_risks: set[str] = set()
        for unit_id in blind_units:
            owned_risks |= unit_risks[unit_id]

        threshold_pct = format_number(self.min_coverage * 100)
        return self._result(
            snapshot,
            [*blind_units, *owned_risks],
            f"Found {len(blind_units)} business units with audit coverage below "
            f"{threshold_pct}%, managing {len(owned_risks)} risks.",
            n_matched=len(blind_units),
            n_owned_risks=len(owned_risks),
        )


class AuditCoveragePreset(Preset):
    id = "audit-coverage"
    label = "Audit Universe Coverage"
    description = "Full audit coverage view"
    category = "planning"

    def run(self, snapshot: GraphSnapshot) -> PresetResult:
        risk_ids = ids_of_type(snapshot, "risk")
        audited = link_targets(snapshot, "assessed_by")
        n_audited = sum(1 for risk_id in risk_ids if risk_id in audited)
        coverage = percent(n_audited, len(risk_ids))
        return PresetResult(
            preset=self.id,
            data=snapshot.copy(),
            message=(
                f"Audit universe: {len(risk_ids)} total risks, {n_audited} audited. "
                f"Coverage: {coverage}%"
            ),
            summary={
                "n_risks": len(risk_ids),
                "n_audited": n_audited,
                "coverage_pct": coverage,
                "n_nodes": int(len(snapshot.nodes)),
                "n_links": int(len(snapshot.links)),
            },
        )
