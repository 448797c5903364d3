from __future__ import annotations

from typing import Any

from auditverse.graph import GraphSnapshot
from auditverse.models import LINK_TYPES, NODE_TYPES
from auditverse.presets.base import ids_of_type, link_targets, numeric

HIGH_RESIDUAL_RATING = 7.0


def graph_stats(
    snapshot: GraphSnapshot, *, high_residual_rating: float = HIGH_RESIDUAL_RATING
) -> dict[str, Any]:
    """Counts by entity/relationship type plus headline risk metrics.

    Risk metrics use the average-based residual rating; a risk without a stored
    rating falls back to the mean of its residual likelihood and severity.
    """
    node_counts = snapshot.nodes["type"].value_counts()
    link_counts = snapshot.links["type"].value_counts()

    risks = snapshot.nodes_of_type("risk")
    risk_ids = ids_of_type(snapshot, "risk")
    derived = (numeric(risks, "residual_likelihood") + numeric(risks, "residual_severity")) / 2
    residual_rating = numeric(risks, "residual_rating").fillna(derived).dropna()
    mitigated = link_targets(snapshot, "mitigates")
    audited = link_targets(snapshot, "assessed_by")

    return {
        "n_nodes": int(len(snapshot.nodes)),
        "n_links": int(len(snapshot.links)),
        "nodes_by_type": {node_type: int(node_counts.get(node_type, 0)) for node_type in NODE_TYPES},
        "links_by_type": {
            **{link_type: int(link_counts.get(link_type, 0)) for link_type in LINK_TYPES},
            **{
                str(link_type): int(count)
                for link_type, count in link_counts.items()
                if link_type not in LINK_TYPES
            },
        },
        "total_risks": len(risk_ids),
        "high_residual_risks": int((residual_rating > high_residual_rating).sum()),
        "uncontrolled_risks": sum(1 for risk_id in risk_ids if risk_id not in mitigated),
        "unaudited_risks": sum(1 for risk_id in risk_ids if risk_id not in audited),
        "avg_residual_rating": (
            round(float(residual_rating.mean()), 2) if not residual_rating.empty else None
        ),
    }
