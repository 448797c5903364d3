from __future__ import annotations

import logging

import pandas as pd

from auditverse.config import PresetsConfig
from auditverse.graph import GraphSnapshot
from auditverse.presets.base import Preset, PresetResult
from auditverse.presets.coverage import (
    AuditBlindSpotsPreset,
    AuditCoveragePreset,
    DefaultPreset,
    UnauditedRisksPreset,
    UncontrolledRisksPreset,
    UnmonitoredStandardsPreset,
)
from auditverse.presets.hotspots import (
    FailedControlsPreset,
    HighIncidentRisksPreset,
    HighIssueRisksPreset,
    HighResidualRiskPreset,
)
from auditverse.presets.planning import (
    EnterpriseRiskProfilePreset,
    RegulatoryExposurePreset,
    StandardViolationsPreset,
)

LOGGER = logging.getLogger(__name__)

DEFAULT_PRESET_ID = "default"


def default_presets(config: PresetsConfig | None = None) -> list[Preset]:
    cfg = config or PresetsConfig()
    return [
        DefaultPreset(),
        UncontrolledRisksPreset(),
        UnauditedRisksPreset(),
        UnmonitoredStandardsPreset(max_requirements=cfg.unmonitored_max_requirements),
        AuditBlindSpotsPreset(min_coverage=cfg.blind_spot_coverage),
        HighIssueRisksPreset(top_n=cfg.high_issue_top_n),
        HighIncidentRisksPreset(),
        FailedControlsPreset(max_effectiveness=cfg.failed_control_effectiveness),
        HighResidualRiskPreset(rating_threshold=cfg.residual_rating_threshold),
        StandardViolationsPreset(top_n=cfg.standard_violations_top_n),
        RegulatoryExposurePreset(
            keywords=cfg.regulatory_keywords,
            min_severity=cfg.regulatory_min_severity,
        ),
        EnterpriseRiskProfilePreset(top_n=cfg.enterprise_top_n),
        AuditCoveragePreset(),
    ]


PRESET_IDS: tuple[str, ...] = tuple(preset.id for preset in default_presets())


def preset_catalogue(config: PresetsConfig | None = None) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "id": preset.id,
                "label": preset.label,
                "description": preset.description,
                "category": preset.category,
            }
            for preset in default_presets(config)
        ]
    )


def apply_preset(
    preset_id: str | None,
    snapshot: GraphSnapshot,
    config: PresetsConfig | None = None,
) -> PresetResult:
    """Run the named preset; unknown ids and preset failures fall back to the default view."""
    presets = {preset.id: preset for preset in default_presets(config)}
    resolved_id = preset_id or DEFAULT_PRESET_ID
    preset = presets.get(resolved_id)
    if preset is None:
        LOGGER.warning("Unknown preset %r; showing the default view", preset_id)
        preset = presets[DEFAULT_PRESET_ID]

    try:
        return preset.run(snapshot)
    except Exception:
        LOGGER.exception("Preset %s failed; showing the default view", preset.id)
        fallback = presets[DEFAULT_PRESET_ID].run(snapshot)
        return PresetResult(
            preset=fallback.preset,
            data=fallback.data,
            message=f"Preset '{preset.id}' could not be applied. {fallback.message}",
            summary={**fallback.summary, "failed_preset": preset.id},
        )
