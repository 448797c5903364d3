"""Visual channel encoding for risk graph entities.

Risk metrics are carried by visual properties rather than positions:
likelihood drives color, severity drives node radius, and data confidence
(or assessment age) drives opacity. Every function clamps its input, so
out-of-range or non-finite values never raise.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Mapping
from functools import lru_cache
from typing import Any

import pandas as pd
from matplotlib import colormaps
from matplotlib.colors import Colormap, to_hex

from auditverse.config import EncodingConfig
from auditverse.graph import GraphSnapshot, frame_records, is_missing, to_utc_timestamp

LOGGER = logging.getLogger(__name__)

LIKELIHOOD_MIN = 1.0
LIKELIHOOD_MAX = 10.0
MAX_OPACITY = 1.0
DAYS_PER_YEAR = 365

ENTITY_COLORS: dict[str, str] = {
    "risk": "#ff0044",
    "control": "#00ccff",
    "audit": "#ff6600",
    "issue": "#ffff00",
    "incident": "#ff0099",
    "standard": "#9966ff",
    "businessUnit": "#00ff99",
}
RELATIONSHIP_COLORS: dict[str, str] = {
    "mitigates": "#00ccff",
    "assessed_by": "#ff6600",
    "owned_by": "#00ff99",
    "requires": "#9966ff",
    "causes": "#ff0099",
    "reports": "#ffff00",
    "monitors": "#00ccff",
    "supports": "#00ff99",
}
FALLBACK_COLOR = "#666666"
# Ten-step legend palette, one swatch per whole likelihood score.
LIKELIHOOD_COLORS: dict[int, str] = {
    1: "#0044ff",
    2: "#0088ff",
    3: "#00aaff",
    4: "#00ccff",
    5: "#00ffaa",
    6: "#88ff00",
    7: "#ffcc00",
    8: "#ff8800",
    9: "#ff4400",
    10: "#ff0044",
}

_DEFAULTS = EncodingConfig()


@lru_cache(maxsize=8)
def _colormap(name: str) -> Colormap:
    return colormaps[name]


def _as_float(value: Any) -> float | None:
    """Float for any real-valued input (infinities kept), None for NaN or non-numbers."""
    if isinstance(value, bool) or is_missing(value):
        return None
    try:
        number = float(value)
    except OverflowError:
        # Integers beyond float range saturate to the matching infinity.
        return math.inf if value > 0 else -math.inf
    except (TypeError, ValueError):
        return None
    if math.isnan(number):
        return None
    return number


def _clamp(value: float, low: float, high: float) -> float:
    return min(high, max(low, value))


def _scale_position(value: Any) -> float:
    number = _as_float(value)
    clamped = _clamp(LIKELIHOOD_MIN if number is None else number, LIKELIHOOD_MIN, LIKELIHOOD_MAX)
    return (clamped - LIKELIHOOD_MIN) / (LIKELIHOOD_MAX - LIKELIHOOD_MIN)


def likelihood_to_color(value: Any, *, colormap: str = _DEFAULTS.colormap) -> str:
    """Blue (1) through yellow to red (10) hex color for a likelihood score."""
    return to_hex(_colormap(colormap)(_scale_position(value)))


def discrete_likelihood_color(value: Any) -> str:
    """Legend swatch for a likelihood score, rounded half-up and clamped to 1-10."""
    number = _as_float(value)
    clamped = _clamp(LIKELIHOOD_MIN if number is None else number, LIKELIHOOD_MIN, LIKELIHOOD_MAX)
    return LIKELIHOOD_COLORS[int(math.floor(clamped + 0.5))]


def severity_to_size(
    value: Any,
    *,
    base_size: float = _DEFAULTS.base_size,
    scale_range: float = _DEFAULTS.scale_range,
    exponent: float = _DEFAULTS.size_exponent,
) -> float:
    """Node radius growing convexly with severity: base + (s / 10) ** exponent * range."""
    number = _as_float(value)
    clamped = _clamp(LIKELIHOOD_MIN if number is None else number, LIKELIHOOD_MIN, LIKELIHOOD_MAX)
    return base_size + (clamped / LIKELIHOOD_MAX) ** exponent * scale_range


def confidence_to_opacity(
    entity: Mapping[str, Any] | pd.Series,
    *,
    now: Any = None,
    min_opacity: float = _DEFAULTS.min_opacity,
    fade_years: float = _DEFAULTS.fade_years,
) -> float:
    """Opacity in [min_opacity, 1.0] from explicit confidence, else assessment age.

    An explicit confidence score wins. Without one, opacity fades linearly from
    1.0 for a fresh assessment to `min_opacity` once the last assessment is
    `fade_years` old. Entities with neither are fully opaque.
    """
    confidence = _as_float(entity.get("confidence"))
    if confidence is not None:
        return _clamp(confidence, min_opacity, MAX_OPACITY)

    assessed = to_utc_timestamp(entity.get("last_assessment"))
    if assessed is None:
        return MAX_OPACITY

    reference = to_utc_timestamp(now) or pd.Timestamp.now(tz="UTC")
    days_since = math.floor((reference - assessed).total_seconds() / 86400)
    age_years = days_since / DAYS_PER_YEAR
    opacity = MAX_OPACITY - (age_years / fade_years) * (MAX_OPACITY - min_opacity)
    return _clamp(opacity, min_opacity, MAX_OPACITY)


def link_color(link_type: Any) -> str:
    if not isinstance(link_type, str):
        return FALLBACK_COLOR
    return RELATIONSHIP_COLORS.get(link_type, FALLBACK_COLOR)


def link_width(config: EncodingConfig | None = None) -> float:
    return (config or _DEFAULTS).link_width


def link_opacity(
    source: Mapping[str, Any] | pd.Series,
    target: Mapping[str, Any] | pd.Series,
    *,
    now: Any = None,
    config: EncodingConfig | None = None,
) -> float:
    cfg = config or _DEFAULTS
    return min(
        confidence_to_opacity(
            source, now=now, min_opacity=cfg.min_opacity, fade_years=cfg.fade_years
        ),
        confidence_to_opacity(
            target, now=now, min_opacity=cfg.min_opacity, fade_years=cfg.fade_years
        ),
    )


def encode_nodes(
    snapshot: GraphSnapshot,
    *,
    risk_view_mode: str = "residual",
    now: Any = None,
    config: EncodingConfig | None = None,
) -> pd.DataFrame:
    cfg = config or _DEFAULTS
    rows = []
    for node in frame_records(snapshot.nodes):
        node_type = node.get("type")
        if node_type == "risk":
            color = likelihood_to_color(
                node.get(f"{risk_view_mode}_likelihood"), colormap=cfg.colormap
            )
            size = severity_to_size(
                node.get(f"{risk_view_mode}_severity"),
                base_size=cfg.base_size,
                scale_range=cfg.scale_range,
                exponent=cfg.size_exponent,
            )
        else:
            color = ENTITY_COLORS.get(node_type, FALLBACK_COLOR)
            size = cfg.default_node_size
        rows.append(
            {
                "id": node.get("id"),
                "type": node_type,
                "color": color,
                "size": float(size),
                "opacity": confidence_to_opacity(
                    node, now=now, min_opacity=cfg.min_opacity, fade_years=cfg.fade_years
                ),
            }
        )
    return pd.DataFrame(rows, columns=["id", "type", "color", "size", "opacity"])


def encode_links(
    snapshot: GraphSnapshot,
    *,
    now: Any = None,
    config: EncodingConfig | None = None,
) -> pd.DataFrame:
    """Per-link color/width/opacity; links with an endpoint missing from the nodes are dropped."""
    cfg = config or _DEFAULTS
    nodes_by_id = {node["id"]: node for node in frame_records(snapshot.nodes)}
    rows = []
    dangling = 0
    for link in frame_records(snapshot.links):
        source = nodes_by_id.get(link.get("source"))
        target = nodes_by_id.get(link.get("target"))
        if source is None or target is None:
            dangling += 1
            continue
        rows.append(
            {
                "source": link["source"],
                "target": link["target"],
                "type": link.get("type"),
                "color": link_color(link.get("type")),
                "width": link_width(cfg),
                "opacity": link_opacity(source, target, now=now, config=cfg),
            }
        )
    if dangling:
        LOGGER.warning("Dropped %d dangling link(s) with a missing endpoint", dangling)
    return pd.DataFrame(rows, columns=["source", "target", "type", "color", "width", "opacity"])
