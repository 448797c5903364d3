from __future__ import annotations

import logging
from collections import OrderedDict
from collections.abc import Callable, Hashable
from dataclasses import dataclass
from typing import Any, TypeVar

import pandas as pd

from auditverse.config import AppConfig
from auditverse.filters import FilterState, apply_filters
from auditverse.graph import GraphSnapshot, TemporalDataset, to_utc_timestamp
from auditverse.presets.base import PresetResult
from auditverse.presets.registry import DEFAULT_PRESET_ID, apply_preset
from auditverse.temporal import reconstruct

LOGGER = logging.getLogger(__name__)

T = TypeVar("T")


class _StageCache:
    """Bounded least-recently-used memo for one pipeline stage."""

    def __init__(self, max_size: int) -> None:
        self.max_size = max_size
        self._entries: OrderedDict[Hashable, Any] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get_or_compute(self, key: Hashable, compute: Callable[[], T]) -> T:
        if key in self._entries:
            self.hits += 1
            self._entries.move_to_end(key)
            return self._entries[key]
        self.misses += 1
        value = compute()
        if self.max_size > 0:
            self._entries[key] = value
            while len(self._entries) > self.max_size:
                self._entries.popitem(last=False)
        return value

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)


@dataclass(frozen=True)
class PipelineResult:
    snapshot: GraphSnapshot
    message: str
    target_date: pd.Timestamp | None
    preset_id: str
    summary: dict[str, Any]


class GraphPipeline:
    """Reconstruct, then preset, then filter; each stage memoized on its inputs."""

    def __init__(self, dataset: TemporalDataset, config: AppConfig | None = None) -> None:
        self.dataset = dataset
        self.config = config or AppConfig()
        cache_size = self.config.pipeline.cache_size
        self._snapshots = _StageCache(cache_size)
        self._presets = _StageCache(cache_size)
        self._filtered = _StageCache(cache_size)

    def snapshot_at(self, target_date: Any = None) -> tuple[pd.Timestamp | None, GraphSnapshot]:
        if target_date is None:
            return None, self.dataset.base.copy()
        when = to_utc_timestamp(target_date)
        if when is None:
            raise ValueError(f"target_date must be an ISO date, date or datetime: {target_date!r}")
        return when, self._snapshots.get_or_compute(
            when, lambda: reconstruct(self.dataset, when)
        )

    def preset_view(self, target_date: Any = None, preset_id: str | None = None) -> PresetResult:
        when, snapshot = self.snapshot_at(target_date)
        return self._preset_for(when, snapshot, preset_id)

    def _preset_for(
        self, when: pd.Timestamp | None, snapshot: GraphSnapshot, preset_id: str | None
    ) -> PresetResult:
        resolved = preset_id or DEFAULT_PRESET_ID
        return self._presets.get_or_compute(
            (when, resolved),
            lambda: apply_preset(resolved, snapshot, self.config.presets),
        )

    def run(
        self,
        target_date: Any = None,
        preset_id: str | None = None,
        filter_state: FilterState | None = None,
    ) -> PipelineResult:
        state = filter_state or FilterState.default(self.config.filters.risk_view_mode)
        when, snapshot = self.snapshot_at(target_date)
        preset = self._preset_for(when, snapshot, preset_id)
        filtered = self._filtered.get_or_compute(
            (when, preset.preset, state),
            lambda: apply_filters(preset.data, state),
        )
        LOGGER.debug(
            "Pipeline at %s preset=%s kept %d/%d nodes",
            when,
            preset.preset,
            len(filtered.nodes),
            len(preset.data.nodes),
        )
        return PipelineResult(
            snapshot=filtered,
            message=preset.message,
            target_date=when,
            preset_id=preset.preset,
            summary=dict(preset.summary),
        )

    def cache_info(self) -> dict[str, dict[str, int]]:
        return {
            name: {"size": len(cache), "hits": cache.hits, "misses": cache.misses}
            for name, cache in (
                ("snapshots", self._snapshots),
                ("presets", self._presets),
                ("filters", self._filtered),
            )
        }

    def clear_cache(self) -> None:
        for cache in (self._snapshots, self._presets, self._filtered):
            cache.clear()
