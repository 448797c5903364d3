from __future__ import annotations

from pathlib import Path
from typing import Literal

import yaml
from pydantic import BaseModel, ConfigDict, Field

DEFAULT_REGULATORY_KEYWORDS = ["compliance", "regulatory", "legal"]


class TimelineConfig(BaseModel):
    step_months: int = Field(default=1, ge=1, le=120)


class PresetsConfig(BaseModel):
    high_issue_top_n: int = Field(default=10, ge=1)
    standard_violations_top_n: int = Field(default=5, ge=1)
    enterprise_top_n: int = Field(default=20, ge=1)
    residual_rating_threshold: float = Field(default=49.0, ge=0.0)
    failed_control_effectiveness: float = Field(default=0.5, ge=0.0, le=1.0)
    blind_spot_coverage: float = Field(default=0.5, gt=0.0, le=1.0)
    unmonitored_max_requirements: int = Field(default=1, ge=0)
    regulatory_keywords: list[str] = Field(
        default_factory=lambda: list(DEFAULT_REGULATORY_KEYWORDS)
    )
    regulatory_min_severity: float = Field(default=7.0, ge=1.0, le=10.0)


class EncodingConfig(BaseModel):
    colormap: str = "RdYlBu_r"
    base_size: float = Field(default=3.0, ge=0.0)
    scale_range: float = Field(default=10.0, gt=0.0)
    size_exponent: float = Field(default=1.3, gt=1.0)
    default_node_size: float = Field(default=6.0, gt=0.0)
    min_opacity: float = Field(default=0.3, ge=0.0, le=1.0)
    fade_years: float = Field(default=2.0, gt=0.0)
    link_width: float = Field(default=1.0, gt=0.0)


class FiltersConfig(BaseModel):
    risk_view_mode: Literal["residual", "inherent"] = "residual"


class PipelineConfig(BaseModel):
    cache_size: int = Field(default=64, ge=0)


class LoggingConfig(BaseModel):
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = "INFO"


class OutputsConfig(BaseModel):
    tables_format: Literal["csv", "parquet"] = "csv"


class AppConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    timeline: TimelineConfig = Field(default_factory=TimelineConfig)
    presets: PresetsConfig = Field(default_factory=PresetsConfig)
    encoding: EncodingConfig = Field(default_factory=EncodingConfig)
    filters: FiltersConfig = Field(default_factory=FiltersConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    outputs: OutputsConfig = Field(default_factory=OutputsConfig)


def load_config(path: Path | None) -> AppConfig:
    """Load YAML configuration; a missing path yields the built-in defaults."""
    if path is None:
        return AppConfig()
    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    if not isinstance(data, dict):
        raise ValueError(f"config file must contain a mapping: {path}")

    config = AppConfig.model_validate(data)
    config.presets.regulatory_keywords = [
        keyword.strip().lower()
        for keyword in config.presets.regulatory_keywords
        if keyword and keyword.strip()
    ]
    return config
