from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pandas as pd

from auditverse.graph import GraphSnapshot


TABLE_FORMATS = ("csv", "parquet")


def write_table(frame: pd.DataFrame, out_dir: Path, name: str, fmt: str = "csv") -> Path:
    """Write `frame` as `<out_dir>/<name>.<fmt>`, stringifying mixed columns for parquet."""
    if fmt not in TABLE_FORMATS:
        raise ValueError(f"Unsupported table format: {fmt}")
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / f"{name}.{fmt}"
    if fmt == "parquet":
        frame = frame.astype({column: "string" for column in _mixed_object_columns(frame)})
        frame.to_parquet(path, index=False)
    else:
        frame.to_csv(path, index=False)
    return path


def write_snapshot(snapshot: GraphSnapshot, out_dir: Path, fmt: str = "csv") -> dict[str, Path]:
    """Write the snapshot's node and link tables as `nodes.<fmt>` / `links.<fmt>`."""
    nodes = snapshot.nodes.dropna(axis=1, how="all") if not snapshot.nodes.empty else snapshot.nodes
    return {
        "nodes": write_table(nodes, out_dir, "nodes", fmt=fmt),
        "links": write_table(snapshot.links, out_dir, "links", fmt=fmt),
    }


def _mixed_object_columns(frame: pd.DataFrame) -> list[str]:
    # Parquet needs homogeneous object columns; mixed ones are stringified, not dropped.
    mixed = []
    for column in frame.columns:
        if frame[column].dtype != object:
            continue
        kinds = {type(value) for value in frame[column].dropna()}
        if len(kinds) > 1:
            mixed.append(column)
    return mixed


def _json_default(value: Any) -> Any:
    if isinstance(value, pd.Timestamp):
        return value.isoformat()
    if hasattr(value, "item"):
        return value.item()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def write_summary(data: dict[str, Any], path: Path) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(
        json.dumps(data, indent=2, sort_keys=True, default=_json_default), encoding="utf-8"
    )
    return path
