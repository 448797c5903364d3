from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from auditverse.graph import GraphSnapshot
from auditverse.io.write import write_snapshot, write_table


def test_write_table_names_file_by_format(tmp_path: Path) -> None:
    frame = pd.DataFrame({"id": ["R1"], "color": ["#ff0044"]})

    path = write_table(frame, tmp_path / "tables", "node_styles")

    assert path == tmp_path / "tables" / "node_styles.csv"
    pd.testing.assert_frame_equal(pd.read_csv(path), frame)


def test_write_table_rejects_unknown_format(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="Unsupported table format"):
        write_table(pd.DataFrame(), tmp_path, "nodes", fmt="xlsx")

    assert not (tmp_path / "nodes.xlsx").exists()


def test_write_snapshot_drops_all_missing_node_columns(
    sample_snapshot: GraphSnapshot, tmp_path: Path
) -> None:
    written = write_snapshot(sample_snapshot, tmp_path)

    nodes = pd.read_csv(written["nodes"])
    assert set(written) == {"nodes", "links"}
    assert len(nodes) == len(sample_snapshot.nodes)
    assert len(pd.read_csv(written["links"])) == len(sample_snapshot.links)
    assert not nodes.isna().all().any()
