from __future__ import annotations

import datetime as dt
from pathlib import Path

import typer

from auditverse.config import AppConfig, load_config
from auditverse.encoding import encode_links, encode_nodes
from auditverse.filters import RISK_VIEW_MODES, FilterState
from auditverse.graph import TemporalDataset
from auditverse.io.read import load_dataset
from auditverse.io.write import write_snapshot, write_summary, write_table
from auditverse.logging import configure_logging
from auditverse.models import NODE_TYPES
from auditverse.paths import build_output_paths
from auditverse.pipeline import GraphPipeline
from auditverse.presets.registry import DEFAULT_PRESET_ID, preset_catalogue
from auditverse.stats import graph_stats
from auditverse.temporal import event_date_range, timeline_positions

app = typer.Typer(no_args_is_help=True, add_completion=False)


def _load_app_config(config_path: Path | None) -> AppConfig:
    try:
        cfg = load_config(config_path)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--config") from exc
    configure_logging(cfg.logging.level)
    return cfg


def _load_dataset(data: Path) -> TemporalDataset:
    try:
        return load_dataset(data)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--data") from exc


def _build_filter_state(
    cfg: AppConfig,
    *,
    audits: list[str],
    units: list[str],
    standards: list[str],
    categories: list[str],
    hide_types: list[str],
    min_likelihood: float,
    min_severity: float,
    view_mode: str | None,
    search: str,
) -> FilterState:
    unknown_types = sorted(set(hide_types) - set(NODE_TYPES))
    if unknown_types:
        raise typer.BadParameter(
            f"Unknown entity type(s): {', '.join(unknown_types)}. "
            f"Expected any of: {', '.join(NODE_TYPES)}",
            param_hint="--hide-type",
        )
    mode = view_mode or cfg.filters.risk_view_mode
    if mode not in RISK_VIEW_MODES:
        raise typer.BadParameter(
            f"Expected one of: {', '.join(RISK_VIEW_MODES)}", param_hint="--view-mode"
        )
    return FilterState(
        selected_audits=frozenset(audits),
        selected_units=frozenset(units),
        selected_standards=frozenset(standards),
        selected_risk_categories=frozenset(categories),
        active_types=frozenset(NODE_TYPES) - frozenset(hide_types),
        likelihood_threshold=min_likelihood,
        severity_threshold=min_severity,
        risk_view_mode=mode,
        search_query=search,
    )


@app.command()
def snapshot(
    data: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    out: Path = typer.Option(Path("out"), resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    date: str | None = typer.Option(
        None, help="Reconstruct the graph as of this ISO date. Omit for the base graph."
    ),
    preset: str = typer.Option(DEFAULT_PRESET_ID, help="Analytical preset id."),
    audit: list[str] = typer.Option([], help="Restrict to risks assessed by these audits."),
    unit: list[str] = typer.Option([], help="Restrict to risks owned by these business units."),
    standard: list[str] = typer.Option([], help="Restrict to risks required by these standards."),
    category: list[str] = typer.Option([], help="Restrict to these risk categories."),
    hide_type: list[str] = typer.Option([], help="Entity types to hide."),
    min_likelihood: float = typer.Option(0.0, min=0.0, max=10.0),
    min_severity: float = typer.Option(0.0, min=0.0, max=10.0),
    view_mode: str | None = typer.Option(None, help="residual or inherent risk scores."),
    search: str = typer.Option("", help="Case-insensitive name/description search."),
) -> None:
    """Reconstruct, apply a preset and filters, then write tables and a summary."""
    cfg = _load_app_config(config)
    dataset = _load_dataset(data)
    state = _build_filter_state(
        cfg,
        audits=audit,
        units=unit,
        standards=standard,
        categories=category,
        hide_types=hide_type,
        min_likelihood=min_likelihood,
        min_severity=min_severity,
        view_mode=view_mode,
        search=search,
    )

    pipeline = GraphPipeline(dataset, cfg)
    try:
        result = pipeline.run(target_date=date, preset_id=preset, filter_state=state)
    except ValueError as exc:
        raise typer.BadParameter(str(exc), param_hint="--date") from exc

    paths = build_output_paths(out)
    fmt = cfg.outputs.tables_format
    written = write_snapshot(result.snapshot, paths.tables, fmt=fmt)
    written["node_styles"] = write_table(
        encode_nodes(result.snapshot, risk_view_mode=state.risk_view_mode, config=cfg.encoding),
        paths.tables,
        "node_styles",
        fmt=fmt,
    )
    written["link_styles"] = write_table(
        encode_links(result.snapshot, config=cfg.encoding),
        paths.tables,
        "link_styles",
        fmt=fmt,
    )
    summary_path = write_summary(
        {
            "preset": result.preset_id,
            "message": result.message,
            "target_date": result.target_date.isoformat() if result.target_date else None,
            "preset_summary": result.summary,
            "stats": graph_stats(result.snapshot),
            "tables": {name: str(path) for name, path in sorted(written.items())},
        },
        paths.summary / "snapshot.json",
    )
    typer.echo(result.message)
    typer.echo(
        f"Snapshot: {len(result.snapshot.nodes)} nodes, {len(result.snapshot.links)} links. "
        f"Summary: {summary_path}"
    )


@app.command()
def presets(
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
) -> None:
    """List the analytical presets."""
    cfg = _load_app_config(config)
    for row in preset_catalogue(cfg.presets).itertuples(index=False):
        typer.echo(f"{row.id:<26} {row.category:<9} {row.label}: {row.description}")


@app.command()
def timeline(
    data: Path = typer.Option(..., exists=True, readable=True, resolve_path=True),
    config: Path | None = typer.Option(None, exists=True, readable=True, resolve_path=True),
    step_months: int | None = typer.Option(None, min=1, help="Months between positions."),
) -> None:
    """Print the event date range and the timeline scrub positions."""
    cfg = _load_app_config(config)
    dataset = _load_dataset(data)
    if not dataset.has_events:
        typer.echo(f"No events. Static graph as of {dt.date.today().isoformat()}.")
        return
    start, end = event_date_range(dataset)
    positions = timeline_positions(dataset, step_months or cfg.timeline.step_months)
    typer.echo(f"Events: {len(dataset.events)}")
    typer.echo(f"Range: {start.date().isoformat()} .. {end.date().isoformat()}")
    for position in positions:
        typer.echo(position.date().isoformat())


if __name__ == "__main__":
    app()
