"""Typer-based CLI for AssetHosting with Pydantic v2 configuration."""

import json
import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from LottoData.AssetHosting.config import load_config, validate_config_file
from LottoData.AssetHosting.errors import RunGuardError
from LottoData.AssetHosting.manifest import Manifest
from LottoData.AssetHosting.pipeline import PipelineResult, run_pipeline
from LottoData.AssetHosting.storage.selection import resolve_storage_config

console = Console()
app = typer.Typer(help="LottoData AssetHosting")


def _setup_logging(verbose: bool) -> None:
    """Setup logging based on verbosity."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


def _read_entities(path: Path) -> Tuple[List[Dict[str, Any]], Optional[int]]:
    """Read scraper output: a JSON list, or an object with ``entities`` (and ``rows``)."""
    data = json.loads(path.read_text(encoding="utf-8"))
    rows: Optional[int] = None
    if isinstance(data, dict):
        rows = data.get("rows")
        data = data.get("entities", data.get("games"))
    if not isinstance(data, list) or not all(isinstance(item, dict) for item in data):
        raise ValueError(f"{path} must contain a list of entity objects")
    return data, rows


@app.command()
def run(
    entities: Path = typer.Option(..., "--entities", "-e", help="Scraped entities JSON"),
    namespace: str = typer.Option(..., "--namespace", "-n", help="Storage key namespace"),
    out_dir: Path = typer.Option(..., "--out-dir", "-o", help="Directory for index files"),
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar="LOTTODATA_CONFIG",
    ),
    concurrency: Optional[int] = typer.Option(None, "--concurrency", help="Concurrent jobs"),
    dry_run: bool = typer.Option(False, "--dry-run", help="Echo intended uploads only"),
    rehost_all: bool = typer.Option(False, "--rehost-all", help="Ignore manifest reuse"),
    only_missing: Optional[bool] = typer.Option(
        None, "--only-missing/--no-only-missing", help="Skip uploads for stored keys"
    ),
    rows: Optional[int] = typer.Option(None, "--rows", help="Top-level rows the scraper parsed"),
    remote_prefix: Optional[str] = typer.Option(
        None, "--remote-prefix", help="Also publish the index under this storage prefix"
    ),
    fail_on_guard: bool = typer.Option(
        False, "--fail-on-guard", help="Exit 1 when the anti-truncation guard trips"
    ),
    verbose: bool = typer.Option(False, "-v", "--verbose", help="Verbose"),
) -> None:
    """Host entity assets and publish the reconciled index."""
    _setup_logging(verbose)

    try:
        ingest: Dict[str, Any] = {}
        if concurrency:
            ingest["concurrency"] = concurrency
        if dry_run:
            ingest["dry_run"] = True
        if rehost_all:
            ingest["rehost_all"] = True
        if only_missing is not None:
            ingest["only_missing"] = only_missing
        cli_overrides: Dict[str, Any] = {"ingest": ingest} if ingest else {}
        if fail_on_guard:
            cli_overrides["guards"] = {"fail_on_guard": True}

        cfg = load_config(path=config, cli_overrides=cli_overrides)
        records, reported_rows = _read_entities(entities)

        console.print(
            Panel(
                f"[bold green]✓ Config loaded[/bold green]\n"
                f"Hash: {cfg.config_hash()[:8]}...\n"
                f"Entities: {len(records)}\n"
                f"Namespace: {namespace}",
                title="AssetHosting",
            )
        )

        result = run_pipeline(
            records,
            namespace,
            str(out_dir),
            cfg,
            rows=rows if rows is not None else reported_rows,
            remote_prefix=remote_prefix,
        )
        _print_summary(result)

    except RunGuardError as e:
        console.print(f"[red]✗ Run guard '{e.guard}' tripped: {e}[/red]")
        raise typer.Exit(code=1)
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        if verbose:
            raise
        raise typer.Exit(code=1)

    if result.guard_tripped and cfg.guards.fail_on_guard:
        console.print("[red]✗ Anti-truncation guard tripped (--fail-on-guard)[/red]")
        raise typer.Exit(code=1)


def _print_summary(result: PipelineResult) -> None:
    table = Table(title="Asset Coverage")
    table.add_column("Kind", style="cyan")
    table.add_column("Hosted", style="green")
    table.add_column("Total", style="yellow")
    for kind, total in result.coverage.totals.items():
        table.add_row(kind, str(result.coverage.hosted.get(kind, 0)), str(total))
    console.print(table)

    lines = [
        f"Storage: {result.storage_name}",
        f"Coverage: {result.coverage.summary_line() or 'no assets'}",
        "Fetched: {fetched}  Uploaded: {uploaded}  Manifest hits: {manifest_hits}  "
        "Storage hits: {storage_hits}  Failed: {failed}".format(**result.stats),
        f"Manifest entries: {result.manifest_entries}",
    ]
    if result.reconcile is not None:
        counts = result.reconcile.delta.counts
        lines.append(
            f"Delta: new={counts.new} continuing={counts.continuing} ended={counts.ended}"
        )
        if result.reconcile.guard_tripped:
            lines.append(f"[yellow]Guard: {result.reconcile.guard}[/yellow]")
    if result.dry_run:
        lines.append(f"[yellow]Dry run: {len(result.intended_uploads)} uploads not performed[/yellow]")
    console.print(Panel("\n".join(lines), title="Execution Summary"))

    if result.coverage.failures:
        failures = Table(title="Failed Assets")
        failures.add_column("Entity", style="cyan")
        failures.add_column("Kind", style="magenta")
        failures.add_column("Reason", style="red")
        for entity_id, kind, reason in result.coverage.failures:
            failures.add_row(entity_id, kind, reason)
        console.print(failures)


@app.command()
def print_config(
    config: Optional[str] = typer.Option(
        None,
        "--config",
        "-c",
        help="Path to config file",
        envvar="LOTTODATA_CONFIG",
    ),
    raw: bool = typer.Option(False, "--raw", help="Raw JSON"),
) -> None:
    """Print merged effective config."""
    try:
        cfg = load_config(path=config)
        data = cfg.model_dump(mode="json")
        if raw:
            typer.echo(json.dumps(data, indent=2))
        else:
            console.print(Panel(json.dumps(data, indent=2), title="AssetHosting Config", expand=False))
    except Exception as e:
        console.print(f"[red]✗ Error: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def validate_config(
    config: str = typer.Argument(..., help="Path to config file"),
) -> None:
    """Validate a config file."""
    try:
        validate_config_file(config)
        console.print("[green]✓ Config valid[/green]")
    except Exception as e:
        console.print(f"[red]✗ Invalid: {e}[/red]")
        raise typer.Exit(code=1)


@app.command()
def storage() -> None:
    """Show the storage backend resolved from the environment."""
    resolved = resolve_storage_config()
    table = Table(title="Storage Resolution")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")
    for name, value in resolved.describe().items():
        table.add_row(name, value)
    table.add_row("chain", " → ".join(resolved.chain()))
    console.print(table)


@app.command()
def manifest_stats(
    path: str = typer.Argument(..., help="Path to manifest JSON"),
) -> None:
    """Summarise a manifest file."""
    if not Path(path).exists():
        console.print(f"[red]✗ No manifest at {path}[/red]")
        raise typer.Exit(code=1)
    stats = Manifest.load(path).stats()
    table = Table(title=f"Manifest {path}")
    table.add_column("Metric", style="cyan")
    table.add_column("Value", style="green")
    table.add_row("entries", str(stats["entries"]))
    table.add_row("unique keys", str(stats["unique_keys"]))
    table.add_row("total bytes", str(stats["total_bytes"]))
    for content_type, count in sorted(stats["by_content_type"].items()):
        table.add_row(content_type, str(count))
    console.print(table)


def main() -> None:
    """Entry point for CLI."""
    app()


if __name__ == "__main__":
    main()
