from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer
from dotenv import load_dotenv
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from .config import AppConfig
from .dsl.printer import pretty_print
from .dsl.status import counts_by_status
from .dsl.tags import parse_tag_filters
from .errors import InterpreterError
from .eval.interpreter import SpecInterpreter
from .models import FeatureResult, FeatureUnit, run_status
from .parsing.discovery import discover_units
from .parsing.loader import JsonFeatureParser, parse_feature_file, read_data_records


app = typer.Typer(add_completion=False, no_args_is_help=True)
console = Console()

_STATUS_STYLES = {
    "Passed": "green",
    "Failed": "red",
    "Skipped": "yellow",
    "Pending": "yellow",
    "Loaded": "cyan",
}


def _load_config(**overrides) -> AppConfig:
    load_dotenv(override=False)
    config = AppConfig()
    for name, value in overrides.items():
        if value is not None:
            setattr(config, name, value)
    return config


def _configure_logging(verbose: bool) -> None:
    root = logging.getLogger()
    if root.handlers:
        return
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_path=False, rich_tracebacks=True)],
    )


def _styled(status: str) -> str:
    style = _STATUS_STYLES.get(status, "white")
    return f"[{style}]{status}[/{style}]"


@app.command()
def run(
    paths: List[Path] = typer.Argument(..., help="Feature files and/or directories to evaluate"),
    meta: Optional[List[Path]] = typer.Option(None, "--meta", "-m", help="Meta files to load (overrides discovery)"),
    tags: Optional[str] = typer.Option(None, "--tags", "-t", help="Comma separated @include or ~@exclude tags"),
    input_data: Optional[Path] = typer.Option(None, "--input-data", "-i", help="CSV file with column headers"),
    dry_run: Optional[bool] = typer.Option(None, "--dry-run/--no-dry-run", help="Validate steps without performing them"),
    parallel: Optional[bool] = typer.Option(None, "--parallel/--sequential", help="Evaluate feature units concurrently"),
    failfast: Optional[bool] = typer.Option(None, "--failfast/--no-failfast", help="Skip remaining scenarios after a failure"),
    exit_on_fail: Optional[bool] = typer.Option(None, "--exit-on-fail/--no-exit-on-fail", help="Stop a feature on first failure"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging"),
):
    """Evaluate feature units and report their statuses."""
    _configure_logging(verbose)
    cfg = _load_config(
        dry_run=dry_run,
        parallel=parallel,
        feature_failfast=failfast,
        feature_failfast_exit=exit_on_fail,
    )
    for path in paths:
        if not path.exists():
            raise typer.BadParameter(f"Path not found: {path}")
    if input_data is not None and not input_data.exists():
        raise typer.BadParameter(f"Specified data file not found: {input_data}")

    try:
        tag_filters = parse_tag_filters(tags or "")
        records = read_data_records(input_data) if input_data else None
        units = discover_units(
            [p.resolve() for p in paths],
            ignore_globs=cfg.ignore_globs,
            feature_extension=cfg.feature_extension,
            meta_extension=cfg.meta_extension,
            meta_files=[m.resolve() for m in meta] if meta else None,
            data_records=records,
        )
        if not units:
            console.print("[yellow]No feature files found[/yellow]")
            raise typer.Exit(code=0)
        console.print(f"Found [bold]{len(units)}[/bold] feature unit(s)")

        def _progress(i: int, total: int, unit: FeatureUnit, result: Optional[FeatureResult]) -> None:
            pct = int(i * 100 / max(1, total))
            outcome = _styled(result.status.keyword.value) if result else "[dim]skipped (filtered)[/dim]"
            console.print(f"[dim]Evaluated:[/dim] {i}/{total} ({pct}%) - {escape(unit.label)} {outcome}")

        results = SpecInterpreter(cfg).run(units, tag_filters, progress_callback=_progress)
    except InterpreterError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)

    table = Table(title="Results")
    table.add_column("Feature")
    table.add_column("File")
    table.add_column("Status")
    table.add_column("Elapsed", justify="right")
    for r in results:
        table.add_row(escape(r.spec.feature.name), escape(str(r.spec.feature_file or "")), _styled(r.status.keyword.value), f"{r.elapsed_seconds:.3f}s")
    console.print(table)

    counts = counts_by_status(r.status for r in results)
    summary = ", ".join(f"{n} {_styled(k.value)}" for k, n in counts.items())
    if summary:
        console.print(f"Summary: {summary}")
    status = run_status(results)
    console.print(f"Overall: {_styled(status.keyword.value)}")
    raise typer.Exit(code=status.exit_code)


@app.command()
def normalise(
    feature_file: Path = typer.Argument(..., help="Feature or meta file (JSON AST)"),
    input_data: Optional[Path] = typer.Option(None, "--input-data", "-i", help="CSV file; normalise with its first record"),
    as_json: bool = typer.Option(False, "--json", help="Print the normalised spec as JSON"),
):
    """Print the normalised form of a feature without evaluating it."""
    if not feature_file.exists():
        raise typer.BadParameter(f"Feature file not found: {feature_file}")
    cfg = _load_config()
    try:
        records = read_data_records(input_data) if input_data else []
        spec = parse_feature_file(feature_file, JsonFeatureParser())
        result = SpecInterpreter(cfg).normalise(spec, feature_file, records[0] if records else None)
    except InterpreterError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)
    if as_json:
        console.print_json(result.model_dump_json())
    else:
        console.print(pretty_print(result, show_status=False), markup=False, highlight=False)


if __name__ == "__main__":  # pragma: no cover
    app()
