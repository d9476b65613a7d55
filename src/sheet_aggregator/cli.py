"""CLI entry point for sheet-aggregator."""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import NoReturn

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table as RichTable

from sheet_aggregator import __version__
from sheet_aggregator.aggregate import aggregate
from sheet_aggregator.errors import AggregationError
from sheet_aggregator.io import write_json
from sheet_aggregator.models import AggregationReport, AggregatorConfig, RunManifest
from sheet_aggregator.pipeline import parse_steps
from sheet_aggregator.report import sheet_counts, write_aggregation_report, write_table
from sheet_aggregator.selection import file_month, select_files, select_month
from sheet_aggregator.utils import fingerprint_files, utcnow_iso

app = typer.Typer(
    name="sheetagg",
    help="sheet-aggregator — Combine every sheet of every matching spreadsheet into one table.",
    add_completion=False,
    no_args_is_help=True,
)
console = Console()


class ErrorPolicyOption(str, Enum):
    fail = "fail"
    skip = "skip"


class OutputFormatOption(str, Enum):
    csv = "csv"
    xlsx = "xlsx"


def _noop(*_args: object, **_kwargs: object) -> None:
    return None


def _printer(quiet: bool) -> Callable[..., None]:
    return _noop if quiet else console.print


def _err(msg: str) -> None:
    console.print(f"[red]x[/red] {escape(msg)}")


# ── Helpers ──────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"sheet-aggregator v{__version__}")
        raise typer.Exit()


def _setup_logging(verbose: bool) -> None:
    logger = logging.getLogger("sheet_aggregator")
    logger.handlers[:] = [RichHandler(console=console, show_path=False)]
    logger.setLevel(logging.DEBUG if verbose else logging.WARNING)


def _write_manifest(
    out_dir: Path,
    config: AggregatorConfig,
    created_at: str,
    *,
    file_names: list[str],
    rows_out: int = 0,
    output_path: Path | None = None,
    status: str = "success",
    error_code: int | None = None,
    error_message: str = "",
) -> Path:
    manifest = RunManifest(
        version=__version__,
        directory=str(config.directory.resolve()),
        pattern=config.pattern,
        month=config.month,
        output_path=str(output_path.resolve()) if output_path else "",
        created_at_utc=created_at,
        files=fingerprint_files(config.directory, file_names),
        rows_out=rows_out,
        status=status,
        error_code=error_code,
        error_message=error_message,
    )
    return write_json(out_dir / "run_manifest.json", manifest.to_dict())


def _fail(
    out_dir: Path,
    config: AggregatorConfig,
    created_at: str,
    *,
    message: str,
    error_code: int,
    file_names: list[str] | None = None,
) -> NoReturn:
    file_names = list(file_names or [])
    report = AggregationReport(
        files_in=len(file_names),
        files_read=0,
        skipped_files=file_names,
        warnings=[message],
    )
    report_path = write_aggregation_report(out_dir, report)
    manifest_path = _write_manifest(
        out_dir,
        config,
        created_at,
        file_names=file_names,
        status="failed",
        error_code=error_code,
        error_message=message,
    )
    _err(message)
    console.print(f"  Report   -> {report_path}")
    console.print(f"  Manifest -> {manifest_path}")
    raise typer.Exit(code=error_code)


# ── Callbacks ────────────────────────────────────────────────────


@app.callback()
def main(
    version: bool | None = typer.Option(
        None, "--version", "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """sheet-aggregator CLI."""


# ── list command ─────────────────────────────────────────────────


@app.command("list")
def list_files(
    directory: Path = typer.Option(
        ..., "--dir", "-d",
        envvar="SHEETAGG_DIR",
        help="Directory holding the spreadsheet files.",
    ),
    pattern: str = typer.Option(
        ..., "--pattern", "-p",
        envvar="SHEETAGG_PATTERN",
        help=r"Regular expression searched in file names, e.g. '^test[0-9]\.xlsx'.",
    ),
    month: str | None = typer.Option(
        None, "--month",
        help="Keep only files whose name embeds a YYYY-MM-DD date in this YYYY-MM month.",
    ),
) -> None:
    """Show which files a combine run would read."""
    try:
        names = select_files(directory, pattern)
        if month is not None:
            names = select_month(names, month)
    except (AggregationError, ValueError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    tbl = RichTable(title=f"Matched files in {directory}", show_lines=False)
    tbl.add_column("#", justify="right")
    tbl.add_column("File", style="bold")
    if month is not None:
        tbl.add_column("Month")
    for idx, name in enumerate(names, 1):
        if month is not None:
            tbl.add_row(str(idx), name, file_month(name))
        else:
            tbl.add_row(str(idx), name)
    console.print(tbl)
    console.print(f"  {len(names)} file(s) matched")


# ── combine command ──────────────────────────────────────────────


@app.command()
def combine(
    directory: Path = typer.Option(
        ..., "--dir", "-d",
        envvar="SHEETAGG_DIR",
        help="Directory holding the spreadsheet files.",
    ),
    pattern: str = typer.Option(
        ..., "--pattern", "-p",
        envvar="SHEETAGG_PATTERN",
        help=r"Regular expression searched in file names, e.g. '^test[0-9]\.xlsx'.",
    ),
    month: str | None = typer.Option(
        None, "--month",
        help="Keep only files whose name embeds a YYYY-MM-DD date in this YYYY-MM month.",
    ),
    on_error: ErrorPolicyOption = typer.Option(
        ErrorPolicyOption.fail, "--on-error",
        help="fail: abort on the first unreadable file; skip: leave it out and continue.",
    ),
    steps: list[str] | None = typer.Option(
        None, "--step", "-s",
        help=(
            "Post-processing step, applied in the order given: normalize, "
            "filter:'a > 1', drop:col, derive:a_plus_b=a+b"
        ),
    ),
    delimiter: str | None = typer.Option(
        None, "--delimiter",
        help="Delimiter for CSV inputs (sniffed when omitted).",
    ),
    out_dir: Path = typer.Option(
        Path("output"), "--out-dir", "-o",
        help="Output directory for the combined table, report and manifest.",
    ),
    fmt: OutputFormatOption = typer.Option(
        OutputFormatOption.csv, "--format", "-f",
        help="Combined table format: csv or xlsx.",
    ),
    quiet: bool = typer.Option(
        False, "--quiet", "-q",
        help="Suppress informational output; still writes all artifacts.",
    ),
    verbose: bool = typer.Option(
        False, "--verbose", "-v",
        help="Log every file and sheet as it is read.",
    ),
) -> None:
    """Combine every sheet of every matching file into one table."""
    _setup_logging(verbose)
    echo = _printer(quiet)
    created_at = utcnow_iso()
    out_dir.mkdir(parents=True, exist_ok=True)

    try:
        config = AggregatorConfig(
            directory=directory,
            pattern=pattern,
            month=month,
            on_error=on_error.value,
            delimiter=delimiter,
            steps=parse_steps(steps or []),
        )
    except (TypeError, ValueError) as exc:
        _err(str(exc))
        raise typer.Exit(code=2)

    if not quiet:
        console.print(Panel(
            f"[bold]sheet-aggregator[/bold] v{__version__}\n"
            f"Directory: {escape(str(config.directory))}\n"
            f"Pattern:   {escape(config.pattern)}\n"
            f"Output:    {out_dir}",
            title="Combine", border_style="blue",
        ))
        if config.month:
            console.print(f"  Month: {config.month}")
        if steps:
            console.print(f"  Steps: {escape(' -> '.join(steps))}")

    echo("[blue]>[/blue] Reading files …")
    selected: list[str] = []
    try:
        selected = select_files(config.directory, config.pattern)
        if config.month is not None:
            selected = select_month(selected, config.month)
        result = aggregate(config)
    except (AggregationError, KeyError, ValueError) as exc:
        _fail(
            out_dir, config, created_at,
            message=str(exc), error_code=2, file_names=selected,
        )
    except Exception as exc:
        _fail(
            out_dir, config, created_at,
            message=f"Unexpected internal error: {exc}", error_code=1, file_names=selected,
        )

    report = result.report
    if not quiet:
        for w in report.warnings:
            console.print(f"  [yellow]![/yellow] {escape(w)}")

        counts = sheet_counts(result.table)
        tbl = RichTable(title="Rows per sheet", show_lines=False)
        tbl.add_column("File", style="bold")
        tbl.add_column("Sheet")
        tbl.add_column("Rows", justify="right")
        for file_name, sheet_name, rows in counts.itertuples(index=False, name=None):
            tbl.add_row(str(file_name), str(sheet_name), str(rows))
        console.print(tbl)
        console.print(
            f"  {report.rows_out} rows x {len(report.columns)} columns "
            f"from {report.files_read}/{report.files_in} files"
        )

    table_path = write_table(out_dir, result.table, fmt=fmt.value, report=report)
    echo(f"  Table    -> {table_path}")
    report_path = write_aggregation_report(out_dir, report)
    echo(f"  Report   -> {report_path}")
    manifest_path = _write_manifest(
        out_dir,
        config,
        created_at,
        file_names=result.file_names,
        rows_out=report.rows_out,
        output_path=table_path,
    )
    echo(f"  Manifest -> {manifest_path}")

    if not quiet:
        console.print(Panel(
            f"[green]Done[/green] — {report.rows_out} rows -> {table_path}",
            title="Combine Complete", border_style="green",
        ))
