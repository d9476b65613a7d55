"""Aggregation — read matching files sheet by sheet and stack them into one table."""

from __future__ import annotations

import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from sheet_aggregator import MISSING, TAG_COLUMNS
from sheet_aggregator.errors import MalformedSheet, UnreadableFile
from sheet_aggregator.io import load_sheets, tag_sheets
from sheet_aggregator.models import AggregationReport, AggregatorConfig, ErrorPolicy
from sheet_aggregator.pipeline import apply_steps
from sheet_aggregator.selection import select_files, select_month

logger = logging.getLogger(__name__)


@dataclass
class AggregationResult:
    table: pd.DataFrame
    report: AggregationReport
    file_names: list[str]


# ── Stacking ─────────────────────────────────────────────────────


def _column_union(frames: Iterable[pd.DataFrame]) -> list[str]:
    columns: list[str] = []
    seen: set[str] = set()
    for frame in frames:
        for col in frame.columns:
            if col not in seen:
                seen.add(col)
                columns.append(col)
    return columns


def _normalize_missing(df: pd.DataFrame) -> pd.DataFrame:
    """Use nullable dtypes so every absent value is ``pd.NA``."""
    df = df.convert_dtypes()
    for col in df.columns:
        if df[col].dtype == object:
            df[col] = df[col].where(df[col].notna(), MISSING)
    for col in TAG_COLUMNS:
        df[col] = df[col].astype("string")
    return df


def combine_tables(frames: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """Stack tagged frames; the column set is the union in order of first appearance."""
    columns = _column_union([pd.DataFrame(columns=TAG_COLUMNS), *frames])
    non_empty = [f for f in frames if len(f)]
    if non_empty:
        combined = pd.concat(non_empty, ignore_index=True, sort=False)
        combined = combined.reindex(columns=columns)
    else:
        combined = pd.DataFrame(columns=columns)
    return _normalize_missing(combined)


# ── Per-file and multi-file reads ────────────────────────────────


def read_sheets(
    directory: Path | str, file_name: str, *, delimiter: str | None = None
) -> pd.DataFrame:
    """Return the per-file table: every sheet of *file_name*, tagged and stacked."""
    sheets = load_sheets(Path(directory).expanduser() / file_name, delimiter=delimiter)
    return combine_tables(tag_sheets(file_name, sheets))


def combine_files(
    directory: Path | str,
    file_names: Sequence[str],
    *,
    on_error: ErrorPolicy = "fail",
    delimiter: str | None = None,
) -> AggregationResult:
    """Read *file_names* in order and stack every sheet into the combined table.

    With ``on_error="fail"`` the first unreadable file or malformed sheet aborts
    the whole aggregation. With ``on_error="skip"`` such files are left out and
    listed in the report.
    """
    if on_error not in ("fail", "skip"):
        raise ValueError(f"Invalid error policy: {on_error!r}. Use fail/skip.")

    directory = Path(directory).expanduser()
    frames: list[pd.DataFrame] = []
    read: list[str] = []
    skipped: list[str] = []
    warnings: list[str] = []
    sheets_read = 0

    for file_name in file_names:
        try:
            sheets = load_sheets(directory / file_name, delimiter=delimiter)
        except (UnreadableFile, MalformedSheet) as exc:
            if on_error == "fail":
                raise
            logger.warning("Skipping %s", exc)
            skipped.append(file_name)
            warnings.append(f"Skipped {exc}")
            continue

        for sheet_name, frame in sheets.items():
            if frame.empty and not len(frame.columns):
                warnings.append(f"Sheet {sheet_name!r} in {file_name} is empty")
        sheets_read += len(sheets)
        frames.extend(tag_sheets(file_name, sheets))
        read.append(file_name)
        logger.info("Read %s (%d sheets)", file_name, len(sheets))

    table = combine_tables(frames)
    report = AggregationReport(
        files_in=len(file_names),
        files_read=len(read),
        sheets_read=sheets_read,
        rows_out=len(table),
        columns=[str(c) for c in table.columns],
        skipped_files=skipped,
        warnings=warnings,
    )
    return AggregationResult(table=table, report=report, file_names=read)


def aggregate(config: AggregatorConfig) -> AggregationResult:
    """Select, read and combine files as described by *config*, then run its steps."""
    file_names = select_files(config.directory, config.pattern)
    if config.month is not None:
        file_names = select_month(file_names, config.month)
    logger.info("Aggregating %d files from %s", len(file_names), config.directory)

    result = combine_files(
        config.directory,
        file_names,
        on_error=config.on_error,
        delimiter=config.delimiter,
    )
    if config.steps:
        result.table = apply_steps(result.table, config.steps)
        result.report.rows_out = len(result.table)
        result.report.columns = [str(c) for c in result.table.columns]
    return result
