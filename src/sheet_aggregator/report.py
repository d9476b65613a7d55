"""Output writers — combined table export (CSV / XLSX) and the aggregation report."""

from __future__ import annotations

from datetime import datetime
from pathlib import Path
from typing import Any, Literal

import pandas as pd
from openpyxl import Workbook
from openpyxl.styles import Alignment, Font, PatternFill
from openpyxl.utils import get_column_letter
from openpyxl.worksheet.worksheet import Worksheet

from sheet_aggregator import FILE_NAME_COLUMN, SHEET_NAME_COLUMN
from sheet_aggregator.io import write_csv, write_json
from sheet_aggregator.models import AggregationReport

OutputFormat = Literal["csv", "xlsx"]

# ── Style constants ──────────────────────────────────────────────

HEADER_FONT = Font(name="Calibri", bold=True, size=11, color="FFFFFF")
HEADER_FILL = PatternFill(start_color="2F5496", end_color="2F5496", fill_type="solid")
HEADER_ALIGN = Alignment(horizontal="center", vertical="center", wrap_text=True)

LABEL_FONT = Font(name="Calibri", bold=True, size=11)
VALUE_FONT = Font(name="Calibri", size=11)
WARN_FONT = Font(name="Calibri", italic=True, size=10, color="CC6600")
NOTE_FILL = PatternFill(start_color="FFF2CC", end_color="FFF2CC", fill_type="solid")

DATE_FMT = "yyyy-mm-dd"

_AUTO_WIDTH_SAMPLE_ROWS = 300
_EXCEL_FORMULA_PREFIXES = ("=", "+", "-", "@")


# ── Inspection ───────────────────────────────────────────────────


def sheet_counts(df: pd.DataFrame) -> pd.DataFrame:
    """Row counts per source file and sheet, in table order."""
    if df.empty:
        return pd.DataFrame(columns=[FILE_NAME_COLUMN, SHEET_NAME_COLUMN, "rows"])
    return (
        df.groupby([FILE_NAME_COLUMN, SHEET_NAME_COLUMN], sort=False, observed=True)
        .size()
        .reset_index(name="rows")
    )


# ── XLSX helpers ─────────────────────────────────────────────────


def _style_header(ws: Worksheet, ncols: int) -> None:
    for c in range(1, ncols + 1):
        cell = ws.cell(row=1, column=c)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.alignment = HEADER_ALIGN


def _auto_width(ws: Worksheet) -> None:
    max_row = min(ws.max_row, _AUTO_WIDTH_SAMPLE_ROWS + 1)  # include header row
    for c_idx in range(1, ws.max_column + 1):
        letter = get_column_letter(c_idx)
        width = 0
        for row in ws.iter_rows(min_row=1, max_row=max_row, min_col=c_idx, max_col=c_idx):
            cell = row[0]
            width = max(width, len(str(cell.value or "")))
        width += 4
        ws.column_dimensions[letter].width = min(width, 30)


def _apply_date_formats(ws: Worksheet, df: pd.DataFrame) -> None:
    if ws.max_row < 2:
        return
    for c_idx, col in enumerate(df.columns, 1):
        if pd.api.types.is_datetime64_any_dtype(df[col]):
            for row in ws.iter_rows(min_row=2, max_row=ws.max_row, min_col=c_idx, max_col=c_idx):
                for cell in row:
                    cell.number_format = DATE_FMT


def _excel_value(val: Any) -> Any:
    try:
        if pd.isna(val):
            return None
    except (TypeError, ValueError):
        return val

    if isinstance(val, pd.Timestamp):
        dt = val.to_pydatetime()
        return dt.replace(tzinfo=None) if dt.tzinfo else dt

    if isinstance(val, datetime) and val.tzinfo:
        return val.replace(tzinfo=None)

    if isinstance(val, str):
        if val.startswith("'"):
            return val
        stripped = val.lstrip()
        if stripped and stripped[0] in _EXCEL_FORMULA_PREFIXES:
            return f"'{val}"

    item = getattr(val, "item", None)
    if callable(item):
        return item()
    return val


def _df_to_sheet(wb: Workbook, name: str, df: pd.DataFrame) -> None:
    ws = wb.create_sheet(title=name)
    col_names = [str(c) for c in df.columns]

    if not col_names:
        ws.cell(row=1, column=1, value="No data").font = VALUE_FONT
        ws.column_dimensions["A"].width = 18
        return

    for c_idx, col_name in enumerate(col_names, 1):
        ws.cell(row=1, column=c_idx, value=col_name)
    for r_idx, row_vals in enumerate(df.itertuples(index=False, name=None), 2):
        for c_idx, val in enumerate(row_vals, 1):
            ws.cell(row=r_idx, column=c_idx, value=_excel_value(val))
    _style_header(ws, len(col_names))
    _apply_date_formats(ws, df)
    ws.freeze_panes = "A2"
    if len(df) > 0:
        ws.auto_filter.ref = ws.dimensions
    _auto_width(ws)


def _write_notes(wb: Workbook, report: AggregationReport) -> None:
    ws = wb.create_sheet(title="Notes")
    rows = [
        ("Files matched", report.files_in),
        ("Files read", report.files_read),
        ("Sheets read", report.sheets_read),
        ("Rows", report.rows_out),
    ]
    for r_idx, (label, value) in enumerate(rows, 1):
        ws.cell(row=r_idx, column=1, value=label).font = LABEL_FONT
        ws.cell(row=r_idx, column=2, value=value).font = VALUE_FONT

    row = len(rows) + 2
    for warn in report.warnings or ["No warnings"]:
        cell = ws.cell(row=row, column=1, value=warn)
        cell.font = WARN_FONT if report.warnings else VALUE_FONT
        cell.fill = NOTE_FILL
        row += 1

    ws.column_dimensions["A"].width = 22
    ws.column_dimensions["B"].width = 14


# ── Public API ───────────────────────────────────────────────────


def write_workbook(
    path: Path, df: pd.DataFrame, report: AggregationReport | None = None
) -> Path:
    """Write *df* to a ``Combined`` sheet (plus ``Notes`` when *report* is given)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    wb = Workbook()
    active_sheet = wb.active
    if active_sheet is not None:
        wb.remove(active_sheet)  # remove default sheet

    _df_to_sheet(wb, "Combined", df)
    if report is not None:
        _write_notes(wb, report)

    tmp_path = path.with_name(f"{path.stem}.tmp{path.suffix}")
    wb.save(tmp_path)
    tmp_path.replace(path)
    return path


def write_table(
    out_dir: Path,
    df: pd.DataFrame,
    *,
    fmt: OutputFormat = "csv",
    report: AggregationReport | None = None,
) -> Path:
    """Write ``combined.csv`` or ``combined.xlsx`` into *out_dir* and return the path."""
    if fmt == "csv":
        return write_csv(Path(out_dir) / "combined.csv", df)
    if fmt == "xlsx":
        return write_workbook(Path(out_dir) / "combined.xlsx", df, report)
    raise ValueError(f"Unsupported output format: {fmt!r}. Use csv or xlsx.")


def write_aggregation_report(out_dir: Path, report: AggregationReport) -> Path:
    """Write ``aggregation_report.json`` into *out_dir* and return the path."""
    return write_json(Path(out_dir) / "aggregation_report.json", report.to_dict())
