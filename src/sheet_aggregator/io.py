"""I/O helpers — read workbook sheets, write JSON and CSV artifacts."""

from __future__ import annotations

import csv
import json
import logging
import zipfile
from datetime import date, datetime
from pathlib import Path
from typing import Any, Literal

import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from sheet_aggregator import FILE_NAME_COLUMN, SHEET_NAME_COLUMN, TAG_COLUMNS
from sheet_aggregator.errors import MalformedSheet, UnreadableFile

logger = logging.getLogger(__name__)

EXCEL_SUFFIXES = (".xlsx", ".xlsm", ".xltx", ".xltm")
LEGACY_EXCEL_SUFFIXES = (".xls",)
TEXT_SUFFIXES = (".csv", ".tsv", ".txt")

_READ_ERRORS = (OSError, ValueError, KeyError, zipfile.BadZipFile, InvalidFileException)


# ── Header handling ──────────────────────────────────────────────


def _header_name(value: Any) -> str | None:
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    name = str(value)
    return name if name.strip() else None


def _trim_blank_rows(raw: pd.DataFrame) -> pd.DataFrame:
    filled = raw.notna().any(axis=1).to_numpy()
    if not filled.any():
        return raw.iloc[0:0]
    first = int(filled.argmax())
    last = len(filled) - int(filled[::-1].argmax())
    return raw.iloc[first:last]


def _apply_header(
    header: list[Any], body: pd.DataFrame, *, file_name: str, sheet_name: str
) -> pd.DataFrame:
    """Name *body*'s columns from *header*, dropping blank columns without a header."""
    body = body.copy()
    body.columns = pd.RangeIndex(len(body.columns))
    names = [_header_name(v) for v in header]

    keep: list[int] = []
    for pos, name in enumerate(names):
        if name is None:
            if body[pos].notna().any():
                raise MalformedSheet(
                    f"Sheet {sheet_name!r} has a blank header above data in column {pos + 1}",
                    file_name=file_name,
                    sheet_name=sheet_name,
                )
            continue
        keep.append(pos)

    present = [n for n in names if n is not None]
    duplicates = sorted({n for n in present if present.count(n) > 1})
    if duplicates:
        raise MalformedSheet(
            f"Sheet {sheet_name!r} has duplicate headers: {', '.join(duplicates)}",
            file_name=file_name,
            sheet_name=sheet_name,
        )
    collisions = [n for n in present if n in TAG_COLUMNS]
    if collisions:
        raise MalformedSheet(
            f"Sheet {sheet_name!r} already has a {collisions[0]!r} column",
            file_name=file_name,
            sheet_name=sheet_name,
        )

    body = body[keep]
    body.columns = pd.Index([names[p] for p in keep])
    return body.reset_index(drop=True)


def _frame_from_raw(raw: pd.DataFrame, *, file_name: str, sheet_name: str) -> pd.DataFrame:
    """Split a header-less sheet grid into header row + typed body."""
    raw = _trim_blank_rows(raw)
    if raw.empty:
        return pd.DataFrame()
    header = raw.iloc[0].tolist()
    body = raw.iloc[1:].infer_objects()
    return _apply_header(header, body, file_name=file_name, sheet_name=sheet_name)


# ── Loading ──────────────────────────────────────────────────────


def _read_excel_sheets(path: Path, engine: str) -> dict[str, pd.DataFrame]:
    sheets: dict[str, pd.DataFrame] = {}
    try:
        with pd.ExcelFile(path, engine=engine) as book:
            for name in book.sheet_names:
                raw = book.parse(name, header=None, keep_default_na=False, na_values=[""])
                sheets[str(name)] = _frame_from_raw(raw, file_name=path.name, sheet_name=str(name))
    except ImportError as exc:
        raise UnreadableFile(
            f"Cannot read {path.suffix} files unless '{engine}' is installed. "
            f"Either convert to .xlsx or add dependency: pip install {engine}",
            file_name=path.name,
        ) from exc
    except _READ_ERRORS as exc:
        raise UnreadableFile(f"Cannot open workbook: {exc}", file_name=path.name) from exc
    return sheets


def _read_csv(path: Path, delimiter: str | None, **kwargs: Any) -> pd.DataFrame:
    last_exc: Exception | None = None
    sep = delimiter if delimiter else None
    engine: Literal["c", "python"] = "c" if delimiter else "python"
    for encoding in ("utf-8-sig", "utf-8", "latin-1"):
        try:
            return pd.read_csv(
                path,
                sep=sep,
                engine=engine,
                encoding=encoding,
                encoding_errors="strict",
                na_filter=True,
                keep_default_na=False,
                na_values=[""],
                **kwargs,
            )
        except pd.errors.EmptyDataError:
            return pd.DataFrame()
        except (UnicodeDecodeError, pd.errors.ParserError, csv.Error) as exc:
            last_exc = exc
    raise UnreadableFile(
        "Could not read delimited text (decode or parse failed)", file_name=path.name
    ) from last_exc


def _read_text_sheet(path: Path, delimiter: str | None) -> dict[str, pd.DataFrame]:
    sheet_name = path.stem
    try:
        head = _read_csv(path, delimiter, header=None, nrows=1, dtype="string")
        if head.empty:
            return {sheet_name: pd.DataFrame()}
        body = _read_csv(path, delimiter, header=0, index_col=False)
    except OSError as exc:
        raise UnreadableFile(f"Cannot open file: {exc}", file_name=path.name) from exc
    frame = _apply_header(
        head.iloc[0].tolist(), body, file_name=path.name, sheet_name=sheet_name
    )
    return {sheet_name: frame}


def load_sheets(path: Path, delimiter: str | None = None) -> dict[str, pd.DataFrame]:
    """Read every sheet of *path* into ``{sheet_name: frame}`` in workbook order.

    The first non-blank row of each sheet is its header. An empty sheet maps to
    an empty frame. Delimited text files hold a single sheet named after the
    file stem.

    Raises
    ------
    UnreadableFile
        If *path* is missing, has an unsupported extension, or cannot be parsed.
    MalformedSheet
        If a sheet's header row is blank above data or repeats a name.
    """
    path = Path(path)
    if not path.exists():
        raise UnreadableFile(f"File not found: {path}", file_name=path.name)
    if not path.is_file():
        raise UnreadableFile(f"Path is not a file: {path}", file_name=path.name)

    suffix = path.suffix.lower()
    if suffix in EXCEL_SUFFIXES:
        sheets = _read_excel_sheets(path, "openpyxl")
    elif suffix in LEGACY_EXCEL_SUFFIXES:
        sheets = _read_excel_sheets(path, "xlrd")
    elif suffix in TEXT_SUFFIXES:
        sheets = _read_text_sheet(path, delimiter)
    else:
        raise UnreadableFile(
            f"Unsupported file type: {suffix!r}. Use .xlsx, .xls or .csv",
            file_name=path.name,
        )
    logger.debug("Read %d sheets from %s", len(sheets), path.name)
    return sheets


def tag_sheets(file_name: str, sheets: dict[str, pd.DataFrame]) -> list[pd.DataFrame]:
    """Prefix each sheet frame with ``file_name`` and ``sheet_name`` columns."""
    tagged: list[pd.DataFrame] = []
    for sheet_name, frame in sheets.items():
        frame = frame.copy()
        frame.insert(0, SHEET_NAME_COLUMN, sheet_name)
        frame.insert(0, FILE_NAME_COLUMN, file_name)
        tagged.append(frame)
    return tagged


# ── Writing ──────────────────────────────────────────────────────


def _json_default(obj: Any) -> Any:
    if isinstance(obj, Path):
        return str(obj)
    if isinstance(obj, (datetime, date)):
        return obj.isoformat()
    item = getattr(obj, "item", None)
    if callable(item):
        converted = item()
        if isinstance(converted, (str, int, float, bool)) or converted is None:
            return converted
    raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


def write_json(path: Path, data: Any) -> Path:
    """Write *data* as pretty-printed JSON to *path* (atomic + deterministic)."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    payload = json.dumps(
        data,
        indent=2,
        sort_keys=True,
        ensure_ascii=False,
        default=_json_default,
    ) + "\n"
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    tmp_path.write_text(payload, encoding="utf-8")
    tmp_path.replace(path)
    return path


def write_csv(path: Path, df: pd.DataFrame) -> Path:
    """Write *df* as UTF-8 CSV; missing values become empty fields."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = path.with_suffix(path.suffix + ".tmp")
    df.to_csv(tmp_path, index=False, encoding="utf-8", na_rep="")
    tmp_path.replace(path)
    return path
