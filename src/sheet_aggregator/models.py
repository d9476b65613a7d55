"""Data models used across the package."""

from __future__ import annotations

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from numbers import Integral
from pathlib import Path
from typing import Any, Literal

import pandas as pd

ErrorPolicy = Literal["fail", "skip"]
Step = Callable[[pd.DataFrame], pd.DataFrame]

_MONTH_RE = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")


def _to_non_negative_int(value: Any, field_name: str) -> int:
    if isinstance(value, bool) or not isinstance(value, Integral):
        raise TypeError(f"{field_name} must be an integer")
    result = int(value)
    if result < 0:
        raise ValueError(f"{field_name} must be >= 0")
    return result


def _to_string_list(values: Sequence[Any] | None, field_name: str) -> list[str]:
    if values is None:
        return []
    if isinstance(values, str):
        raise TypeError(f"{field_name} must be a sequence of strings")
    normalized: list[str] = []
    for item in values:
        if not isinstance(item, str):
            raise TypeError(f"{field_name} items must be strings")
        normalized.append(item)
    return normalized


def validate_month(value: str) -> str:
    """Return *value* if it is a ``YYYY-MM`` year-month, else raise ``ValueError``."""
    if not isinstance(value, str) or not _MONTH_RE.fullmatch(value):
        raise ValueError(f"Invalid year-month {value!r}; expected YYYY-MM")
    return value


@dataclass
class AggregatorConfig:
    """Everything one aggregation run needs; passed explicitly, never global."""

    directory: Path
    pattern: str
    month: str | None = None
    on_error: ErrorPolicy = "fail"
    delimiter: str | None = None
    steps: list[Step] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.directory = Path(self.directory).expanduser()
        if not isinstance(self.pattern, str) or not self.pattern:
            raise ValueError("pattern must be a non-empty regular expression")
        try:
            re.compile(self.pattern)
        except re.error as exc:
            raise ValueError(f"Invalid file pattern {self.pattern!r}: {exc}") from exc
        if self.month is not None:
            self.month = validate_month(self.month)
        if self.on_error not in ("fail", "skip"):
            raise ValueError(f"Invalid error policy: {self.on_error!r}. Use fail/skip.")
        if self.delimiter is not None and len(self.delimiter) != 1:
            raise ValueError("delimiter must be a single character")
        self.steps = list(self.steps or [])
        for step in self.steps:
            if not callable(step):
                raise TypeError("steps must be callables taking and returning a DataFrame")


@dataclass
class AggregationReport:
    """Counts and notes emitted alongside every combined table.

    Contract invariant: ``files_read + len(skipped_files) == files_in``.
    """

    files_in: int = 0
    files_read: int = 0
    sheets_read: int = 0
    rows_out: int = 0
    columns: list[str] = field(default_factory=list)
    skipped_files: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    def __post_init__(self) -> None:
        self.files_in = _to_non_negative_int(self.files_in, "files_in")
        self.files_read = _to_non_negative_int(self.files_read, "files_read")
        self.sheets_read = _to_non_negative_int(self.sheets_read, "sheets_read")
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        self.columns = _to_string_list(self.columns, "columns")
        self.skipped_files = _to_string_list(self.skipped_files, "skipped_files")
        self.warnings = _to_string_list(self.warnings, "warnings")
        if self.files_read + len(self.skipped_files) != self.files_in:
            raise ValueError("files_read + skipped_files must equal files_in")

    def to_dict(self) -> dict[str, Any]:
        return {
            "files_in": self.files_in,
            "files_read": self.files_read,
            "sheets_read": self.sheets_read,
            "rows_out": self.rows_out,
            "columns": list(self.columns),
            "skipped_files": list(self.skipped_files),
            "warnings": list(self.warnings),
        }


@dataclass
class RunManifest:
    """Audit-trail manifest for a single CLI run."""

    tool: str = "sheet-aggregator"
    version: str = ""
    directory: str = ""
    pattern: str = ""
    month: str | None = None
    output_path: str = ""
    created_at_utc: str = ""
    files: dict[str, str] = field(default_factory=dict)
    rows_out: int = 0
    status: str = "success"
    error_code: int | None = None
    error_message: str = ""

    def __post_init__(self) -> None:
        self.rows_out = _to_non_negative_int(self.rows_out, "rows_out")
        if self.status not in ("success", "failed"):
            raise ValueError(f"Invalid status: {self.status!r}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "tool": self.tool,
            "version": self.version,
            "directory": self.directory,
            "pattern": self.pattern,
            "month": self.month,
            "output_path": self.output_path,
            "created_at_utc": self.created_at_utc,
            "files": dict(self.files),
            "rows_out": self.rows_out,
            "status": self.status,
            "error_code": self.error_code,
            "error_message": self.error_message,
        }
