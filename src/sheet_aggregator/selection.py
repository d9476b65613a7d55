"""File selection — directory scan by name pattern, date-based subsets."""

from __future__ import annotations

import logging
import os
import re
from collections.abc import Iterable
from datetime import date, datetime
from pathlib import Path

from sheet_aggregator.errors import DateExtractionError, DirectoryNotFound
from sheet_aggregator.models import validate_month

logger = logging.getLogger(__name__)

_DATE_RE = re.compile(r"(\d{4})-(\d{2})-(\d{2})")


# ── Directory scan ───────────────────────────────────────────────


def select_files(directory: Path | str, pattern: str | re.Pattern[str]) -> list[str]:
    """Return base names of regular files in *directory* matching *pattern*.

    The pattern is searched (not full-matched) against each base name, so
    anchors must be spelled out, e.g. ``^test[0-9]\\.xlsx``. Only direct
    children are considered. The result is sorted and duplicate-free.

    Raises
    ------
    DirectoryNotFound
        If *directory* is missing, not a directory, or not readable.
    ValueError
        If *pattern* is not a valid regular expression.
    """
    directory = Path(directory).expanduser()
    if not directory.exists():
        raise DirectoryNotFound(f"Directory not found: {directory}")
    if not directory.is_dir():
        raise DirectoryNotFound(f"Not a directory: {directory}")
    if not os.access(directory, os.R_OK | os.X_OK):
        raise DirectoryNotFound(f"Directory is not readable: {directory}")

    if isinstance(pattern, str):
        try:
            regex = re.compile(pattern)
        except re.error as exc:
            raise ValueError(f"Invalid file pattern {pattern!r}: {exc}") from exc
    else:
        regex = pattern

    try:
        entries = list(directory.iterdir())
    except OSError as exc:
        raise DirectoryNotFound(f"Cannot list directory {directory}: {exc}") from exc

    names = sorted({p.name for p in entries if p.is_file() and regex.search(p.name)})
    logger.debug("Selected %d of %d entries in %s", len(names), len(entries), directory)
    return names


# ── Date-based subsets ───────────────────────────────────────────


def extract_file_date(file_name: str) -> date:
    """Return the first ``YYYY-MM-DD`` date embedded in *file_name*."""
    match = _DATE_RE.search(file_name)
    if match is None:
        raise DateExtractionError("No YYYY-MM-DD date in file name", file_name=file_name)
    try:
        return datetime.strptime(match.group(0), "%Y-%m-%d").date()
    except ValueError as exc:
        raise DateExtractionError(
            f"Not a calendar date: {match.group(0)}", file_name=file_name
        ) from exc


def file_month(file_name: str) -> str:
    return extract_file_date(file_name).strftime("%Y-%m")


def group_files_by_month(file_names: Iterable[str]) -> dict[str, list[str]]:
    """Group *file_names* by embedded year-month, keeping input order in each group."""
    groups: dict[str, list[str]] = {}
    for name in file_names:
        groups.setdefault(file_month(name), []).append(name)
    return groups


def select_month(file_names: Iterable[str], target: str) -> list[str]:
    """Return the names whose embedded year-month equals *target* (``YYYY-MM``)."""
    target = validate_month(target)
    selected = group_files_by_month(file_names).get(target, [])
    logger.debug("Month %s matched %d files", target, len(selected))
    return selected
