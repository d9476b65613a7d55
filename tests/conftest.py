from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
from openpyxl import Workbook

WorkbookFactory = Callable[[Path, dict[str, list[list[object]]]], Path]


def _write_workbook(path: Path, sheets: dict[str, list[list[object]]]) -> Path:
    wb = Workbook()
    default = wb.active
    if default is not None:
        wb.remove(default)
    for name, rows in sheets.items():
        ws = wb.create_sheet(title=name)
        for row in rows:
            ws.append(row)
    wb.save(path)
    return path


@pytest.fixture
def write_workbook() -> WorkbookFactory:
    return _write_workbook


@pytest.fixture
def sample_dir(tmp_path: Path) -> Path:
    """``test1.xlsx`` (two sheets) and ``test2.xlsx`` (one sheet), 3 rows each."""
    header = ["col1", "col2", "col3"]
    _write_workbook(
        tmp_path / "test1.xlsx",
        {
            "Sheet1": [header, [1, 2, 3], [4, 5, 6], [7, 8, 9]],
            "Sheet2": [header, [10, 11, 12], [13, 14, 15], [16, 17, 18]],
        },
    )
    _write_workbook(
        tmp_path / "test2.xlsx",
        {"Sheet1": [header, [19, 20, 21], [22, 23, 24], [25, 26, 27]]},
    )
    (tmp_path / "notes.txt").write_text("not a spreadsheet\n", encoding="utf-8")
    return tmp_path
