"""Tests for reading, stacking and aggregating spreadsheet files."""

from __future__ import annotations

from pathlib import Path

import pandas as pd
import pytest

from conftest import WorkbookFactory
from sheet_aggregator.aggregate import aggregate, combine_files, combine_tables, read_sheets
from sheet_aggregator.errors import DirectoryNotFound, MalformedSheet, UnreadableFile
from sheet_aggregator.models import AggregatorConfig
from sheet_aggregator.pipeline import parse_steps


def test_aggregate_two_workbooks_three_sheets(sample_dir: Path) -> None:
    config = AggregatorConfig(directory=sample_dir, pattern=r"^test[0-9]\.xlsx")

    result = aggregate(config)
    table = result.table

    assert table.shape == (9, 5)
    assert list(table.columns) == ["file_name", "sheet_name", "col1", "col2", "col3"]
    assert table["file_name"].tolist() == ["test1.xlsx"] * 6 + ["test2.xlsx"] * 3
    assert table["sheet_name"].tolist() == ["Sheet1"] * 3 + ["Sheet2"] * 3 + ["Sheet1"] * 3
    assert table["col1"].tolist() == [1, 4, 7, 10, 13, 16, 19, 22, 25]
    assert result.file_names == ["test1.xlsx", "test2.xlsx"]
    assert result.report.files_in == 2
    assert result.report.sheets_read == 3
    assert result.report.rows_out == 9


def test_read_sheets_row_count_is_sum_of_sheets(sample_dir: Path) -> None:
    table = read_sheets(sample_dir, "test1.xlsx")

    assert len(table) == 6
    assert list(table.columns[:2]) == ["file_name", "sheet_name"]
    counts = table.groupby("sheet_name").size().to_dict()
    assert counts == {"Sheet1": 3, "Sheet2": 3}
    assert table.loc[table["sheet_name"] == "Sheet2", "col1"].tolist() == [10, 13, 16]


def test_column_union_fills_missing_marker(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(
        tmp_path / "mixed.xlsx",
        {
            "First": [["A", "B"], [1, 2], [3, 4]],
            "Second": [["A", "B", "C"], [5, 6, 7]],
        },
    )

    table = combine_files(tmp_path, ["mixed.xlsx"]).table

    assert list(table.columns) == ["file_name", "sheet_name", "A", "B", "C"]
    assert table.loc[0, "C"] is pd.NA
    assert table.loc[1, "C"] is pd.NA
    assert table.loc[2, "C"] == 7


def test_columns_keep_order_of_first_appearance_across_files(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(tmp_path / "a.xlsx", {"S": [["x", "y"], [1, 2]]})
    write_workbook(tmp_path / "b.xlsx", {"S": [["z", "x"], [3, 4]]})

    table = combine_files(tmp_path, ["a.xlsx", "b.xlsx"]).table

    assert list(table.columns) == ["file_name", "sheet_name", "x", "y", "z"]
    assert table["y"].isna().tolist() == [False, True]


def test_tag_columns_are_text_and_never_missing(sample_dir: Path) -> None:
    table = combine_files(sample_dir, ["test1.xlsx", "test2.xlsx"]).table

    assert table["file_name"].dtype == "string"
    assert table["sheet_name"].dtype == "string"
    assert not table[["file_name", "sheet_name"]].isna().any().any()


def test_combine_files_empty_list_gives_tag_only_table(tmp_path: Path) -> None:
    result = combine_files(tmp_path, [])

    assert list(result.table.columns) == ["file_name", "sheet_name"]
    assert result.table.empty
    assert result.report.files_in == 0


def test_combine_tables_of_nothing_keeps_tag_columns() -> None:
    table = combine_tables([])

    assert list(table.columns) == ["file_name", "sheet_name"]


def test_empty_sheet_contributes_no_rows_and_warns(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(tmp_path / "book.xlsx", {"Blank": [], "Data": [["a"], [1], [2]]})

    result = combine_files(tmp_path, ["book.xlsx"])

    assert len(result.table) == 2
    assert set(result.table["sheet_name"]) == {"Data"}
    assert result.report.sheets_read == 2
    assert any("'Blank'" in w and "empty" in w for w in result.report.warnings)


def test_fail_policy_aborts_on_first_unreadable_file(sample_dir: Path) -> None:
    (sample_dir / "test3.xlsx").write_bytes(b"broken")

    with pytest.raises(UnreadableFile) as info:
        combine_files(sample_dir, ["test1.xlsx", "test3.xlsx", "test2.xlsx"])

    assert info.value.file_name == "test3.xlsx"
    assert str(info.value).startswith("reading test3.xlsx: ")


def test_fail_policy_aborts_on_malformed_sheet(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(tmp_path / "bad.xlsx", {"S": [["a", "a"], [1, 2]]})

    with pytest.raises(MalformedSheet):
        combine_files(tmp_path, ["bad.xlsx"])


def test_skip_policy_leaves_out_bad_files_and_reports_them(sample_dir: Path) -> None:
    (sample_dir / "test3.xlsx").write_bytes(b"broken")

    result = combine_files(
        sample_dir, ["test1.xlsx", "test3.xlsx", "test2.xlsx"], on_error="skip"
    )

    assert len(result.table) == 9
    assert result.file_names == ["test1.xlsx", "test2.xlsx"]
    assert result.report.skipped_files == ["test3.xlsx"]
    assert result.report.files_in == 3
    assert result.report.files_read == 2
    assert any("test3.xlsx" in w for w in result.report.warnings)


def test_combine_files_rejects_unknown_policy(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="error policy"):
        combine_files(tmp_path, [], on_error="retry")  # type: ignore[arg-type]


def test_aggregate_missing_directory_raises(tmp_path: Path) -> None:
    config = AggregatorConfig(directory=tmp_path / "missing", pattern="xlsx")

    with pytest.raises(DirectoryNotFound):
        aggregate(config)


def test_aggregate_month_subset(tmp_path: Path, write_workbook: WorkbookFactory) -> None:
    for name, value in [
        ("sample_2019-01-09.xlsx", 1),
        ("sample_2019-01-15.xlsx", 2),
        ("sample_2019-02-02.xlsx", 3),
    ]:
        write_workbook(tmp_path / name, {"Sheet1": [["v"], [value]]})

    result = aggregate(
        AggregatorConfig(directory=tmp_path, pattern=r"^sample_", month="2019-01")
    )

    assert result.file_names == ["sample_2019-01-09.xlsx", "sample_2019-01-15.xlsx"]
    assert result.table["v"].tolist() == [1, 2]


def test_aggregate_applies_configured_steps_in_order(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(
        tmp_path / "test1.xlsx",
        {"Sheet1": [["A", "B Value"], [1, 10], [2, 20], [3, None]]},
    )
    steps = parse_steps(["normalize", "filter:a > 1", "derive:a_plus_b=a+b_value"])

    result = aggregate(AggregatorConfig(directory=tmp_path, pattern="xlsx", steps=steps))
    table = result.table

    assert list(table.columns) == ["file_name", "sheet_name", "a", "b_value", "a_plus_b"]
    assert table["a"].tolist() == [2, 3]
    assert table.loc[0, "a_plus_b"] == 22
    assert table.loc[1, "a_plus_b"] is pd.NA
    assert result.report.rows_out == 2
    assert result.report.columns[-1] == "a_plus_b"


def test_aggregate_mixes_csv_and_workbooks(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(tmp_path / "a.xlsx", {"S1": [["id", "name"], [1, "ann"]]})
    (tmp_path / "b.csv").write_text("id,name\n2,bob\n", encoding="utf-8")

    table = aggregate(AggregatorConfig(directory=tmp_path, pattern=r"\.(xlsx|csv)$")).table

    assert table["file_name"].tolist() == ["a.xlsx", "b.csv"]
    assert table["sheet_name"].tolist() == ["S1", "b"]
    assert table["id"].tolist() == [1, 2]


def test_na_like_text_stays_distinct_from_missing(
    tmp_path: Path, write_workbook: WorkbookFactory
) -> None:
    write_workbook(
        tmp_path / "codes.xlsx",
        {"S": [["code", "n"], ["NA", 1], ["null", 2], [None, 3], ["N/A", 4]]},
    )

    table = combine_files(tmp_path, ["codes.xlsx"]).table

    assert table["code"].iloc[[0, 1, 3]].tolist() == ["NA", "null", "N/A"]
    assert table.loc[2, "code"] is pd.NA
