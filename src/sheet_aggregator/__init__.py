"""sheet-aggregator — Combine every sheet of every matching spreadsheet into one table."""

import pandas as pd

__version__ = "0.1.0"

FILE_NAME_COLUMN = "file_name"
SHEET_NAME_COLUMN = "sheet_name"
TAG_COLUMNS: list[str] = [FILE_NAME_COLUMN, SHEET_NAME_COLUMN]

# Marker for a value absent from a record; distinct from "" and 0.
MISSING = pd.NA
