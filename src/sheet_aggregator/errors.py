"""Error kinds raised while selecting, reading and aggregating files."""

from __future__ import annotations


class AggregationError(Exception):
    """Base class; carries the failing *stage* and, when known, the *file_name*."""

    stage = "aggregation"

    def __init__(self, message: str, *, file_name: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.file_name = file_name

    def __str__(self) -> str:
        if self.file_name:
            return f"{self.stage} {self.file_name}: {self.message}"
        return f"{self.stage}: {self.message}"


class DirectoryNotFound(AggregationError):
    stage = "selection"


class UnreadableFile(AggregationError):
    stage = "reading"


class MalformedSheet(AggregationError):
    stage = "reading"

    def __init__(
        self, message: str, *, file_name: str | None = None, sheet_name: str | None = None
    ) -> None:
        super().__init__(message, file_name=file_name)
        self.sheet_name = sheet_name


class DateExtractionError(AggregationError):
    stage = "date extraction"
