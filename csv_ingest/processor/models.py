from dataclasses import dataclass, field
from typing import Any

DO_NOT_IMPORT = "Do Not Import"


@dataclass(frozen=True)
class ProcessingConfig:
    """Transformation options for one processing job.

    An empty config is valid and only triggers empty-column removal.
    """

    remove_duplicates: bool = False
    duplicate_check_columns: tuple[str, ...] = ()
    merge_columns: tuple[str, ...] = ()
    merge_delimiter: str = " "
    column_mappings: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Return the wire/storage form with every field present."""
        return {
            "removeDuplicates": self.remove_duplicates,
            "duplicateCheckColumns": list(self.duplicate_check_columns),
            "mergeColumns": list(self.merge_columns),
            "mergeDelimiter": self.merge_delimiter,
            "columnMappings": dict(self.column_mappings),
        }


@dataclass
class Table:
    """Parsed CSV content: a header plus data rows aligned by position."""

    header: list[str]
    rows: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.header)

    def index_of(self, column: str) -> int | None:
        """Return the position of the first header cell named ``column``."""
        try:
            return self.header.index(column)
        except ValueError:
            return None

    def to_rows(self) -> list[list[str]]:
        return [list(self.header), *(list(row) for row in self.rows)]


def cell(row: list[str], index: int) -> str:
    """Value at ``index``; rows shorter than the header read as empty."""
    return row[index] if index < len(row) else ""
