from abc import ABC, abstractmethod

from csv_ingest.exceptions import ValidationError
from csv_ingest.processor.models import DO_NOT_IMPORT, Table, cell


class TableTransform(ABC):
    """One ordered stage of the transformation engine. Never mutates its input."""

    name: str = ""

    @abstractmethod
    def apply(self, table: Table) -> Table:
        raise NotImplementedError


class RemoveEmptyColumns(TableTransform):
    """Drop columns that are blank in every data row.

    When every column is blank the header alone is kept.
    """

    name = "remove_empty_columns"

    def apply(self, table: Table) -> Table:
        if not table.rows:
            return table

        keep = [
            index
            for index in range(len(table.header))
            if any(cell(row, index).strip() for row in table.rows)
        ]
        if not keep:
            return Table(header=list(table.header))

        return Table(
            header=[table.header[index] for index in keep],
            rows=[[cell(row, index) for index in keep] for row in table.rows],
        )


class RemoveDuplicates(TableTransform):
    """Keep the first row for each composite key over ``columns``."""

    name = "remove_duplicates"

    def __init__(self, columns: tuple[str, ...]) -> None:
        self._columns = columns

    def apply(self, table: Table) -> Table:
        indices = _resolve(table, self._columns)
        if not indices:
            return table

        seen: set[tuple[str, ...]] = set()
        rows: list[list[str]] = []
        for row in table.rows:
            key = tuple(cell(row, index) for index in indices)
            if key in seen:
                continue
            seen.add(key)
            rows.append(row)
        return Table(header=list(table.header), rows=rows)


class MergeColumns(TableTransform):
    """Append a column joining the non-empty values of ``columns``.

    Source columns are retained.
    """

    name = "merge_columns"

    def __init__(self, columns: tuple[str, ...], delimiter: str) -> None:
        self._columns = columns
        self._delimiter = delimiter

    def apply(self, table: Table) -> Table:
        indices = _resolve(table, self._columns)
        if not indices:
            return table

        merged_name = "_".join(self._columns)
        rows = []
        for row in table.rows:
            values = [cell(row, index) for index in indices]
            merged = self._delimiter.join(value for value in values if value != "")
            rows.append([*_fit(row, len(table.header)), merged])
        return Table(header=[*table.header, merged_name], rows=rows)


class MapColumns(TableTransform):
    """Rename mapped columns and drop unmapped or excluded ones."""

    name = "map_columns"

    def __init__(self, mappings: dict[str, str], exclude: str = DO_NOT_IMPORT) -> None:
        self._mappings = mappings
        self._exclude = exclude

    def apply(self, table: Table) -> Table:
        header: list[str] = []
        indices: list[int] = []
        for index, column in enumerate(table.header):
            target = self._mappings.get(column)
            if target and target != self._exclude:
                header.append(target)
                indices.append(index)

        if not header:
            raise ValidationError("No columns to import after mapping")

        return Table(
            header=header,
            rows=[[cell(row, index) for index in indices] for row in table.rows],
        )


def _resolve(table: Table, columns: tuple[str, ...]) -> list[int]:
    """Header positions of ``columns`` in the given order; unknown names are skipped."""
    indices = []
    for column in columns:
        index = table.index_of(column)
        if index is not None:
            indices.append(index)
    return indices


def _fit(row: list[str], width: int) -> list[str]:
    """Exactly ``width`` cells: short rows padded with "", long rows cut."""
    return [cell(row, index) for index in range(width)]
