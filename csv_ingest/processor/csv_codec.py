"""Reads and writes the comma-separated wire format."""

import csv
import io
import sys

from csv_ingest.exceptions import ProcessingError
from csv_ingest.processor.models import Table

PREVIEW_ROW_LIMIT = 100

# A single cell may hold up to a whole upload.
csv.field_size_limit(sys.maxsize)


def parse_csv(data: bytes) -> Table:
    """Parse CSV bytes into a header and data rows.

    Cells are kept verbatim as strings. Blank lines are skipped. Empty
    input yields a table with an empty header.

    Raises:
        ProcessingError: if the bytes are not valid UTF-8 or the CSV is malformed.
    """
    try:
        text = data.decode("utf-8-sig")
    except UnicodeDecodeError as exc:
        raise ProcessingError(f"File is not valid UTF-8: {exc}") from exc

    try:
        rows = [row for row in csv.reader(io.StringIO(text, newline="")) if row]
    except csv.Error as exc:
        raise ProcessingError(f"Malformed CSV: {exc}") from exc

    if not rows:
        return Table(header=[])
    return Table(header=rows[0], rows=rows[1:])


def serialize_csv(table: Table) -> bytes:
    """Write a table back to CSV, quoting only where a value needs it."""
    buffer = io.StringIO(newline="")
    writer = csv.writer(buffer, lineterminator="\r\n")
    if table.header:
        writer.writerow(table.header)
    writer.writerows(table.rows)
    return buffer.getvalue().encode("utf-8")


def build_preview(table: Table, limit: int = PREVIEW_ROW_LIMIT) -> list[list[str]]:
    """Header followed by at most ``limit`` data rows."""
    if not table.header and not table.rows:
        return []
    return [list(table.header), *(list(row) for row in table.rows[:limit])]
