from pathlib import PurePath
from typing import Any

from psycopg.rows import dict_row

from csv_ingest.database.connection import get_connection
from csv_ingest.database.models import FileRecord, StorageStats
from csv_ingest.exceptions import NotFoundError

_FILE_COLUMNS = """
    id, owner_id, name, mime_type, size_bytes, content_hash, storage_disk,
    storage_path, parent_id, created_at, updated_at
"""


class FileRepository:
    """Database operations for the files table."""

    def insert(self, record: FileRecord) -> FileRecord:
        """Insert a file record and return it with database timestamps.

        An original whose (owner, hash) already exists is not inserted
        twice; the existing row is returned instead.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO files
                    (id, owner_id, name, mime_type, size_bytes, content_hash,
                     storage_disk, storage_path, parent_id)
                    VALUES (%s, %s, %s, %s, %s, %s, %s, %s, %s)
                    ON CONFLICT (owner_id, content_hash) WHERE parent_id IS NULL
                    DO NOTHING
                    RETURNING {_FILE_COLUMNS}
                    """,
                    (
                        record.id,
                        record.owner_id,
                        record.name,
                        record.mime_type,
                        record.size_bytes,
                        record.content_hash,
                        record.storage_disk,
                        record.storage_path,
                        record.parent_id,
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if row is not None:
            return _row_to_file(row)

        existing = self.find_original_by_hash(record.content_hash, record.owner_id)
        if existing is None:
            raise NotFoundError(
                f"File with hash {record.content_hash} vanished during insert"
            )
        return existing

    def find_by_id(self, file_id: str, owner_id: str) -> FileRecord:
        """Find a file owned by ``owner_id``.

        Raises:
            NotFoundError: if no file with this ID exists for this owner.
        """
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_FILE_COLUMNS} FROM files WHERE id = %s AND owner_id = %s",
                    (file_id, owner_id),
                )
                row = cur.fetchone()

        if row is None:
            raise NotFoundError(f"File {file_id} not found")
        return _row_to_file(row)

    def find_original_by_hash(self, content_hash: str, owner_id: str) -> FileRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM files
                    WHERE owner_id = %s AND content_hash = %s AND parent_id IS NULL
                    LIMIT 1
                    """,
                    (owner_id, content_hash.lower()),
                )
                row = cur.fetchone()

        return _row_to_file(row) if row is not None else None

    def delete(self, file_id: str, owner_id: str) -> None:
        """Delete the file row; derived files and jobs cascade.

        Raises:
            NotFoundError: if no file with this ID exists for this owner.
        """
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    "DELETE FROM files WHERE id = %s AND owner_id = %s",
                    (file_id, owner_id),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"File {file_id} not found")
            conn.commit()

    def list_files(
        self,
        owner_id: str,
        parent_id: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[FileRecord], int]:
        """Return one page of files under ``parent_id`` (originals when None) and the total."""
        parent_clause = "parent_id = %s" if parent_id is not None else "parent_id IS NULL"
        params: tuple[Any, ...] = (
            (owner_id, parent_id) if parent_id is not None else (owner_id,)
        )
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM files
                    WHERE owner_id = %s AND {parent_clause}
                    ORDER BY created_at DESC, id
                    LIMIT %s OFFSET %s
                    """,
                    (*params, limit, offset),
                )
                rows = cur.fetchall()
                cur.execute(
                    f"SELECT COUNT(*) AS total FROM files WHERE owner_id = %s AND {parent_clause}",
                    params,
                )
                count_row = cur.fetchone()

        total = count_row["total"] if count_row is not None else 0
        return [_row_to_file(row) for row in rows], total

    def list_originals(self, owner_id: str, mime_type: str = "text/csv") -> list[FileRecord]:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_FILE_COLUMNS}
                    FROM files
                    WHERE owner_id = %s AND parent_id IS NULL AND mime_type = %s
                    ORDER BY created_at DESC, id
                    """,
                    (owner_id, mime_type),
                )
                rows = cur.fetchall()
        return [_row_to_file(row) for row in rows]

    def storage_stats(self, owner_id: str) -> StorageStats:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    "SELECT name, size_bytes FROM files WHERE owner_id = %s",
                    (owner_id,),
                )
                rows = cur.fetchall()

        file_types: dict[str, int] = {}
        for row in rows:
            ext = _extension(row["name"])
            file_types[ext] = file_types.get(ext, 0) + 1
        return StorageStats(
            total_files=len(rows),
            total_size_bytes=sum(row["size_bytes"] or 0 for row in rows),
            file_types=file_types,
        )


def _extension(name: str) -> str:
    return PurePath(name).suffix.lower()


def _row_to_file(row: dict[str, Any]) -> FileRecord:
    return FileRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        name=row["name"],
        mime_type=row["mime_type"],
        size_bytes=row["size_bytes"],
        content_hash=row["content_hash"],
        storage_disk=row["storage_disk"],
        storage_path=row["storage_path"],
        parent_id=row["parent_id"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )
