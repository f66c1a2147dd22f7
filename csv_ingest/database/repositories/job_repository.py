from typing import Any

import psycopg
from psycopg.rows import dict_row
from psycopg.types.json import Jsonb

from csv_ingest.database.connection import get_connection
from csv_ingest.database.models import JobCompletion, JobRecord
from csv_ingest.exceptions import NotFoundError
from csv_ingest.processor.config_validator import config_from_dict

_JOB_COLUMNS = """
    id, owner_id, original_file_id, original_hash, config, config_hash,
    status, progress, processed_file_id, processed_hash,
    original_row_count, original_column_count,
    processed_row_count, processed_column_count,
    original_preview, processed_preview, error_message,
    created_at, started_at, completed_at, updated_at
"""


class JobRepository:
    """Database operations for the processing_jobs table.

    Every status change is a single guarded UPDATE, so transitions stay
    monotonic even when the dispatcher and the poll worker race.
    """

    def insert(self, job: JobRecord) -> JobRecord:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    INSERT INTO processing_jobs
                    (id, owner_id, original_file_id, original_hash, config,
                     config_hash, status, progress, original_row_count,
                     original_column_count, original_preview)
                    VALUES (%s, %s, %s, %s, %s, %s, 'pending', 0, %s, %s, %s)
                    RETURNING {_JOB_COLUMNS}
                    """,
                    (
                        job.id,
                        job.owner_id,
                        job.original_file_id,
                        job.original_hash,
                        Jsonb(job.config.to_dict()),
                        job.config_hash,
                        job.original_row_count,
                        job.original_column_count,
                        Jsonb(job.original_preview),
                    ),
                )
                row = cur.fetchone()
            conn.commit()

        if row is None:
            raise RuntimeError(f"Failed to insert processing job {job.id}")
        return _row_to_job(row)

    def find_by_id(self, job_id: str) -> JobRecord | None:
        return self._fetch_one("id = %s", (job_id,))

    def find_for_owner(self, job_id: str, owner_id: str) -> JobRecord:
        """Find a job owned by ``owner_id``.

        Raises:
            NotFoundError: if no job with this ID exists for this owner.
        """
        job = self._fetch_one("id = %s AND owner_id = %s", (job_id, owner_id))
        if job is None:
            raise NotFoundError(f"Job {job_id} not found")
        return job

    def find_completed_by_config(
        self, original_file_id: str, config_hash: str
    ) -> JobRecord | None:
        """Most recent completed job for this file whose config hashes the same."""
        return self._fetch_one(
            """
            original_file_id = %s AND status = 'completed' AND config_hash = %s
            ORDER BY completed_at DESC NULLS LAST, created_at DESC
            """,
            (original_file_id, config_hash),
        )

    def find_latest_completed_for_original(
        self, original_file_id: str, owner_id: str
    ) -> JobRecord | None:
        return self._fetch_one(
            """
            original_file_id = %s AND owner_id = %s AND status = 'completed'
            ORDER BY created_at DESC
            """,
            (original_file_id, owner_id),
        )

    def find_completed_by_processed_file(
        self, processed_file_id: str, owner_id: str
    ) -> JobRecord | None:
        return self._fetch_one(
            """
            processed_file_id = %s AND owner_id = %s AND status = 'completed'
            ORDER BY created_at DESC
            """,
            (processed_file_id, owner_id),
        )

    def find_latest_for_original(
        self, original_file_id: str, owner_id: str
    ) -> JobRecord | None:
        return self._fetch_one(
            "original_file_id = %s AND owner_id = %s ORDER BY created_at DESC",
            (original_file_id, owner_id),
        )

    def claim_job(self, job_id: str) -> JobRecord | None:
        """Move a pending job to processing. Returns None if it was not pending."""
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    UPDATE processing_jobs
                    SET status = 'processing', progress = 0,
                        started_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = 'pending'
                    RETURNING {_JOB_COLUMNS}
                    """,
                    (job_id,),
                )
                row = cur.fetchone()
            conn.commit()

        return _row_to_job(row) if row is not None else None

    def claim_next_job(self, conn: psycopg.Connection[Any]) -> JobRecord | None:
        """Claim the oldest pending job using SELECT FOR UPDATE SKIP LOCKED."""
        with conn.cursor(row_factory=dict_row) as cur:
            cur.execute(
                """
                SELECT id
                FROM processing_jobs
                WHERE status = 'pending'
                ORDER BY created_at
                LIMIT 1
                FOR UPDATE SKIP LOCKED
                """
            )
            row = cur.fetchone()
            if row is None:
                conn.commit()
                return None

            cur.execute(
                f"""
                UPDATE processing_jobs
                SET status = 'processing', progress = 0,
                    started_at = NOW(), updated_at = NOW()
                WHERE id = %s
                RETURNING {_JOB_COLUMNS}
                """,
                (row["id"],),
            )
            claimed = cur.fetchone()
        conn.commit()

        return _row_to_job(claimed) if claimed is not None else None

    def update_progress(self, job_id: str, progress: int) -> None:
        """Persist progress for a processing job; never lowers the stored value."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET progress = GREATEST(progress, %s), updated_at = NOW()
                WHERE id = %s AND status = 'processing'
                """,
                (progress, job_id),
            )
            conn.commit()

    def mark_completed(self, job_id: str, completion: JobCompletion) -> None:
        with get_connection() as conn:
            with conn.cursor() as cur:
                cur.execute(
                    """
                    UPDATE processing_jobs
                    SET status = 'completed', progress = 100,
                        processed_file_id = %s, processed_hash = %s,
                        processed_row_count = %s, processed_column_count = %s,
                        processed_preview = %s, error_message = NULL,
                        completed_at = NOW(), updated_at = NOW()
                    WHERE id = %s AND status = 'processing'
                    """,
                    (
                        completion.processed_file_id,
                        completion.processed_hash,
                        completion.processed_row_count,
                        completion.processed_column_count,
                        Jsonb(completion.processed_preview),
                        job_id,
                    ),
                )
                if cur.rowcount == 0:
                    raise NotFoundError(f"Job {job_id} is not processing")
            conn.commit()

    def mark_failed(self, job_id: str, error: str) -> None:
        """Mark a job as failed. Progress keeps its last reported value."""
        with get_connection() as conn:
            conn.execute(
                """
                UPDATE processing_jobs
                SET status = 'failed', error_message = %s, updated_at = NOW()
                WHERE id = %s AND status IN ('pending', 'processing')
                """,
                (error, job_id),
            )
            conn.commit()

    def list_jobs(
        self,
        owner_id: str,
        status: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[JobRecord], int]:
        where = "owner_id = %s"
        params: tuple[Any, ...] = (owner_id,)
        if status is not None:
            where += " AND status = %s"
            params = (owner_id, status)

        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"""
                    SELECT {_JOB_COLUMNS}
                    FROM processing_jobs
                    WHERE {where}
                    ORDER BY created_at DESC, id
                    LIMIT %s OFFSET %s
                    """,
                    (*params, limit, offset),
                )
                rows = cur.fetchall()
                cur.execute(
                    f"SELECT COUNT(*) AS total FROM processing_jobs WHERE {where}",
                    params,
                )
                count_row = cur.fetchone()

        total = count_row["total"] if count_row is not None else 0
        return [_row_to_job(row) for row in rows], total

    def _fetch_one(self, condition: str, params: tuple[Any, ...]) -> JobRecord | None:
        with get_connection() as conn:
            with conn.cursor(row_factory=dict_row) as cur:
                cur.execute(
                    f"SELECT {_JOB_COLUMNS} FROM processing_jobs WHERE {condition} LIMIT 1",
                    params,
                )
                row = cur.fetchone()

        return _row_to_job(row) if row is not None else None


def _row_to_job(row: dict[str, Any]) -> JobRecord:
    return JobRecord(
        id=row["id"],
        owner_id=row["owner_id"],
        original_file_id=row["original_file_id"],
        original_hash=row["original_hash"],
        config=config_from_dict(row["config"]),
        config_hash=row["config_hash"],
        status=row["status"],
        progress=row["progress"],
        processed_file_id=row["processed_file_id"],
        processed_hash=row["processed_hash"],
        original_row_count=row["original_row_count"],
        original_column_count=row["original_column_count"],
        processed_row_count=row["processed_row_count"],
        processed_column_count=row["processed_column_count"],
        original_preview=row["original_preview"] or [],
        processed_preview=row["processed_preview"] or [],
        error_message=row["error_message"],
        created_at=row["created_at"],
        started_at=row["started_at"],
        completed_at=row["completed_at"],
        updated_at=row["updated_at"],
    )
