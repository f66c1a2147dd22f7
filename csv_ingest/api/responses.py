"""Result objects returned by the ingestion service.

Each ``to_dict`` produces a camelCase, JSON-ready payload.
"""

from collections.abc import Iterator
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from csv_ingest.database.models import STATUS_COMPLETED, FileRecord, JobRecord


def _iso(value: datetime | None) -> str | None:
    return value.isoformat() if value is not None else None


@dataclass(frozen=True)
class FileSummary:
    id: str
    name: str
    size: int
    hash: str
    mime_type: str
    parent_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @classmethod
    def from_record(cls, record: FileRecord) -> "FileSummary":
        return cls(
            id=record.id,
            name=record.name,
            size=record.size_bytes,
            hash=record.content_hash,
            mime_type=record.mime_type,
            parent_id=record.parent_id,
            created_at=record.created_at,
            updated_at=record.updated_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "size": self.size,
            "hash": self.hash,
            "mimeType": self.mime_type,
            "parentId": self.parent_id,
            "createdAt": _iso(self.created_at),
            "updatedAt": _iso(self.updated_at),
        }


@dataclass(frozen=True)
class JobSummary:
    id: str
    status: str
    progress: int
    original_file_id: str
    processed_file_id: str | None = None
    processed_hash: str | None = None
    processed_row_count: int | None = None
    processed_column_count: int | None = None
    error: str | None = None
    created_at: datetime | None = None
    completed_at: datetime | None = None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobSummary":
        return cls(
            id=job.id,
            status=job.status,
            progress=job.progress,
            original_file_id=job.original_file_id,
            processed_file_id=job.processed_file_id,
            processed_hash=job.processed_hash,
            processed_row_count=job.processed_row_count,
            processed_column_count=job.processed_column_count,
            error=job.error_message,
            created_at=job.created_at,
            completed_at=job.completed_at,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status,
            "progress": self.progress,
            "originalFileId": self.original_file_id,
            "processedFileId": self.processed_file_id,
            "processedHash": self.processed_hash,
            "processedRowCount": self.processed_row_count,
            "processedColumnCount": self.processed_column_count,
            "error": self.error,
            "createdAt": _iso(self.created_at),
            "completedAt": _iso(self.completed_at),
        }


@dataclass(frozen=True)
class JobStatus:
    """Full job state as seen by a polling client."""

    summary: JobSummary
    config: dict[str, Any]
    original_row_count: int
    original_column_count: int
    original_preview: list[list[str]]
    processed_preview: list[list[str]] | None
    started_at: datetime | None = None

    @classmethod
    def from_record(cls, job: JobRecord) -> "JobStatus":
        completed = job.status == STATUS_COMPLETED
        return cls(
            summary=JobSummary.from_record(job),
            config=job.config.to_dict(),
            original_row_count=job.original_row_count,
            original_column_count=job.original_column_count,
            original_preview=job.original_preview,
            processed_preview=job.processed_preview if completed else None,
            started_at=job.started_at,
        )

    @property
    def status(self) -> str:
        return self.summary.status

    @property
    def progress(self) -> int:
        return self.summary.progress

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.summary.to_dict(),
            "config": self.config,
            "originalRowCount": self.original_row_count,
            "originalColumnCount": self.original_column_count,
            "originalPreview": self.original_preview,
            "processedPreview": self.processed_preview,
            "startedAt": _iso(self.started_at),
        }


@dataclass(frozen=True)
class HashCheckResult:
    exists: bool
    file: FileSummary | None = None
    processing_job: JobSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        if not self.exists or self.file is None:
            return {"exists": False}
        return {
            "exists": True,
            "file": self.file.to_dict(),
            "processingJob": (
                self.processing_job.to_dict() if self.processing_job is not None else None
            ),
        }


@dataclass(frozen=True)
class PreviewData:
    columns: list[str]
    rows: list[list[str]]
    total_rows: int

    def to_dict(self) -> dict[str, Any]:
        return {"columns": self.columns, "rows": self.rows, "totalRows": self.total_rows}


@dataclass(frozen=True)
class UploadResult:
    file: FileSummary
    preview: PreviewData
    job: JobSummary | None = None
    already_exists: bool = False

    @property
    def message(self) -> str:
        if self.already_exists:
            return "File already exists"
        return "File uploaded and processing started"

    def to_dict(self) -> dict[str, Any]:
        return {
            "message": self.message,
            "file": self.file.to_dict(),
            "job": self.job.to_dict() if self.job is not None else None,
            "preview": self.preview.to_dict(),
        }


@dataclass(frozen=True)
class PreviewPage:
    headers: list[str]
    rows: list[list[str]]
    total_rows: int
    total_columns: int
    limit: int
    offset: int
    has_more: bool
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "preview": {
                "headers": self.headers,
                "rows": self.rows,
                "totalRows": self.total_rows,
                "totalColumns": self.total_columns,
                "pagination": {
                    "limit": self.limit,
                    "offset": self.offset,
                    "hasMore": self.has_more,
                },
            },
            "metadata": self.metadata,
        }


@dataclass(frozen=True)
class FileDownload:
    """A stored file ready to stream; ``chunks`` is consumed once."""

    file_id: str
    name: str
    mime_type: str
    size: int
    chunks: Iterator[bytes]
    processed: bool = False

    def read_all(self) -> bytes:
        return b"".join(self.chunks)


@dataclass(frozen=True)
class FileListing:
    file: FileSummary
    processing_job: JobSummary | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            **self.file.to_dict(),
            "processingJob": (
                self.processing_job.to_dict() if self.processing_job is not None else None
            ),
        }


@dataclass(frozen=True)
class Page:
    items: list[Any]
    total: int
    limit: int
    offset: int

    def to_dict(self, key: str) -> dict[str, Any]:
        return {
            key: [item.to_dict() for item in self.items],
            "pagination": {"total": self.total, "limit": self.limit, "offset": self.offset},
        }
