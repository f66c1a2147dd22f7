from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from csv_ingest.processor.models import ProcessingConfig

STATUS_PENDING = "pending"
STATUS_PROCESSING = "processing"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"

JOB_STATUSES = (STATUS_PENDING, STATUS_PROCESSING, STATUS_COMPLETED, STATUS_FAILED)
TERMINAL_STATUSES = frozenset({STATUS_COMPLETED, STATUS_FAILED})


@dataclass(frozen=True)
class FileRecord:
    """Represents a row from the files table."""

    id: str
    owner_id: str
    name: str
    mime_type: str
    size_bytes: int
    content_hash: str
    storage_path: str
    storage_disk: str = "local"
    parent_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_derived(self) -> bool:
        return self.parent_id is not None


@dataclass
class JobRecord:
    """Represents a row from the processing_jobs table."""

    id: str
    owner_id: str
    original_file_id: str
    original_hash: str
    config: ProcessingConfig
    config_hash: str
    status: str = STATUS_PENDING
    progress: int = 0
    processed_file_id: str | None = None
    processed_hash: str | None = None
    original_row_count: int = 0
    original_column_count: int = 0
    processed_row_count: int | None = None
    processed_column_count: int | None = None
    original_preview: list[list[str]] = field(default_factory=list)
    processed_preview: list[list[str]] = field(default_factory=list)
    error_message: str | None = None
    created_at: datetime | None = None
    started_at: datetime | None = None
    completed_at: datetime | None = None
    updated_at: datetime | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES


@dataclass(frozen=True)
class JobCompletion:
    """Values written when a job finishes successfully."""

    processed_file_id: str
    processed_hash: str
    processed_row_count: int
    processed_column_count: int
    processed_preview: list[list[str]]


@dataclass(frozen=True)
class StorageStats:
    """Per-owner storage usage summary."""

    total_files: int
    total_size_bytes: int
    file_types: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "totalFiles": self.total_files,
            "totalSize": self.total_size_bytes,
            "fileTypes": dict(self.file_types),
        }
