import re
from collections.abc import Iterator
from pathlib import PurePath
from typing import Any, Protocol

from csv_ingest.api.responses import (
    FileDownload,
    FileListing,
    FileSummary,
    HashCheckResult,
    JobStatus,
    JobSummary,
    Page,
    PreviewData,
    PreviewPage,
    UploadResult,
)
from csv_ingest.database.models import (
    JOB_STATUSES,
    STATUS_COMPLETED,
    FileRecord,
    JobRecord,
    StorageStats,
)
from csv_ingest.database.repositories.file_repository import FileRepository
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.exceptions import (
    FileReadError,
    NotFoundError,
    ProcessingError,
    ValidationError,
)
from csv_ingest.hashing.hasher import hash_bytes
from csv_ingest.logging.logger import Log
from csv_ingest.orchestrator.job_orchestrator import JobOrchestrator
from csv_ingest.processor.config_validator import config_from_dict
from csv_ingest.processor.csv_codec import PREVIEW_ROW_LIMIT, parse_csv
from csv_ingest.processor.models import DO_NOT_IMPORT, ProcessingConfig, Table
from csv_ingest.storage.content_store import ContentStore

MIN_PAGE_LIMIT = 1
MAX_PAGE_LIMIT = 1000
_SHA256_HEX = re.compile(r"^[0-9a-fA-F]{64}$")


class PropertyCatalog(Protocol):
    """CRM collaborator listing the target names a column may map to."""

    def list_properties(self, owner_id: str) -> list[str]: ...


class IngestionService:
    """Client-facing operations: upload, dedup check, processing, preview, export.

    ``owner_id`` always comes from the authentication layer. Validation and
    not-found errors are raised synchronously; processing failures only show
    up on the job.
    """

    def __init__(
        self,
        content_store: ContentStore,
        file_repo: FileRepository,
        job_repo: JobRepository,
        orchestrator: JobOrchestrator,
        property_catalog: PropertyCatalog | None = None,
        preview_limit: int = PREVIEW_ROW_LIMIT,
    ) -> None:
        self._content_store = content_store
        self._file_repo = file_repo
        self._job_repo = job_repo
        self._orchestrator = orchestrator
        self._property_catalog = property_catalog
        self._preview_limit = preview_limit

    def check_by_hash(self, content_hash: str, owner_id: str) -> HashCheckResult:
        if not _SHA256_HEX.match(content_hash):
            raise ValidationError("Hash must be a 64 character hex SHA-256 digest")

        existing = self._content_store.exists_by_hash(content_hash.lower(), owner_id)
        if existing is None:
            return HashCheckResult(exists=False)

        job = self._job_repo.find_latest_completed_for_original(existing.id, owner_id)
        return HashCheckResult(
            exists=True,
            file=FileSummary.from_record(existing),
            processing_job=JobSummary.from_record(job) if job is not None else None,
        )

    def upload(
        self, owner_id: str, data: bytes, name: str, mime_type: str | None = None
    ) -> UploadResult:
        """Store a CSV and start default processing, or return the existing copy.

        Raises:
            ValidationError: if the file is too large or its type is not allowed.
            StorageError: if the bytes cannot be written.
        """
        content_hash = hash_bytes(data)
        existing = self._content_store.exists_by_hash(content_hash, owner_id)

        if existing is not None and self._content_store.is_readable(existing):
            Log.info(f"Upload for owner {owner_id} matches existing file {existing.id}")
            return UploadResult(
                file=FileSummary.from_record(existing),
                preview=self._stored_preview(existing),
                already_exists=True,
            )

        if existing is not None:
            Log.warning(
                f"File {existing.id} is recorded but missing on disk, treating as new upload"
            )
            self._content_store.restore(existing, data)
            record = existing
        else:
            record = self._content_store.store(
                owner_id, data, name, mime_type or "text/csv", content_hash
            )

        job = self._orchestrator.create_job(record.id, owner_id, ProcessingConfig())
        self._orchestrator.dispatch(job)
        return UploadResult(
            file=FileSummary.from_record(record),
            preview=self._preview_from_bytes(data),
            job=JobSummary.from_record(job),
        )

    def start_processing(
        self,
        file_id: str,
        owner_id: str,
        config: ProcessingConfig | dict[str, Any] | None = None,
    ) -> JobSummary:
        """Create or reuse a job and dispatch it without waiting for the result."""
        if not isinstance(config, ProcessingConfig):
            config = config_from_dict(config)
        job = self._orchestrator.start_processing(file_id, owner_id, config)
        return JobSummary.from_record(job)

    def get_job_status(self, job_id: str, owner_id: str) -> JobStatus:
        return JobStatus.from_record(self._job_repo.find_for_owner(job_id, owner_id))

    def get_preview(
        self,
        file_id: str,
        owner_id: str,
        limit: int = 100,
        offset: int = 0,
        processed: bool = False,
    ) -> PreviewPage:
        """Return a window of the cached original or processed preview.

        Raises:
            ValidationError: if ``limit`` is outside [1, 1000] or ``offset`` is negative.
            NotFoundError: if the file or its processed version does not exist.
        """
        _validate_window(limit, offset)
        if processed:
            return self._processed_preview(file_id, owner_id, limit, offset)
        return self._original_preview(file_id, owner_id, limit, offset)

    def download(self, file_id: str, owner_id: str) -> FileDownload:
        record = self._content_store.find(file_id, owner_id)
        return self._open(record, processed=record.is_derived)

    def export(self, file_id: str, owner_id: str) -> FileDownload:
        """Stream the latest processed version of a file, or the file itself.

        ``file_id`` may name either an original or a processed output.
        """
        direct = self._content_store.find(file_id, owner_id)
        if self._job_repo.find_completed_by_processed_file(direct.id, owner_id) is not None:
            return self._open(direct, processed=True, export_name=True)

        job = self._job_repo.find_latest_completed_for_original(direct.id, owner_id)
        if job is None or job.processed_file_id is None:
            return self._open(direct, processed=False)

        try:
            processed_file = self._content_store.find(job.processed_file_id, owner_id)
        except NotFoundError:
            Log.warning(f"Processed file {job.processed_file_id} missing, exporting original")
            return self._open(direct, processed=False)
        return self._open(processed_file, processed=True, export_name=True)

    def list_files(
        self,
        owner_id: str,
        limit: int = 50,
        offset: int = 0,
        parent_id: str | None = None,
        processed_only: bool = False,
    ) -> Page:
        """List files; ``processed_only`` shows originals through their latest job."""
        _validate_window(limit, offset)
        if not processed_only:
            records, total = self._file_repo.list_files(owner_id, parent_id, limit, offset)
            return Page(
                items=[FileListing(FileSummary.from_record(r)) for r in records],
                total=total,
                limit=limit,
                offset=offset,
            )

        originals = self._file_repo.list_originals(owner_id)
        listings = [self._listing_with_latest_job(original) for original in originals]
        return Page(
            items=listings[offset : offset + limit],
            total=len(listings),
            limit=limit,
            offset=offset,
        )

    def list_jobs(
        self,
        owner_id: str,
        limit: int = 50,
        offset: int = 0,
        status: str | None = None,
    ) -> Page:
        _validate_window(limit, offset)
        if status is not None and status not in JOB_STATUSES:
            raise ValidationError(f"Unknown job status: {status}")
        jobs, total = self._job_repo.list_jobs(owner_id, status, limit, offset)
        return Page(
            items=[JobSummary.from_record(job) for job in jobs],
            total=total,
            limit=limit,
            offset=offset,
        )

    def close(self) -> None:
        """Stop accepting dispatches and wait for running jobs."""
        self._orchestrator.shutdown(wait=True)

    def delete_file(self, file_id: str, owner_id: str) -> None:
        """Delete a file with its derived files and jobs.

        Raises:
            ValidationError: if the file is the output of a completed job.
        """
        if self._job_repo.find_completed_by_processed_file(file_id, owner_id) is not None:
            raise ValidationError("Processed files are deleted with their original")
        self._content_store.delete(file_id, owner_id)

    def storage_stats(self, owner_id: str) -> StorageStats:
        return self._content_store.storage_stats(owner_id)

    def mapping_targets(self, owner_id: str) -> list[str]:
        """Names a column can be mapped to, ending with the exclusion choice."""
        names = (
            self._property_catalog.list_properties(owner_id)
            if self._property_catalog is not None
            else []
        )
        return [*(name for name in names if name != DO_NOT_IMPORT), DO_NOT_IMPORT]

    def _processed_preview(
        self, file_id: str, owner_id: str, limit: int, offset: int
    ) -> PreviewPage:
        job = self._job_repo.find_completed_by_processed_file(file_id, owner_id)
        if job is None:
            job = self._job_repo.find_latest_completed_for_original(file_id, owner_id)
        if job is None:
            raise NotFoundError("No processed version available")

        return _window(
            job.processed_preview,
            total_rows=job.processed_row_count or 0,
            total_columns=job.processed_column_count or 0,
            limit=limit,
            offset=offset,
            metadata={
                "fileId": job.processed_file_id,
                "hash": job.processed_hash,
                "status": job.status,
                "processedAt": job.completed_at.isoformat() if job.completed_at else None,
            },
        )

    def _original_preview(
        self, file_id: str, owner_id: str, limit: int, offset: int
    ) -> PreviewPage:
        record = self._content_store.find(file_id, owner_id)
        metadata = {
            "fileId": record.id,
            "hash": record.content_hash,
            "fileName": record.name,
            "fileSize": record.size_bytes,
        }

        job = self._job_repo.find_latest_for_original(record.id, owner_id)
        if job is not None and job.original_preview:
            return _window(
                job.original_preview,
                total_rows=job.original_row_count,
                total_columns=job.original_column_count,
                limit=limit,
                offset=offset,
                metadata=metadata,
            )

        data = self._read_or_not_found(record)
        try:
            table = parse_csv(data)
        except ProcessingError as exc:
            Log.warning(f"Could not build preview: {exc}", file_id=record.id)
            table = Table(header=[])
        return _window(
            table.to_rows() if table.header else [],
            total_rows=table.row_count,
            total_columns=table.column_count,
            limit=limit,
            offset=offset,
            metadata=metadata,
        )

    def _stored_preview(self, record: FileRecord) -> PreviewData:
        job = self._job_repo.find_latest_for_original(record.id, record.owner_id)
        if job is not None and job.original_preview:
            header, *rows = job.original_preview
            return PreviewData(columns=header, rows=rows, total_rows=job.original_row_count)
        return self._preview_from_bytes(self._content_store.read_record(record))

    def _preview_from_bytes(self, data: bytes) -> PreviewData:
        try:
            table = parse_csv(data)
        except ProcessingError as exc:
            # The dispatched job records the same failure.
            Log.warning(f"Could not build upload preview: {exc}")
            table = Table(header=[])
        return PreviewData(
            columns=list(table.header),
            rows=[list(row) for row in table.rows[: self._preview_limit]],
            total_rows=table.row_count,
        )

    def _listing_with_latest_job(self, original: FileRecord) -> FileListing:
        job = self._job_repo.find_latest_for_original(original.id, original.owner_id)
        if job is None:
            return FileListing(FileSummary.from_record(original))

        summary = FileSummary.from_record(original)
        if job.status == STATUS_COMPLETED and job.processed_file_id is not None:
            summary = self._processed_summary(original, job) or summary
        return FileListing(summary, JobSummary.from_record(job))

    def _processed_summary(self, original: FileRecord, job: JobRecord) -> FileSummary | None:
        try:
            processed = self._content_store.find(job.processed_file_id or "", original.owner_id)
        except NotFoundError:
            return None
        return FileSummary(
            id=processed.id,
            name=original.name,
            size=processed.size_bytes,
            hash=processed.content_hash,
            mime_type=processed.mime_type,
            parent_id=processed.parent_id,
            created_at=original.created_at,
            updated_at=processed.updated_at,
        )

    def _open(
        self, record: FileRecord, processed: bool, export_name: bool = False
    ) -> FileDownload:
        name = record.name
        if export_name:
            name = f"{PurePath(record.name).stem}_processed.csv"
        return FileDownload(
            file_id=record.id,
            name=name,
            mime_type="text/csv" if processed else record.mime_type,
            size=record.size_bytes,
            chunks=self._stream_or_not_found(record),
            processed=processed,
        )

    def _read_or_not_found(self, record: FileRecord) -> bytes:
        try:
            return self._content_store.read_record(record)
        except FileReadError as exc:
            raise NotFoundError(f"File {record.id} not found on disk") from exc

    def _stream_or_not_found(self, record: FileRecord) -> Iterator[bytes]:
        try:
            return self._content_store.open_stream(record)
        except FileReadError as exc:
            raise NotFoundError(f"File {record.id} not found on disk") from exc


def _validate_window(limit: int, offset: int) -> None:
    if not MIN_PAGE_LIMIT <= limit <= MAX_PAGE_LIMIT:
        raise ValidationError(
            f"Limit must be between {MIN_PAGE_LIMIT} and {MAX_PAGE_LIMIT}"
        )
    if offset < 0:
        raise ValidationError("Offset must not be negative")


def _window(
    preview: list[list[str]],
    total_rows: int,
    total_columns: int,
    limit: int,
    offset: int,
    metadata: dict[str, Any],
) -> PreviewPage:
    headers = list(preview[0]) if preview else []
    data_rows = preview[1:]
    return PreviewPage(
        headers=headers,
        rows=[list(row) for row in data_rows[offset : offset + limit]],
        total_rows=total_rows,
        total_columns=total_columns,
        limit=limit,
        offset=offset,
        has_more=offset + limit < len(data_rows),
        metadata=metadata,
    )
