import dataclasses
import itertools
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

from csv_ingest.api.ingestion_service import IngestionService
from csv_ingest.config.settings import Settings
from csv_ingest.database.models import (
    STATUS_COMPLETED,
    STATUS_FAILED,
    STATUS_PENDING,
    STATUS_PROCESSING,
    FileRecord,
    JobCompletion,
    JobRecord,
    StorageStats,
)
from csv_ingest.exceptions import NotFoundError
from csv_ingest.orchestrator.job_orchestrator import JobOrchestrator
from csv_ingest.processor.processor import build_processor
from csv_ingest.storage.content_store import ContentStore
from csv_ingest.worker.job_runner import JobRunner

_EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


class FakeClock:
    """Strictly increasing timestamps so "latest" ordering is deterministic."""

    def __init__(self) -> None:
        self._ticks = itertools.count(1)

    def now(self) -> datetime:
        return _EPOCH + timedelta(seconds=next(self._ticks))


class InMemoryFileRepository:
    """Dict-backed stand-in for FileRepository with the same contract."""

    def __init__(self, clock: FakeClock) -> None:
        self._clock = clock
        self.files: dict[str, FileRecord] = {}

    def insert(self, record: FileRecord) -> FileRecord:
        if record.parent_id is None:
            existing = self.find_original_by_hash(record.content_hash, record.owner_id)
            if existing is not None:
                return existing
        now = self._clock.now()
        stored = dataclasses.replace(record, created_at=now, updated_at=now)
        self.files[stored.id] = stored
        return stored

    def find_by_id(self, file_id: str, owner_id: str) -> FileRecord:
        record = self.files.get(file_id)
        if record is None or record.owner_id != owner_id:
            raise NotFoundError(f"File {file_id} not found")
        return record

    def find_original_by_hash(self, content_hash: str, owner_id: str) -> FileRecord | None:
        for record in self.files.values():
            if (
                record.owner_id == owner_id
                and record.content_hash == content_hash.lower()
                and record.parent_id is None
            ):
                return record
        return None

    def delete(self, file_id: str, owner_id: str) -> None:
        self.find_by_id(file_id, owner_id)
        doomed = {file_id} | {f.id for f in self.files.values() if f.parent_id == file_id}
        for doomed_id in doomed:
            del self.files[doomed_id]

    def list_files(self, owner_id, parent_id=None, limit=50, offset=0):
        records = [
            f
            for f in self.files.values()
            if f.owner_id == owner_id and f.parent_id == parent_id
        ]
        records.sort(key=lambda f: f.created_at, reverse=True)
        return records[offset : offset + limit], len(records)

    def list_originals(self, owner_id: str, mime_type: str = "text/csv") -> list[FileRecord]:
        records = [
            f
            for f in self.files.values()
            if f.owner_id == owner_id and f.parent_id is None and f.mime_type == mime_type
        ]
        return sorted(records, key=lambda f: f.created_at, reverse=True)

    def storage_stats(self, owner_id: str) -> StorageStats:
        records = [f for f in self.files.values() if f.owner_id == owner_id]
        file_types: dict[str, int] = {}
        for record in records:
            ext = Path(record.name).suffix.lower()
            file_types[ext] = file_types.get(ext, 0) + 1
        return StorageStats(
            total_files=len(records),
            total_size_bytes=sum(r.size_bytes for r in records),
            file_types=file_types,
        )


class InMemoryJobRepository:
    """Dict-backed stand-in for JobRepository with the same guarded transitions."""

    def __init__(self, clock: FakeClock, file_repo: InMemoryFileRepository) -> None:
        self._clock = clock
        self._file_repo = file_repo
        self.jobs: dict[str, JobRecord] = {}
        self.progress_updates: list[tuple[str, int]] = []

    def _live(self) -> list[JobRecord]:
        # Jobs cascade away with their original or processed file.
        return [
            job
            for job in self.jobs.values()
            if job.original_file_id in self._file_repo.files
            and (job.processed_file_id is None or job.processed_file_id in self._file_repo.files)
        ]

    def _copy(self, job: JobRecord | None) -> JobRecord | None:
        return dataclasses.replace(job) if job is not None else None

    def insert(self, job: JobRecord) -> JobRecord:
        now = self._clock.now()
        stored = dataclasses.replace(
            job, status=STATUS_PENDING, progress=0, created_at=now, updated_at=now
        )
        self.jobs[stored.id] = stored
        return self._copy(stored)

    def find_by_id(self, job_id: str) -> JobRecord | None:
        return self._copy(self.jobs.get(job_id))

    def find_for_owner(self, job_id: str, owner_id: str) -> JobRecord:
        job = self.jobs.get(job_id)
        if job is None or job.owner_id != owner_id or job not in self._live():
            raise NotFoundError(f"Job {job_id} not found")
        return self._copy(job)

    def find_completed_by_config(self, original_file_id: str, config_hash: str):
        matches = [
            j
            for j in self._live()
            if j.original_file_id == original_file_id
            and j.status == STATUS_COMPLETED
            and j.config_hash == config_hash
        ]
        return self._copy(max(matches, key=lambda j: j.completed_at, default=None))

    def _latest(self, predicate) -> JobRecord | None:
        matches = [j for j in self._live() if predicate(j)]
        return self._copy(max(matches, key=lambda j: j.created_at, default=None))

    def find_latest_completed_for_original(self, original_file_id, owner_id):
        return self._latest(
            lambda j: j.original_file_id == original_file_id
            and j.owner_id == owner_id
            and j.status == STATUS_COMPLETED
        )

    def find_completed_by_processed_file(self, processed_file_id, owner_id):
        return self._latest(
            lambda j: j.processed_file_id == processed_file_id
            and j.owner_id == owner_id
            and j.status == STATUS_COMPLETED
        )

    def find_latest_for_original(self, original_file_id, owner_id):
        return self._latest(
            lambda j: j.original_file_id == original_file_id and j.owner_id == owner_id
        )

    def claim_job(self, job_id: str) -> JobRecord | None:
        job = self.jobs.get(job_id)
        if job is None or job.status != STATUS_PENDING:
            return None
        job.status = STATUS_PROCESSING
        job.progress = 0
        job.started_at = self._clock.now()
        return self._copy(job)

    def claim_next_job(self, conn) -> JobRecord | None:
        pending = [j for j in self.jobs.values() if j.status == STATUS_PENDING]
        if not pending:
            return None
        return self.claim_job(min(pending, key=lambda j: j.created_at).id)

    def update_progress(self, job_id: str, progress: int) -> None:
        job = self.jobs[job_id]
        if job.status == STATUS_PROCESSING:
            job.progress = max(job.progress, progress)
            self.progress_updates.append((job_id, progress))

    def mark_completed(self, job_id: str, completion: JobCompletion) -> None:
        job = self.jobs[job_id]
        if job.status != STATUS_PROCESSING:
            raise NotFoundError(f"Job {job_id} is not processing")
        job.status = STATUS_COMPLETED
        job.progress = 100
        job.processed_file_id = completion.processed_file_id
        job.processed_hash = completion.processed_hash
        job.processed_row_count = completion.processed_row_count
        job.processed_column_count = completion.processed_column_count
        job.processed_preview = completion.processed_preview
        job.completed_at = self._clock.now()

    def mark_failed(self, job_id: str, error: str) -> None:
        job = self.jobs[job_id]
        if job.status in (STATUS_PENDING, STATUS_PROCESSING):
            job.status = STATUS_FAILED
            job.error_message = error

    def list_jobs(self, owner_id, status=None, limit=50, offset=0):
        jobs = [
            j
            for j in self._live()
            if j.owner_id == owner_id and (status is None or j.status == status)
        ]
        jobs.sort(key=lambda j: j.created_at, reverse=True)
        return [self._copy(j) for j in jobs[offset : offset + limit]], len(jobs)


class ManualDispatcher:
    """Records dispatched job ids; ``run_pending`` executes them on demand."""

    def __init__(self) -> None:
        self.submitted: list[str] = []
        self.runner: JobRunner | None = None
        self.shut_down = False

    def submit(self, job_id: str) -> None:
        self.submitted.append(job_id)

    def run_pending(self) -> None:
        assert self.runner is not None
        while self.submitted:
            self.runner.run(self.submitted.pop(0))

    def shutdown(self, wait: bool = True) -> None:
        self.shut_down = True


@pytest.fixture()
def settings() -> Settings:
    return Settings(_env_file=None)


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def file_repo(clock: FakeClock) -> InMemoryFileRepository:
    return InMemoryFileRepository(clock)


@pytest.fixture()
def job_repo(clock: FakeClock, file_repo: InMemoryFileRepository) -> InMemoryJobRepository:
    return InMemoryJobRepository(clock, file_repo)


@pytest.fixture()
def content_store(tmp_path: Path, file_repo: InMemoryFileRepository) -> ContentStore:
    return ContentStore(files_root=tmp_path / "storage", file_repo=file_repo)


@pytest.fixture()
def dispatcher() -> ManualDispatcher:
    return ManualDispatcher()


@pytest.fixture()
def job_runner(
    settings: Settings,
    content_store: ContentStore,
    job_repo: InMemoryJobRepository,
    dispatcher: ManualDispatcher,
) -> JobRunner:
    runner = JobRunner(build_processor(settings, content_store, job_repo), job_repo)
    dispatcher.runner = runner
    return runner


@pytest.fixture()
def orchestrator(
    content_store: ContentStore,
    job_repo: InMemoryJobRepository,
    job_runner: JobRunner,
    dispatcher: ManualDispatcher,
) -> JobOrchestrator:
    return JobOrchestrator(content_store, job_repo, job_runner, dispatcher)


@pytest.fixture()
def service(
    content_store: ContentStore,
    file_repo: InMemoryFileRepository,
    job_repo: InMemoryJobRepository,
    orchestrator: JobOrchestrator,
) -> IngestionService:
    return IngestionService(content_store, file_repo, job_repo, orchestrator)


@pytest.fixture()
def contacts_csv() -> bytes:
    """Three columns, four rows, 'notes' blank everywhere."""
    return (
        b"name,email,notes\r\n"
        b"Alice,alice@x.com,\r\n"
        b"Bob,bob@x.com,\r\n"
        b"Carol,carol@x.com,  \r\n"
        b"Dan,dan@x.com,\r\n"
    )
