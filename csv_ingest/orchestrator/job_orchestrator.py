import uuid

from csv_ingest.database.models import FileRecord, JobRecord
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.exceptions import ProcessingError
from csv_ingest.hashing.hasher import hash_config
from csv_ingest.logging.logger import Log
from csv_ingest.processor.csv_codec import PREVIEW_ROW_LIMIT, build_preview, parse_csv
from csv_ingest.processor.models import ProcessingConfig, Table
from csv_ingest.storage.content_store import ContentStore
from csv_ingest.worker.dispatcher import Dispatcher
from csv_ingest.worker.job_runner import JobRunner


class JobOrchestrator:
    """Creates processing jobs, reusing completed ones, and hands them to workers.

    Memoization looks at every completed job of the file, not only the
    latest one, and prefers the most recently completed match.
    """

    def __init__(
        self,
        content_store: ContentStore,
        job_repo: JobRepository,
        job_runner: JobRunner,
        dispatcher: Dispatcher,
        preview_limit: int = PREVIEW_ROW_LIMIT,
    ) -> None:
        self._content_store = content_store
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._dispatcher = dispatcher
        self._preview_limit = preview_limit

    def create_job(
        self, original_file_id: str, owner_id: str, config: ProcessingConfig
    ) -> JobRecord:
        """Return a completed job with the same config or insert a pending one.

        Raises:
            NotFoundError: if the file does not exist or is not owned.
        """
        original = self._content_store.find(original_file_id, owner_id)
        config_hash = hash_config(config)

        existing = self._job_repo.find_completed_by_config(original.id, config_hash)
        if existing is not None:
            Log.info("Reusing completed job", job_id=existing.id, file_id=original.id)
            return existing

        table = self._read_table(original)
        job = self._job_repo.insert(
            JobRecord(
                id=str(uuid.uuid4()),
                owner_id=owner_id,
                original_file_id=original.id,
                original_hash=original.content_hash,
                config=config,
                config_hash=config_hash,
                original_row_count=table.row_count,
                original_column_count=table.column_count,
                original_preview=build_preview(table, self._preview_limit),
            )
        )
        Log.info("Created job", job_id=job.id, file_id=original.id)
        return job

    def dispatch(self, job: JobRecord) -> bool:
        """Queue a job for background execution unless it already finished."""
        if job.is_terminal:
            return False
        self._dispatcher.submit(job.id)
        return True

    def start_processing(
        self, original_file_id: str, owner_id: str, config: ProcessingConfig
    ) -> JobRecord:
        job = self.create_job(original_file_id, owner_id, config)
        self.dispatch(job)
        return job

    def process_job(self, job_id: str) -> None:
        """Run a job synchronously on the calling thread."""
        self._job_runner.run(job_id)

    def shutdown(self, wait: bool = True) -> None:
        self._dispatcher.shutdown(wait=wait)

    def _read_table(self, original: FileRecord) -> Table:
        # Unreadable originals still get a job so the failure is recorded on it.
        try:
            return parse_csv(self._content_store.read_record(original))
        except ProcessingError as exc:
            Log.warning(f"Could not build preview for file {original.id}: {exc}")
            return Table(header=[])
