from csv_ingest.database.models import JobRecord
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.logging.logger import Log
from csv_ingest.processor.processor import Processor


class JobRunner:
    """Claim and run one job; failures end up on the job row, never raised."""

    def __init__(self, processor: Processor, job_repo: JobRepository) -> None:
        self._processor = processor
        self._job_repo = job_repo

    def run(self, job_id: str) -> None:
        """Claim a pending job by id and execute it.

        A job that is no longer pending was claimed elsewhere or is
        terminal, so it is skipped.
        """
        job = self._job_repo.claim_job(job_id)
        if job is None:
            Log.info("Job is not pending, skipping", job_id=job_id)
            return
        self.run_claimed(job)

    def run_claimed(self, job: JobRecord) -> None:
        """Execute a job already moved to processing."""
        Log.info("Running job", job_id=job.id, file_id=job.original_file_id)
        try:
            self._processor.process(job)
            Log.info("Job completed successfully", job_id=job.id)
        except Exception as exc:
            Log.exception(f"Job failed: {exc}", job_id=job.id)
