import threading

from csv_ingest.database.connection import get_connection
from csv_ingest.database.models import JobRecord
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.logging.logger import Log
from csv_ingest.worker.job_runner import JobRunner


class Worker:
    """Poll loop that claims pending jobs nobody dispatched.

    The in-process dispatcher handles new jobs; this loop picks up the ones
    it lost, for example after a restart. Claims are atomic, so both can run
    against the same table.
    """

    def __init__(
        self,
        job_repo: JobRepository,
        job_runner: JobRunner,
        poll_interval_seconds: float,
    ) -> None:
        self._job_repo = job_repo
        self._job_runner = job_runner
        self._poll_interval_seconds = poll_interval_seconds
        self._stopping = threading.Event()

    def run(self, max_jobs: int | None = None) -> int:
        """Poll until stopped or interrupted; return the number of jobs run.

        ``max_jobs`` ends the loop after that many jobs.
        """
        Log.info("Worker started", poll_interval=self._poll_interval_seconds)
        jobs_done = 0
        try:
            while not self._stopping.is_set():
                if max_jobs is not None and jobs_done >= max_jobs:
                    break
                job = self._try_claim_job()
                if job is None:
                    self._stopping.wait(self._poll_interval_seconds)
                    continue
                self._job_runner.run_claimed(job)
                jobs_done += 1
        except KeyboardInterrupt:
            Log.info("Worker interrupted")
        Log.info("Worker stopped", jobs_done=jobs_done)
        return jobs_done

    def stop(self) -> None:
        """Ask the loop to exit after the current job."""
        self._stopping.set()

    def _try_claim_job(self) -> JobRecord | None:
        try:
            with get_connection() as conn:
                return self._job_repo.claim_next_job(conn)
        except Exception as exc:
            Log.warning(f"Could not claim a job, will retry: {exc}")
            return None
