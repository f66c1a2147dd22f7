from concurrent.futures import Future, ThreadPoolExecutor

from csv_ingest.logging.logger import Log
from csv_ingest.worker.job_runner import JobRunner


class Dispatcher:
    """Fire-and-forget execution of jobs on a thread pool.

    Callers get a Future back but never need to wait on it; the outcome
    of a job is always written to its row.
    """

    def __init__(self, job_runner: JobRunner, max_workers: int = 4) -> None:
        self._job_runner = job_runner
        self._executor = ThreadPoolExecutor(
            max_workers=max_workers, thread_name_prefix="csv-job"
        )

    def submit(self, job_id: str) -> Future[None]:
        Log.debug("Dispatching job", job_id=job_id)
        future = self._executor.submit(self._job_runner.run, job_id)
        future.add_done_callback(lambda done: _log_crash(job_id, done))
        return future

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)


def _log_crash(job_id: str, future: Future[None]) -> None:
    exc = future.exception()
    if exc is not None:
        Log.error(f"Dispatch crashed: {exc}", job_id=job_id)
