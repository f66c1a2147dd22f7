import signal

from csv_ingest.config.settings import Settings
from csv_ingest.database.connection import apply_schema, close_pool, init_pool
from csv_ingest.database.repositories.file_repository import FileRepository
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.logging.logger import Log
from csv_ingest.processor.processor import build_processor
from csv_ingest.storage.content_store import ContentStore
from csv_ingest.worker.job_runner import JobRunner
from csv_ingest.worker.worker import Worker


def main() -> None:
    """Run the standalone job worker: pool -> schema -> pipeline -> poll loop."""
    settings = Settings()
    Log.configure(settings.log_level)
    Log.info("Starting csv-ingest worker", env=settings.app_env)
    init_pool(settings)

    try:
        apply_schema()
        job_repo = JobRepository()
        content_store = ContentStore.from_settings(settings, FileRepository())
        job_runner = JobRunner(build_processor(settings, content_store, job_repo), job_repo)
        worker = Worker(job_repo, job_runner, settings.job_poll_interval_seconds)
        signal.signal(signal.SIGTERM, lambda _signum, _frame: worker.stop())
        worker.run()
    finally:
        close_pool()


if __name__ == "__main__":
    main()
