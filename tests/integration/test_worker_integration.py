import pytest

from csv_ingest.api.ingestion_service import IngestionService
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.worker.job_runner import JobRunner
from csv_ingest.worker.worker import Worker


@pytest.mark.integration
class TestWorkerPicksUpPendingJobs:
    def test_poll_loop_processes_undispatched_job(
        self,
        service: IngestionService,
        job_runner: JobRunner,
        job_repo: JobRepository,
        dispatcher,
        owner_id: str,
        contacts_csv: bytes,
    ) -> None:
        uploaded = service.upload(owner_id, contacts_csv, "contacts.csv")
        dispatcher.submitted.clear()
        worker = Worker(job_repo, job_runner, poll_interval_seconds=0)

        worker.run(max_jobs=1)

        job = job_repo.find_by_id(uploaded.job.id)
        assert job is not None
        assert job.status == "completed"
        assert job.processed_row_count == 4
