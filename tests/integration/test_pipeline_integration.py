import pytest

from csv_ingest.api.ingestion_service import IngestionService
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.worker.dispatcher import Dispatcher
from csv_ingest.worker.job_runner import JobRunner


@pytest.mark.integration
class TestUploadAndProcess:
    def test_upload_then_default_processing(
        self, service: IngestionService, dispatcher, owner_id: str, contacts_csv: bytes
    ) -> None:
        uploaded = service.upload(owner_id, contacts_csv, "contacts.csv", "text/csv")
        dispatcher.run_pending()

        status = service.get_job_status(uploaded.job.id, owner_id)
        assert status.status == "completed"
        assert status.processed_preview[0] == ["name", "email"]
        download = service.export(uploaded.file.id, owner_id)
        assert download.name == "contacts_processed.csv"
        assert download.read_all().startswith(b"name,email\r\nAlice,alice@x.com\r\n")

    def test_reupload_and_reprocess_reuse_rows(
        self,
        service: IngestionService,
        dispatcher,
        owner_id: str,
        contacts_csv: bytes,
    ) -> None:
        first = service.upload(owner_id, contacts_csv, "contacts.csv")
        dispatcher.run_pending()

        again = service.upload(owner_id, contacts_csv, "contacts.csv")
        job = service.start_processing(first.file.id, owner_id, {})

        assert again.already_exists
        assert again.file.id == first.file.id
        assert job.id == first.job.id
        assert service.list_files(owner_id).total == 1
        assert service.list_jobs(owner_id).total == 1

    def test_missing_bytes_fail_the_job(
        self,
        service: IngestionService,
        content_store,
        file_repo,
        dispatcher,
        owner_id: str,
        contacts_csv: bytes,
    ) -> None:
        uploaded = service.upload(owner_id, contacts_csv, "contacts.csv")
        record = file_repo.find_by_id(uploaded.file.id, owner_id)
        content_store.resolve_path(record).unlink()

        dispatcher.run_pending()

        status = service.get_job_status(uploaded.job.id, owner_id)
        assert status.status == "failed"
        assert status.summary.error
        assert file_repo.find_by_id(uploaded.file.id, owner_id) == record

    def test_delete_removes_jobs(
        self, service: IngestionService, dispatcher, owner_id: str, contacts_csv: bytes
    ) -> None:
        uploaded = service.upload(owner_id, contacts_csv, "contacts.csv")
        dispatcher.run_pending()

        service.delete_file(uploaded.file.id, owner_id)

        assert service.list_jobs(owner_id).total == 0
        assert service.storage_stats(owner_id).total_files == 0


@pytest.mark.integration
class TestConcurrentDispatch:
    def test_job_dispatched_twice_runs_once(
        self,
        service: IngestionService,
        job_runner: JobRunner,
        job_repo: JobRepository,
        owner_id: str,
        contacts_csv: bytes,
    ) -> None:
        uploaded = service.upload(owner_id, contacts_csv, "contacts.csv")
        pool = Dispatcher(job_runner, max_workers=4)

        futures = [pool.submit(uploaded.job.id) for _ in range(4)]
        for future in futures:
            future.result(timeout=30)
        pool.shutdown()

        job = job_repo.find_by_id(uploaded.job.id)
        assert job is not None
        assert job.status == "completed"
        assert service.list_files(owner_id, parent_id=uploaded.file.id).total == 1
