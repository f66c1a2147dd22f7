from csv_ingest.api.ingestion_service import IngestionService, PropertyCatalog
from csv_ingest.config.settings import Settings
from csv_ingest.database.repositories.file_repository import FileRepository
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.orchestrator.job_orchestrator import JobOrchestrator
from csv_ingest.processor.processor import build_processor
from csv_ingest.storage.content_store import ContentStore
from csv_ingest.worker.dispatcher import Dispatcher
from csv_ingest.worker.job_runner import JobRunner


def build_ingestion_service(
    settings: Settings,
    property_catalog: PropertyCatalog | None = None,
) -> IngestionService:
    """Wire the service graph. The connection pool must already be initialized."""
    file_repo = FileRepository()
    job_repo = JobRepository()
    content_store = ContentStore.from_settings(settings, file_repo)
    processor = build_processor(settings, content_store, job_repo)
    job_runner = JobRunner(processor, job_repo)
    dispatcher = Dispatcher(job_runner, max_workers=settings.dispatch_max_workers)
    orchestrator = JobOrchestrator(
        content_store,
        job_repo,
        job_runner,
        dispatcher,
        preview_limit=settings.preview_row_limit,
    )
    return IngestionService(
        content_store,
        file_repo,
        job_repo,
        orchestrator,
        property_catalog=property_catalog,
        preview_limit=settings.preview_row_limit,
    )
