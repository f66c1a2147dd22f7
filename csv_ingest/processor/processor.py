from csv_ingest.config.settings import Settings
from csv_ingest.database.models import JobRecord
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.logging.logger import Log
from csv_ingest.processor.engine import TransformationEngine
from csv_ingest.processor.pipeline import PipelineContext, PipelineStep
from csv_ingest.processor.steps import (
    LoadOriginalStep,
    MarkCompletedStep,
    MarkFailedStep,
    ParseCsvStep,
    SerializeStep,
    StoreDerivedStep,
    TransformStep,
)
from csv_ingest.storage.content_store import ContentStore


class Processor:
    """Runs the processing pipeline for one claimed job.

    Pipeline: load -> parse -> transform -> serialize -> store -> complete.
    On any step error the failed step records the message on the job and
    the error is re-raised.
    """

    def __init__(self, steps: list[PipelineStep], failed_step: PipelineStep) -> None:
        self._steps = steps
        self._failed_step = failed_step

    def process(self, job: JobRecord) -> PipelineContext:
        Log.info(f"Processing file {job.original_file_id} for job {job.id}")
        context = PipelineContext(job=job)
        try:
            for step in self._steps:
                context = step.run(context)
        except Exception as exc:
            context.error_message = str(exc) or type(exc).__name__
            self._failed_step.run(context)
            raise
        return context


def build_processor(
    settings: Settings,
    content_store: ContentStore,
    job_repo: JobRepository,
) -> Processor:
    """Build a Processor wired to the given store and repository."""
    steps: list[PipelineStep] = [
        LoadOriginalStep(content_store),
        ParseCsvStep(),
        TransformStep(TransformationEngine(), job_repo),
        SerializeStep(),
        StoreDerivedStep(content_store),
        MarkCompletedStep(job_repo, settings.preview_row_limit),
    ]
    return Processor(steps=steps, failed_step=MarkFailedStep(job_repo))
