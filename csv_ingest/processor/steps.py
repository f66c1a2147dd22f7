from csv_ingest.database.models import JobCompletion
from csv_ingest.database.repositories.job_repository import JobRepository
from csv_ingest.logging.logger import Log
from csv_ingest.processor.csv_codec import build_preview, parse_csv, serialize_csv
from csv_ingest.processor.engine import TransformationEngine
from csv_ingest.processor.pipeline import PipelineContext, PipelineStep
from csv_ingest.storage.content_store import ContentStore


class MarkFailedStep(PipelineStep):
    def __init__(self, job_repo: JobRepository) -> None:
        self._job_repo = job_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        self._job_repo.mark_failed(context.job_id, context.error_message)
        Log.error(f"Marked as failed: {context.error_message}", job_id=context.job_id)
        return context


class LoadOriginalStep(PipelineStep):
    def __init__(self, content_store: ContentStore) -> None:
        self._content_store = content_store

    def run(self, context: PipelineContext) -> PipelineContext:
        job = context.job
        original = self._content_store.find(job.original_file_id, job.owner_id)
        context.original = original
        context.raw_bytes = self._content_store.read_record(original)
        Log.info(f"Loaded {len(context.raw_bytes)} bytes for file {original.id}")
        return context


class ParseCsvStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        context.table = parse_csv(context.raw_bytes)
        Log.info(
            f"Parsed {context.table.row_count} rows x {context.table.column_count} "
            f"columns for job {context.job_id}"
        )
        return context


class TransformStep(PipelineStep):
    """Runs the engine and persists progress after every transform."""

    def __init__(self, engine: TransformationEngine, job_repo: JobRepository) -> None:
        self._engine = engine
        self._job_repo = job_repo

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.table is None:
            raise ValueError("PipelineContext.table must be set before transformation")

        def report(progress: int) -> None:
            self._job_repo.update_progress(context.job_id, progress)
            context.job.progress = max(context.job.progress, progress)
            Log.debug(f"Progress {progress}%", job_id=context.job_id)

        context.table = self._engine.run(context.table, context.job.config, report)
        return context


class SerializeStep(PipelineStep):
    def run(self, context: PipelineContext) -> PipelineContext:
        if context.table is None:
            raise ValueError("PipelineContext.table must be set before serialization")
        context.output_bytes = serialize_csv(context.table)
        return context


class StoreDerivedStep(PipelineStep):
    def __init__(self, content_store: ContentStore) -> None:
        self._content_store = content_store

    def run(self, context: PipelineContext) -> PipelineContext:
        job = context.job
        context.processed_file = self._content_store.store_derived(
            job.owner_id,
            context.output_bytes,
            parent_file_id=job.original_file_id,
            job_id=job.id,
        )
        return context


class MarkCompletedStep(PipelineStep):
    def __init__(self, job_repo: JobRepository, preview_limit: int) -> None:
        self._job_repo = job_repo
        self._preview_limit = preview_limit

    def run(self, context: PipelineContext) -> PipelineContext:
        if context.table is None or context.processed_file is None:
            raise ValueError(
                "PipelineContext.table and processed_file must be set before completion"
            )
        completion = JobCompletion(
            processed_file_id=context.processed_file.id,
            processed_hash=context.processed_file.content_hash,
            processed_row_count=context.table.row_count,
            processed_column_count=context.table.column_count,
            processed_preview=build_preview(context.table, self._preview_limit),
        )
        self._job_repo.mark_completed(context.job_id, completion)
        Log.info(
            f"Job {context.job_id} completed: {completion.processed_row_count} rows, "
            f"{completion.processed_column_count} columns"
        )
        return context
