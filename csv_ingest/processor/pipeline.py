from abc import ABC, abstractmethod
from dataclasses import dataclass

from csv_ingest.database.models import FileRecord, JobRecord
from csv_ingest.processor.models import Table


@dataclass(slots=True)
class PipelineContext:
    job: JobRecord
    original: FileRecord | None = None
    raw_bytes: bytes = b""
    table: Table | None = None
    output_bytes: bytes = b""
    processed_file: FileRecord | None = None
    error_message: str = ""

    @property
    def job_id(self) -> str:
        return self.job.id


class PipelineStep(ABC):
    @abstractmethod
    def run(self, context: PipelineContext) -> PipelineContext:
        raise NotImplementedError
