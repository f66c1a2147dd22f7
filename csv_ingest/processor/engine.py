from collections.abc import Callable

from csv_ingest.logging.logger import Log
from csv_ingest.processor.models import ProcessingConfig, Table
from csv_ingest.processor.transforms import (
    MapColumns,
    MergeColumns,
    RemoveDuplicates,
    RemoveEmptyColumns,
    TableTransform,
)

ProgressCallback = Callable[[int], None]


def progress_percent(done: int, total: int) -> int:
    return round(done / total * 100) if total else 100


class TransformationEngine:
    """Applies the configured transforms to a table in a fixed order.

    Order: empty-column removal (always), duplicate removal, column merge,
    column mapping. No I/O happens here.
    """

    def build_steps(self, config: ProcessingConfig) -> list[TableTransform]:
        steps: list[TableTransform] = [RemoveEmptyColumns()]
        if config.remove_duplicates:
            steps.append(RemoveDuplicates(config.duplicate_check_columns))
        if config.merge_columns:
            steps.append(MergeColumns(config.merge_columns, config.merge_delimiter))
        if config.column_mappings:
            steps.append(MapColumns(config.column_mappings))
        return steps

    def run(
        self,
        table: Table,
        config: ProcessingConfig,
        on_progress: ProgressCallback | None = None,
    ) -> Table:
        """Run every applicable step, reporting progress after each one."""
        steps = self.build_steps(config)
        for done, step in enumerate(steps, start=1):
            table = step.apply(table)
            Log.debug(
                f"Step {step.name} produced {table.row_count} rows x {table.column_count} columns"
            )
            if on_progress is not None:
                on_progress(progress_percent(done, len(steps)))
        return table
