"""
Export Manager - Single and Batch Export Orchestration

Routes a record set to the handler for the requested format and runs batch
jobs that export several named datasets one after another, tracking the
state of every dataset as it goes.
"""

import logging
from typing import Dict, List, Optional, Any, Union, Callable, Mapping, Sequence, Tuple
from datetime import datetime, timezone
from dataclasses import dataclass, field
from enum import Enum

from .exceptions import InvalidRecordError
from .export_config import ExportFormat, ExportOptions, ExportStyle
from .fields import get_available_fields, project_records
from .filters import filter_by_date_range
from .format_handlers import ExportArtifact, get_exporter

logger = logging.getLogger(__name__)

ArtifactSink = Callable[[ExportArtifact], Any]


def export_data(records: Sequence[Mapping[str, Any]], options: ExportOptions,
                sink: Optional[ArtifactSink] = None,
                style: Optional[ExportStyle] = None) -> Optional[ExportArtifact]:
    """
    Export a record set in the format named by the options.

    Applies the date range, narrows every record to the selected fields (or
    the fields of the first record) and hands the result to the format
    handler.

    Args:
        records: Records as fetched by the caller
        options: Export options
        sink: Optional callable receiving the finished artifact
        style: Styling for spreadsheet and document output

    Returns:
        The artifact, or None when no records survive filtering

    Raises:
        ConfigurationError: If the format is not supported
        InvalidRecordError: If a record is not a mapping
    """
    # Resolve first so a bad format fails before any work is done
    export_format = ExportFormat.parse(options.format)
    _validate_records(records)

    if not options.filename:
        options = options.with_filename("export")

    filtered = filter_by_date_range(records, options.date_range)

    if options.selected_fields is not None:
        fields = list(options.selected_fields)
    else:
        fields = get_available_fields(filtered)

    projected = project_records(filtered, fields)

    exporter = get_exporter(export_format, style=style)
    artifact = exporter.export(projected, options, fields)

    if artifact is not None and sink is not None:
        sink(artifact)

    return artifact


def _validate_records(records: Sequence[Any]) -> None:
    if isinstance(records, (str, bytes)) or isinstance(records, Mapping):
        raise InvalidRecordError(f"Expected a sequence of records, got {type(records).__name__}")
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise InvalidRecordError(
                f"Record {index} is {type(record).__name__}, expected a field mapping"
            )


class ExportStatus(Enum):
    """Per-dataset export status."""
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    ERROR = "error"
    CANCELLED = "cancelled"


TERMINAL_STATUSES = (ExportStatus.COMPLETED, ExportStatus.ERROR, ExportStatus.CANCELLED)

_ALLOWED_TRANSITIONS = {
    ExportStatus.PENDING: (ExportStatus.PROCESSING, ExportStatus.CANCELLED),
    ExportStatus.PROCESSING: (ExportStatus.COMPLETED, ExportStatus.ERROR),
}


@dataclass
class ExportDataset:
    """A named record set inside a batch job."""

    name: str
    records: Sequence[Mapping[str, Any]]


@dataclass
class ExportProgress:
    """Progress of one dataset in a batch job."""

    dataset_name: str
    status: ExportStatus = ExportStatus.PENDING
    progress: float = 0.0  # 0 to 100

    # Results
    filename: Optional[str] = None
    error: Optional[str] = None

    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def mark_processing(self) -> None:
        self._move_to(ExportStatus.PROCESSING)
        self.progress = 0.0
        self.started_at = datetime.now()

    def mark_completed(self, filename: Optional[str]) -> None:
        self._move_to(ExportStatus.COMPLETED)
        self.progress = 100.0
        self.filename = filename
        self.completed_at = datetime.now()

    def mark_error(self, message: str) -> None:
        self._move_to(ExportStatus.ERROR)
        self.error = message
        self.completed_at = datetime.now()

    def mark_cancelled(self) -> None:
        self._move_to(ExportStatus.CANCELLED)
        self.completed_at = datetime.now()

    def _move_to(self, status: ExportStatus) -> None:
        if status not in _ALLOWED_TRANSITIONS.get(self.status, ()):
            raise ValueError(
                f"Dataset '{self.dataset_name}' cannot move from {self.status.value} to {status.value}"
            )
        self.status = status

    def to_dict(self) -> Dict[str, Any]:
        return {
            'dataset_name': self.dataset_name,
            'status': self.status.value,
            'progress': self.progress,
            'filename': self.filename,
            'error': self.error,
            'started_at': self.started_at.isoformat() if self.started_at else None,
            'completed_at': self.completed_at.isoformat() if self.completed_at else None,
        }


@dataclass
class BatchExportResult:
    """Outcome of a batch export, one progress entry per dataset in job order."""

    progress: List[ExportProgress] = field(default_factory=list)
    cancelled: bool = False

    @property
    def filenames(self) -> List[str]:
        return [p.filename for p in self.progress
                if p.status == ExportStatus.COMPLETED and p.filename]

    @property
    def errors(self) -> Dict[str, str]:
        return {p.dataset_name: p.error or "" for p in self.progress if p.status == ExportStatus.ERROR}

    @property
    def completed_count(self) -> int:
        return len([p for p in self.progress if p.status == ExportStatus.COMPLETED])

    @property
    def failed_count(self) -> int:
        return len([p for p in self.progress if p.status == ExportStatus.ERROR])

    @property
    def finished_count(self) -> int:
        """Datasets that reached completed or error."""
        return self.completed_count + self.failed_count

    @property
    def overall_progress(self) -> float:
        if not self.progress:
            return 0.0
        return sum(p.progress for p in self.progress) / len(self.progress)

    @property
    def is_done(self) -> bool:
        return all(p.is_terminal for p in self.progress)

    def get(self, dataset_name: str) -> Optional[ExportProgress]:
        for entry in self.progress:
            if entry.dataset_name == dataset_name:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            'datasets': [p.to_dict() for p in self.progress],
            'filenames': self.filenames,
            'errors': self.errors,
            'completed': self.completed_count,
            'failed': self.failed_count,
            'overall_progress': self.overall_progress,
            'cancelled': self.cancelled,
        }


DatasetLike = Union[ExportDataset, Tuple[str, Sequence[Mapping[str, Any]]], Mapping[str, Any]]


class BatchExporter:
    """
    Sequential multi-dataset exporter.

    Datasets are exported strictly one at a time in the order given. A
    failing dataset is marked as an error and the batch moves on to the
    next one. Cancellation is only honored between datasets.
    """

    def __init__(self, style: Optional[ExportStyle] = None,
                 progress_callback: Optional[Callable[[ExportProgress], None]] = None):
        """
        Initialize batch exporter.

        Args:
            style: Styling shared by every dataset's export
            progress_callback: Called after every progress change
        """
        self.style = style
        self.progress_callback = progress_callback
        self._cancel_requested = False

    def cancel(self) -> None:
        """Stop the current (or next) run at the next dataset boundary."""
        self._cancel_requested = True
        logger.info("Batch export cancellation requested")

    @property
    def cancel_requested(self) -> bool:
        return self._cancel_requested

    def run(self, datasets: Sequence[DatasetLike], options: ExportOptions,
            sink: Optional[ArtifactSink] = None) -> BatchExportResult:
        """
        Export every dataset with the shared options.

        Each dataset's filename is ``{dataset name}_{today}``; any filename
        already on the options is ignored.

        Args:
            datasets: Named record sets, exported in this order
            options: Shared options
            sink: Optional callable receiving every artifact

        Returns:
            Per-dataset progress and summary
        """
        jobs = [self._coerce_dataset(d) for d in datasets]
        result = BatchExportResult(progress=[ExportProgress(dataset_name=job.name) for job in jobs])
        today = self._today()

        logger.info(f"Batch export started: {len(jobs)} datasets as {options.format_name}")

        for job, entry in zip(jobs, result.progress):
            if self._cancel_requested:
                self._cancel_remaining(result)
                break

            entry.mark_processing()
            self._notify(entry)

            filename = f"{job.name}_{today}"
            try:
                artifact = export_data(job.records, options.with_filename(filename),
                                       sink=sink, style=self.style)
            except Exception as e:
                entry.mark_error(str(e) or e.__class__.__name__)
                logger.error(f"Dataset export failed: {job.name} - {e}")
            else:
                entry.mark_completed(artifact.filename if artifact else None)
                if artifact is None:
                    logger.warning(f"Dataset {job.name} had no records, no file produced")
            self._notify(entry)

        logger.info(f"Batch export finished: {result.completed_count} completed, "
                    f"{result.failed_count} failed, cancelled={result.cancelled}")
        # A cancel request covers one run only
        self._cancel_requested = False
        return result

    def _cancel_remaining(self, result: BatchExportResult) -> None:
        result.cancelled = True
        for entry in result.progress:
            if entry.status == ExportStatus.PENDING:
                entry.mark_cancelled()
                self._notify(entry)

    def _notify(self, entry: ExportProgress) -> None:
        if self.progress_callback:
            try:
                self.progress_callback(entry)
            except Exception as e:
                logger.warning(f"Progress callback failed: {e}")

    @staticmethod
    def _today() -> str:
        return datetime.now(timezone.utc).date().isoformat()

    @staticmethod
    def _coerce_dataset(dataset: DatasetLike) -> ExportDataset:
        if isinstance(dataset, ExportDataset):
            return dataset
        if isinstance(dataset, Mapping):
            return ExportDataset(name=dataset['name'], records=dataset['records'])
        name, records = dataset
        return ExportDataset(name=name, records=records)


def batch_export(datasets: Sequence[DatasetLike], options: ExportOptions,
                 sink: Optional[ArtifactSink] = None, style: Optional[ExportStyle] = None,
                 progress_callback: Optional[Callable[[ExportProgress], None]] = None) -> BatchExportResult:
    """Run a one-off batch export."""
    exporter = BatchExporter(style=style, progress_callback=progress_callback)
    return exporter.run(datasets, options, sink=sink)
