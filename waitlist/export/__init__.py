"""
Export Tools for the MOVRR Waitlist

Turns in-memory record sets (waitlist signups and similar tables) into
downloadable CSV, Excel, PDF and JSON files, with field selection, date-range
filtering, sequential batch exports and scheduled exports.
"""

from .exceptions import (
    ExportError, ConfigurationError, UnsupportedFormatError, InvalidRecordError, ScheduleError
)
from .export_config import ExportFormat, ExportOptions, ExportStyle, DateRange
from .fields import get_available_fields, project_record, project_records, format_field_name
from .filters import filter_by_date_range, count_in_range, get_record_date, to_timestamp
from .format_handlers import (
    ExportArtifact, BaseExporter, CSVExporter, ExcelExporter, PDFExporter, JSONExporter,
    get_exporter, get_available_formats, save_artifact, WEASYPRINT_AVAILABLE
)
from .export_manager import (
    export_data, batch_export, BatchExporter, BatchExportResult,
    ExportDataset, ExportProgress, ExportStatus
)
from .scheduler import (
    ExportSchedule, ExportScheduleManager, ScheduleType,
    calculate_next_run, describe_schedule, is_overdue, parse_time, default_filename
)

__all__ = [
    'ExportError', 'ConfigurationError', 'UnsupportedFormatError', 'InvalidRecordError', 'ScheduleError',
    'ExportFormat', 'ExportOptions', 'ExportStyle', 'DateRange',
    'get_available_fields', 'project_record', 'project_records', 'format_field_name',
    'filter_by_date_range', 'count_in_range', 'get_record_date', 'to_timestamp',
    'ExportArtifact', 'BaseExporter', 'CSVExporter', 'ExcelExporter', 'PDFExporter', 'JSONExporter',
    'get_exporter', 'get_available_formats', 'save_artifact', 'WEASYPRINT_AVAILABLE',
    'export_data', 'batch_export', 'BatchExporter', 'BatchExportResult',
    'ExportDataset', 'ExportProgress', 'ExportStatus',
    'ExportSchedule', 'ExportScheduleManager', 'ScheduleType',
    'calculate_next_run', 'describe_schedule', 'is_overdue', 'parse_time', 'default_filename'
]
