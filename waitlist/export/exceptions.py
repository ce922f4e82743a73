"""
Export Error Types

Errors raised by the export subsystem. Single exports propagate these to the
caller; batch exports record them on the failing dataset's progress entry.
"""


class ExportError(Exception):
    """Base class for export failures."""
    pass


class ConfigurationError(ExportError, ValueError):
    """Raised when an export is requested in a format that is not supported."""

    def __init__(self, format_name: str):
        self.format_name = format_name
        super().__init__(f"Unsupported export format: {format_name}")


# Name used by callers that think of this as a format problem
UnsupportedFormatError = ConfigurationError


class InvalidRecordError(ExportError, TypeError):
    """Raised when a dataset contains something other than field mappings."""
    pass


class ScheduleError(ExportError):
    """Raised for unknown schedule ids and invalid schedule definitions."""
    pass
