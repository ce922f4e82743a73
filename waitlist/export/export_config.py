"""
Export Options and Styling

Option objects shared by every export format handler, plus the styling
configuration consumed by the spreadsheet and document handlers.
"""

from typing import Dict, List, Optional, Any, Union
from datetime import datetime, date
from dataclasses import dataclass, field, replace
from enum import Enum

from .exceptions import ConfigurationError


class ExportFormat(Enum):
    """Supported export formats."""
    CSV = "csv"
    XLSX = "xlsx"
    PDF = "pdf"
    JSON = "json"

    @classmethod
    def parse(cls, value: Union[str, "ExportFormat"]) -> "ExportFormat":
        """Resolve a format name, raising ConfigurationError for unknown ones."""
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ConfigurationError(str(value)) from None


@dataclass(frozen=True)
class DateRange:
    """Inclusive timestamp range used to narrow records by creation date."""

    start: Union[datetime, date, str]
    end: Union[datetime, date, str]

    def to_dict(self) -> Dict[str, str]:
        return {'start': _isoformat(self.start), 'end': _isoformat(self.end)}


@dataclass
class ExportOptions:
    """Options for a single export call."""

    # Kept as given; resolved by the dispatcher so bad values fail loudly there
    format: Union[ExportFormat, str] = ExportFormat.CSV
    filename: str = "export"
    include_headers: bool = True
    selected_fields: Optional[List[str]] = None
    date_range: Optional[DateRange] = None

    def with_filename(self, filename: str) -> "ExportOptions":
        """Copy of these options with a different base filename."""
        return replace(self, filename=filename)

    @property
    def format_name(self) -> str:
        if isinstance(self.format, ExportFormat):
            return self.format.value
        return str(self.format)

    def to_dict(self) -> Dict[str, Any]:
        return {
            'format': self.format_name,
            'filename': self.filename,
            'include_headers': self.include_headers,
            'selected_fields': list(self.selected_fields) if self.selected_fields is not None else None,
            'date_range': self.date_range.to_dict() if self.date_range else None,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExportOptions":
        date_range = data.get('date_range')
        if isinstance(date_range, dict):
            date_range = DateRange(start=date_range['start'], end=date_range['end'])
        return cls(
            format=data.get('format', ExportFormat.CSV.value),
            filename=data.get('filename') or "export",
            include_headers=data.get('include_headers', True),
            selected_fields=data.get('selected_fields'),
            date_range=date_range,
        )


@dataclass
class ExportStyle:
    """
    Colors, fonts and layout for styled export formats.

    Colors are six-digit RGB hex strings without a leading '#'.
    """

    # Brand
    primary_color: str = "23B245"
    header_font_color: str = "FFFFFF"

    # Spreadsheet
    sheet_name: str = "Export"
    header_border_color: str = "000000"
    body_border_color: str = "E5E7EB"
    band_colors: List[str] = field(default_factory=lambda: ["FFFFFF", "F8F9FA"])
    max_column_width: int = 50
    column_padding: int = 2
    header_row_height: float = 25
    data_row_height: float = 20

    # Document
    title: str = "Data Export"
    page_size: str = "A4"
    title_font_size: int = 16
    subtitle_font_size: int = 10
    table_font_size: int = 8
    cell_padding_mm: float = 2
    alternate_row_color: str = "F5F5F5"

    @classmethod
    def from_settings(cls, app_settings: Any) -> "ExportStyle":
        """Build a style from application settings."""
        return cls(
            primary_color=app_settings.brand_primary_color.lstrip('#').upper(),
            page_size=app_settings.pdf_page_size,
        )

    @staticmethod
    def css_color(hex_color: str) -> str:
        return f"#{hex_color.lstrip('#')}"


def _isoformat(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    return str(value)
