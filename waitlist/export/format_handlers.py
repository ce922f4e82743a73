"""
Format-Specific Export Handlers

Export handlers for CSV, Excel, PDF and JSON. Each handler turns an already
filtered and projected record set into a single in-memory artifact; writing
that artifact somewhere (HTTP response, file, browser download) is left to
the caller.
"""

import json
import logging
import math
from abc import ABC, abstractmethod
from decimal import Decimal
from typing import Dict, List, Optional, Any, Union, Mapping, Sequence, Type
from datetime import datetime, date, timezone
from pathlib import Path
from dataclasses import dataclass
from io import BytesIO

import pandas as pd
from jinja2 import Environment
from openpyxl import Workbook
from openpyxl.cell.cell import ILLEGAL_CHARACTERS_RE
from openpyxl.styles import Alignment, Border, Font, PatternFill, Side
from openpyxl.utils import get_column_letter

try:
    from weasyprint import HTML
    WEASYPRINT_AVAILABLE = True
except (ImportError, OSError):
    # OSError: the package is installed but Pango/Cairo are missing
    WEASYPRINT_AVAILABLE = False
    HTML = None

from .export_config import ExportFormat, ExportOptions, ExportStyle

logger = logging.getLogger(__name__)


@dataclass
class ExportArtifact:
    """A finished export file held in memory."""

    content: bytes
    filename: str
    mime_type: str

    @property
    def size(self) -> int:
        return len(self.content)

    def save(self, directory: Union[str, Path]) -> Path:
        """Write the artifact into a directory, creating it if needed."""
        return save_artifact(self, directory)


def save_artifact(artifact: ExportArtifact, directory: Union[str, Path]) -> Path:
    """
    Write an artifact to disk.

    Args:
        artifact: Artifact to write
        directory: Target folder (created when missing)

    Returns:
        Path of the written file
    """
    folder = Path(directory)
    folder.mkdir(parents=True, exist_ok=True)
    # Only the final path component; dataset names must not escape the folder
    file_path = folder / Path(artifact.filename).name
    file_path.write_bytes(artifact.content)
    logger.info(f"Artifact saved: {file_path} ({artifact.size} bytes)")
    return file_path


class BaseExporter(ABC):
    """Base class for all export format handlers."""

    file_extension: str = ""
    mime_type: str = "application/octet-stream"

    def __init__(self, style: Optional[ExportStyle] = None):
        """
        Initialize base exporter.

        Args:
            style: Colors and layout for styled formats
        """
        self.style = style or ExportStyle()

    def export(self, records: Sequence[Mapping[str, Any]], options: ExportOptions,
               fields: Sequence[str]) -> Optional[ExportArtifact]:
        """
        Build the artifact for a record set.

        Args:
            records: Filtered, projected records
            options: Export options (filename, headers)
            fields: Column order

        Returns:
            The artifact, or None when there are no records
        """
        if not records:
            logger.warning(f"No records to export, skipping {options.filename}{self.file_extension}")
            return None

        content = self._render(records, options, list(fields))
        artifact = ExportArtifact(
            content=content,
            filename=f"{options.filename}{self.file_extension}",
            mime_type=self.mime_type,
        )
        logger.info(f"{self.__class__.__name__} produced {artifact.filename}: "
                    f"{len(records)} records, {artifact.size} bytes")
        return artifact

    @abstractmethod
    def _render(self, records: Sequence[Mapping[str, Any]], options: ExportOptions,
                fields: List[str]) -> bytes:
        """Encode the records into file content."""
        pass

    def get_file_extension(self) -> str:
        return self.file_extension

    @staticmethod
    def _cell_text(value: Any) -> str:
        """Text form of a cell value; missing values become empty strings."""
        if value is None:
            return ""
        if isinstance(value, float) and value != value:  # NaN
            return ""
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        return str(value)


class CSVExporter(BaseExporter):
    """CSV format exporter (comma separated, minimal quoting)."""

    file_extension = ".csv"
    mime_type = "text/csv"

    def __init__(self, delimiter: str = ',', **kwargs):
        """
        Initialize CSV exporter.

        Args:
            delimiter: CSV field delimiter
        """
        super().__init__(**kwargs)
        self.delimiter = delimiter

    def _render(self, records, options, fields) -> bytes:
        rows = [[self._cell_text(record.get(name)) for name in fields] for record in records]
        df = pd.DataFrame(rows, columns=fields, dtype=object)

        csv_content = df.to_csv(
            sep=self.delimiter,
            index=False,
            header=options.include_headers,
            lineterminator='\n',
        )
        # Rows are joined by newlines; no terminator after the last one
        if csv_content.endswith('\n'):
            csv_content = csv_content[:-1]

        if len(fields) == 1:
            # The csv writer quotes a lone empty field; keep such rows blank
            csv_content = '\n'.join('' if line == '""' else line for line in csv_content.split('\n'))

        return csv_content.encode('utf-8')


class ExcelExporter(BaseExporter):
    """Excel format exporter with a styled single sheet."""

    file_extension = ".xlsx"
    mime_type = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"

    def _render(self, records, options, fields) -> bytes:
        style = self.style
        wb = Workbook()
        ws = wb.active
        ws.title = style.sheet_name

        row_idx = 1
        if options.include_headers:
            self._write_header_row(ws, fields)
            row_idx += 1

        body_side = Side(style='thin', color=style.body_border_color)
        body_border = Border(left=body_side, right=body_side, top=body_side, bottom=body_side)
        body_alignment = Alignment(horizontal='left', vertical='center')

        for position, record in enumerate(records):
            band = style.band_colors[position % len(style.band_colors)]
            fill = PatternFill(fill_type='solid', start_color=band, end_color=band)
            for col_idx, name in enumerate(fields, start=1):
                cell = ws.cell(row=row_idx, column=col_idx, value=self._excel_value(record.get(name)))
                if cell.data_type == "f":
                    # Values starting with "=" are data, not formulas
                    cell.data_type = "s"
                cell.fill = fill
                cell.border = body_border
                cell.alignment = body_alignment
            ws.row_dimensions[row_idx].height = style.data_row_height
            row_idx += 1

        # Auto-size columns
        for col_idx, width in enumerate(self.column_widths(records, fields), start=1):
            ws.column_dimensions[get_column_letter(col_idx)].width = width

        buf = BytesIO()
        wb.save(buf)
        return buf.getvalue()

    def _write_header_row(self, ws, fields: List[str]) -> None:
        style = self.style
        side = Side(style='thin', color=style.header_border_color)
        border = Border(left=side, right=side, top=side, bottom=side)
        font = Font(bold=True, color=style.header_font_color)
        fill = PatternFill(fill_type='solid', start_color=style.primary_color, end_color=style.primary_color)
        alignment = Alignment(horizontal='center', vertical='center')

        for col_idx, name in enumerate(fields, start=1):
            cell = ws.cell(row=1, column=col_idx, value=ILLEGAL_CHARACTERS_RE.sub("", name))
            cell.font = font
            cell.fill = fill
            cell.border = border
            cell.alignment = alignment
        ws.row_dimensions[1].height = style.header_row_height

    def column_widths(self, records: Sequence[Mapping[str, Any]], fields: Sequence[str]) -> List[int]:
        """Width per column: longest of header and values plus padding, capped."""
        widths = []
        for name in fields:
            longest = max([len(name)] + [len(self._cell_text(record.get(name))) for record in records])
            widths.append(min(longest + self.style.column_padding, self.style.max_column_width))
        return widths

    @classmethod
    def _excel_value(cls, value: Any) -> Any:
        if isinstance(value, str):
            # Control characters are not allowed in worksheet XML
            return ILLEGAL_CHARACTERS_RE.sub("", value)
        if value is None or isinstance(value, (bool, int, float)):
            return value
        if isinstance(value, datetime):
            # Excel has no timezone support
            if value.tzinfo is not None:
                return value.astimezone(timezone.utc).replace(tzinfo=None)
            return value
        if isinstance(value, date):
            return value
        if isinstance(value, Decimal):
            return float(value)
        return ILLEGAL_CHARACTERS_RE.sub("", cls._cell_text(value))


PDF_TEMPLATE = """<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <title>{{ title }}</title>
    <style>
        @page { size: {{ page_size }}; margin: 14mm; }
        body { font-family: Helvetica, Arial, sans-serif; color: #000000; }
        h1 { font-size: {{ title_font_size }}pt; margin: 0 0 4mm 0; }
        .generated { font-size: {{ subtitle_font_size }}pt; margin: 0 0 6mm 0; }
        table { width: 100%; border-collapse: collapse; font-size: {{ table_font_size }}pt; }
        thead { display: table-header-group; }
        tr { page-break-inside: avoid; }
        th, td { padding: {{ cell_padding }}mm; text-align: left; overflow-wrap: anywhere; }
        th { background-color: {{ header_fill }}; color: {{ header_color }}; font-weight: bold; }
        tr.odd td { background-color: {{ alternate_fill }}; }
        tr.even td { background-color: #FFFFFF; }
    </style>
</head>
<body>
    <h1>{{ title }}</h1>
    <p class="generated">Generated on: {{ generated_at }}</p>
    <table>
        {% if headers %}
        <thead>
            <tr>{% for header in headers %}<th>{{ header }}</th>{% endfor %}</tr>
        </thead>
        {% endif %}
        <tbody>
            {% for row in rows %}
            <tr class="{{ loop.cycle('even', 'odd') }}">{% for cell in row %}<td>{{ cell }}</td>{% endfor %}</tr>
            {% endfor %}
        </tbody>
    </table>
</body>
</html>
"""


class PDFExporter(BaseExporter):
    """PDF exporter rendering an HTML table through WeasyPrint."""

    file_extension = ".pdf"
    mime_type = "application/pdf"

    def __init__(self, **kwargs):
        super().__init__(**kwargs)
        self._template = Environment(autoescape=True).from_string(PDF_TEMPLATE)

    def render_html(self, records: Sequence[Mapping[str, Any]], options: ExportOptions,
                    fields: Sequence[str], generated_at: Optional[datetime] = None) -> str:
        """Render the HTML document the PDF is printed from."""
        style = self.style
        generated_at = generated_at or datetime.now()

        return self._template.render(
            title=style.title,
            generated_at=generated_at.strftime('%Y-%m-%d %H:%M:%S'),
            headers=list(fields) if options.include_headers else None,
            rows=[[self._cell_text(record.get(name)) for name in fields] for record in records],
            page_size=style.page_size,
            title_font_size=style.title_font_size,
            subtitle_font_size=style.subtitle_font_size,
            table_font_size=style.table_font_size,
            cell_padding=style.cell_padding_mm,
            header_fill=style.css_color(style.primary_color),
            header_color=style.css_color(style.header_font_color),
            alternate_fill=style.css_color(style.alternate_row_color),
        )

    def _render(self, records, options, fields) -> bytes:
        if not WEASYPRINT_AVAILABLE:
            raise ImportError("WeasyPrint (with Pango) is required for PDF export")
        html_content = self.render_html(records, options, fields)
        return HTML(string=html_content).write_pdf()


class JSONExporter(BaseExporter):
    """JSON exporter wrapping the records in an envelope with metadata."""

    file_extension = ".json"
    mime_type = "application/json"

    def __init__(self, indent: Optional[int] = 2, **kwargs):
        """
        Initialize JSON exporter.

        Args:
            indent: JSON indentation level
        """
        super().__init__(**kwargs)
        self.indent = indent

    def build_envelope(self, records: Sequence[Mapping[str, Any]]) -> Dict[str, Any]:
        exported_at = datetime.now(timezone.utc).isoformat(timespec='milliseconds')
        return {
            'exportedAt': exported_at.replace('+00:00', 'Z'),
            'totalRecords': len(records),
            'data': [{key: self._json_value(value) for key, value in record.items()} for record in records],
        }

    def _render(self, records, options, fields) -> bytes:
        # Field selection was applied upstream; include_headers does not apply
        json_content = json.dumps(
            self.build_envelope(records),
            indent=self.indent,
            ensure_ascii=False,
            default=self._json_serializer,
        )
        return json_content.encode('utf-8')

    @staticmethod
    def _json_value(value: Any) -> Any:
        # NaN and infinities have no JSON form; export them as null
        if isinstance(value, float) and not math.isfinite(value):
            return None
        return value

    @staticmethod
    def _json_serializer(obj: Any) -> Any:
        if isinstance(obj, (datetime, date)):
            return obj.isoformat()
        if isinstance(obj, Decimal):
            return float(obj)
        if isinstance(obj, (set, frozenset)):
            return list(obj)

        raise TypeError(f"Object of type {type(obj).__name__} is not JSON serializable")


# Registry of available exporters
EXPORTER_REGISTRY: Dict[ExportFormat, Type[BaseExporter]] = {
    ExportFormat.CSV: CSVExporter,
    ExportFormat.XLSX: ExcelExporter,
    ExportFormat.PDF: PDFExporter,
    ExportFormat.JSON: JSONExporter,
}


def get_exporter(format_name: Union[str, ExportFormat], **kwargs) -> BaseExporter:
    """
    Get exporter instance for specified format.

    Args:
        format_name: Export format name
        **kwargs: Exporter configuration

    Returns:
        Exporter instance

    Raises:
        ConfigurationError: If the format is not supported
    """
    export_format = ExportFormat.parse(format_name)
    return EXPORTER_REGISTRY[export_format](**kwargs)


def get_available_formats() -> List[str]:
    """Get list of available export formats."""
    return [export_format.value for export_format in EXPORTER_REGISTRY]
