"""
MOVRR Waitlist - Admin FastAPI Application
Entry point for the waitlist admin reporting and export service
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import Response
from pydantic import BaseModel
import uvicorn

from config.settings import settings
from waitlist import __version__
from waitlist.export import (
    ConfigurationError, DateRange, ExportFormat, ExportOptions, ExportStyle,
    batch_export, export_data, format_field_name, get_available_fields,
    get_available_formats, save_artifact
)
from waitlist.stats import calculate_waitlist_stats

logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title=settings.app_name,
    description="Admin reporting and data export for the MOVRR waitlist",
    version=__version__,
    debug=settings.debug
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Configure appropriately for production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


class DateRangeModel(BaseModel):
    start: str
    end: str


class ExportOptionsModel(BaseModel):
    format: str
    filename: Optional[str] = None
    include_headers: bool = True
    selected_fields: Optional[List[str]] = None
    date_range: Optional[DateRangeModel] = None

    def to_options(self) -> ExportOptions:
        date_range = None
        if self.date_range is not None:
            date_range = DateRange(start=self.date_range.start, end=self.date_range.end)
        return ExportOptions(
            format=self.format,
            filename=self.filename or settings.default_export_filename,
            include_headers=self.include_headers,
            selected_fields=self.selected_fields,
            date_range=date_range,
        )


class ExportRequest(BaseModel):
    records: List[Dict[str, Any]]
    options: ExportOptionsModel


class DatasetModel(BaseModel):
    name: str
    records: List[Dict[str, Any]]


class BatchExportRequest(BaseModel):
    datasets: List[DatasetModel]
    options: ExportOptionsModel


class FieldsRequest(BaseModel):
    records: List[Dict[str, Any]]


class StatsRequest(BaseModel):
    entries: List[Dict[str, Any]]


def require_admin(x_admin_token: Optional[str] = Header(default=None)) -> None:
    """Reject callers without the admin token (when one is configured)."""
    if settings.admin_token and x_admin_token != settings.admin_token:
        raise HTTPException(status_code=403, detail="Admin access required")


def _export_style() -> ExportStyle:
    return ExportStyle.from_settings(settings)


@app.get("/")
async def root():
    """Root endpoint"""
    return {
        "message": f"Welcome to {settings.app_name}",
        "version": __version__,
        "status": "running"
    }


@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring"""
    return {
        "status": "healthy",
        "app": settings.app_name,
        "version": __version__
    }


@app.get("/admin/export/formats", dependencies=[Depends(require_admin)])
def list_formats():
    return {"formats": get_available_formats()}


@app.post("/admin/export/fields", dependencies=[Depends(require_admin)])
def list_fields(request: FieldsRequest):
    """Exportable fields of a record set, with display labels."""
    fields = get_available_fields(request.records)
    return {
        "fields": [{"name": name, "label": format_field_name(name)} for name in fields],
        "total_records": len(request.records),
    }


@app.post("/admin/export", dependencies=[Depends(require_admin)])
def export_records(request: ExportRequest):
    """Export one record set and return it as a file download."""
    try:
        artifact = export_data(request.records, request.options.to_options(), style=_export_style())
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except ImportError as e:
        raise HTTPException(status_code=501, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if artifact is None:
        return Response(status_code=204)

    return Response(
        content=artifact.content,
        media_type=artifact.mime_type,
        headers={"Content-Disposition": f'attachment; filename="{artifact.filename}"'},
    )


@app.post("/admin/export/batch", dependencies=[Depends(require_admin)])
def export_batch(request: BatchExportRequest):
    """Export several datasets into the export directory, one after another."""
    options = request.options.to_options()
    try:
        ExportFormat.parse(options.format)
    except ConfigurationError as e:
        raise HTTPException(status_code=400, detail=str(e))

    output_dir = Path(settings.export_directory)
    result = batch_export(
        [(dataset.name, dataset.records) for dataset in request.datasets],
        options,
        sink=lambda artifact: save_artifact(artifact, output_dir),
        style=_export_style(),
    )
    return result.to_dict()


@app.post("/admin/stats", dependencies=[Depends(require_admin)])
def waitlist_stats(request: StatsRequest):
    """Dashboard statistics for the supplied waitlist entries."""
    return calculate_waitlist_stats(request.entries).to_dict()


if __name__ == "__main__":
    uvicorn.run(
        "main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug
    )
