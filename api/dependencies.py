"""
Shared FastAPI dependencies
"""

from fastapi import HTTPException, Request
from ingestion.exporter import EventExporter


def get_exporter(request: Request) -> EventExporter:
    """Exporter created at startup for this process"""
    exporter = getattr(request.app.state, "exporter", None)
    if exporter is None:
        raise HTTPException(status_code=503, detail="Exporter is not initialized")
    return exporter
