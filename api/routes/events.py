"""
Event ingestion endpoints
"""

from fastapi import APIRouter, Depends, Request, status
from api.dependencies import get_exporter
from ingestion.exporter import EventExporter
from schemas.api import ExportRequest, ExportResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Events"])


@router.post("/events", response_model=ExportResponse, status_code=status.HTTP_202_ACCEPTED)
async def export_events(
    payload: ExportRequest,
    request: Request,
    exporter: EventExporter = Depends(get_exporter)
):
    """
    Accept a chunk of events for export.

    Events are buffered, not written synchronously: a 202 means the
    events were queued, not that they reached the warehouse.
    """
    request_id = getattr(request.state, "request_id", "-")
    logger.info(f"[{request_id}] POST /events ({len(payload.events)} events)")

    result = await exporter.export_events(payload.events)

    return ExportResponse(
        accepted=result.accepted,
        ignored=result.ignored,
        rejected=result.rejected,
        errors=result.errors
    )


@router.post("/flush", status_code=status.HTTP_204_NO_CONTENT)
async def flush_buffer(exporter: EventExporter = Depends(get_exporter)):
    """Force delivery of everything currently buffered"""
    await exporter.flush()
