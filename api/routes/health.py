"""
Health check endpoint with exporter and buffer status
"""

from fastapi import APIRouter, Depends
from api.dependencies import get_exporter
from ingestion.exporter import EventExporter
from schemas.api import BufferInfo, HealthCheckResponse
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Health"])


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(exporter: EventExporter = Depends(get_exporter)):
    """
    Health check endpoint.

    Returns:
    - Whether the destination table was bootstrapped
    - Scheduler state
    - Current buffer accumulation
    """
    status = exporter.status()

    return HealthCheckResponse(
        exporter_ready=status["ready"],
        scheduler_running=status["scheduler_running"],
        table_name=status["table_name"],
        buffer=BufferInfo(
            buffered_events=status["buffered_events"],
            buffered_bytes=status["buffered_bytes"],
            byte_limit=status["byte_limit"],
            time_window_seconds=status["time_window_seconds"],
            flushes_in_flight=status["flushes_in_flight"]
        )
    )
