"""
Delivery statistics endpoint
"""
from fastapi import APIRouter, Depends
from api.dependencies import get_exporter
from ingestion.exporter import EventExporter
from schemas.api import DeliveryStatsResponse
import uuid
import logging

logger = logging.getLogger(__name__)
router = APIRouter(tags=["Statistics"])


@router.get("/stats", response_model=DeliveryStatsResponse)
async def get_stats(exporter: EventExporter = Depends(get_exporter)):
    """
    Get delivery counters: delivered, retried and abandoned batches.
    """
    request_id = f"req_{uuid.uuid4().hex[:12]}"
    logger.info(f"[{request_id}] GET /stats")

    return DeliveryStatsResponse(
        table_name=exporter.table_name,
        buffered_events=exporter.buffer.pending_count,
        **exporter.coordinator.stats()
    )
