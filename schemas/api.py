"""
Pydantic schemas for API request/response models
"""

from pydantic import BaseModel, Field, model_validator
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
from schemas.events import RawEvent


# ============================================================================
# Ingestion Schemas
# ============================================================================

class ExportRequest(BaseModel):
    """Chunk of events handed over by the ingestion pipeline"""
    events: List[RawEvent] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "events": [
                    {
                        "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
                        "event": "$pageview",
                        "properties": {"$ip": "127.0.0.1", "$current_url": "https://example.com"},
                        "distinct_id": "did1",
                        "team_id": 1,
                        "timestamp": "2022-08-18T15:42:32.597Z"
                    }
                ]
            }
        }


class ExportResponse(BaseModel):
    accepted: int
    ignored: int
    rejected: int
    errors: List[Dict[str, Any]] = Field(default_factory=list)


# ============================================================================
# Health Check Schemas
# ============================================================================

class BufferInfo(BaseModel):
    """Current accumulation state of the batch buffer"""
    buffered_events: int
    buffered_bytes: int
    byte_limit: int
    time_window_seconds: float
    flushes_in_flight: int


class HealthCheckResponse(BaseModel):
    """Health check response model"""
    status: str = Field("healthy", description="Overall exporter status: healthy, degraded, unhealthy")
    timestamp: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    exporter_ready: bool
    scheduler_running: Optional[bool] = None
    table_name: str
    buffer: BufferInfo

    @model_validator(mode="after")
    def determine_status(self):
        """Determine overall health status"""
        if not self.exporter_ready:
            self.status = "unhealthy"
        elif self.scheduler_running is False:
            self.status = "degraded"
        else:
            self.status = "healthy"
        return self


# ============================================================================
# Stats Schemas
# ============================================================================

class DeliveryStatsResponse(BaseModel):
    """Delivery counters since process start"""
    table_name: str
    batches_delivered: int = 0
    events_delivered: int = 0
    retries_scheduled: int = 0
    batches_abandoned: int = 0
    events_abandoned: int = 0
    duplicates_ignored: int = 0
    buffered_events: int = 0
