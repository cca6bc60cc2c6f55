"""
Pydantic schemas for events, warehouse rows and the HTTP API.

Schemas:
    events: RawEvent (input), NormalizedRow (warehouse row), Batch
    api: Request/response models for the FastAPI endpoints

Usage:
    from schemas.events import RawEvent, NormalizedRow, Batch
    from schemas.api import ExportRequest, HealthCheckResponse

Example:
    event = RawEvent.model_validate({
        "event": "$pageview",
        "distinct_id": "did1",
        "timestamp": "2022-08-18T15:42:32.597Z",
    })
"""

__all__ = [
    "RawEvent",
    "NormalizedRow",
    "Batch",
    "ExportRequest",
    "ExportResponse",
    "HealthCheckResponse",
    "DeliveryStatsResponse",
]
