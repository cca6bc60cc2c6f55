"""
Pydantic schemas for ingested events, warehouse rows and delivery batches
"""

from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple, Union
import uuid

from pydantic import BaseModel, ConfigDict, Field, field_validator

TimestampValue = Union[str, int, float, datetime]

# Order is a contract shared by the table definition, the INSERT column
# list, the placeholder numbering and the flattened values.
WAREHOUSE_COLUMNS: Tuple[str, ...] = (
    "uuid",
    "event",
    "properties",
    "elements",
    "set",
    "set_once",
    "distinct_id",
    "team_id",
    "ip",
    "site_url",
    "timestamp",
)


class RawEvent(BaseModel):
    """
    Event as handed over by the ingestion pipeline.

    Only the fields the export needs are declared; anything else the
    pipeline attaches is ignored.
    """

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    uuid: Optional[str] = None
    event: str = ""
    properties: Optional[Dict[str, Any]] = None
    set: Optional[Dict[str, Any]] = Field(None, alias="$set")
    set_once: Optional[Dict[str, Any]] = Field(None, alias="$set_once")
    distinct_id: Optional[str] = None
    team_id: Optional[int] = None
    ip: Optional[str] = None
    site_url: Optional[str] = None

    # Candidate event times, first present wins
    timestamp: Optional[TimestampValue] = None
    now: Optional[TimestampValue] = None
    sent_at: Optional[TimestampValue] = None

    @field_validator("uuid", "distinct_id", mode="before")
    @classmethod
    def coerce_identifier(cls, v):
        if v is None:
            return v
        return str(v)


class NormalizedRow(BaseModel):
    """
    One warehouse row. Structured fields are already serialized JSON text.
    """

    model_config = ConfigDict(frozen=True)

    uuid: Optional[str] = None
    event: str = ""
    properties: str = "{}"
    elements: str = "[]"
    set: str = "{}"
    set_once: str = "{}"
    distinct_id: Optional[str] = None
    team_id: Optional[int] = None
    ip: Optional[str] = None
    site_url: str = ""
    timestamp: str

    def as_values(self) -> Tuple[Any, ...]:
        """Column values in WAREHOUSE_COLUMNS order"""
        return tuple(getattr(self, column) for column in WAREHOUSE_COLUMNS)

    def byte_size(self) -> int:
        """Approximate footprint of the row inside an INSERT statement"""
        return sum(
            len(str(value).encode("utf-8"))
            for value in self.as_values()
            if value is not None
        )


def new_batch_id() -> str:
    return uuid.uuid4().hex[:12]


class Batch(BaseModel):
    """
    Rows flushed together plus retry bookkeeping.

    A batch is never mutated: a retry is a new Batch with the same
    rows and batch_id and the retry counter incremented.
    """

    model_config = ConfigDict(frozen=True)

    rows: Tuple[NormalizedRow, ...]
    batch_id: str = Field(default_factory=new_batch_id)
    retries: int = Field(0, ge=0)

    @classmethod
    def from_rows(cls, rows: List[NormalizedRow]) -> "Batch":
        return cls(rows=tuple(rows))

    @property
    def size(self) -> int:
        return len(self.rows)

    def next_attempt(self) -> "Batch":
        return self.model_copy(update={"retries": self.retries + 1})
