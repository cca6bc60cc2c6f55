"""
Transform ingested events into the fixed warehouse row shape
"""

from typing import Dict, Any, Optional, Tuple
from datetime import datetime, timezone
import json
import logging

from schemas.events import NormalizedRow, RawEvent, TimestampValue
from core.exceptions import MissingTimestampError

logger = logging.getLogger(__name__)

AUTOCAPTURE_EVENT = "$autocapture"
ELEMENTS_PROPERTY = "$elements"
IP_PROPERTY = "$ip"

# Epoch values above this are taken to be milliseconds
_EPOCH_MILLIS_THRESHOLD = 10 ** 11


def serialize(value: Any) -> str:
    """Compact JSON text, matching what the warehouse JSON functions expect"""
    return json.dumps(value, separators=(",", ":"), default=str, ensure_ascii=False)


def format_timestamp(moment: datetime) -> str:
    """UTC ISO-8601 with millisecond precision, e.g. 2022-08-18T15:42:32.597Z"""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    moment = moment.astimezone(timezone.utc)
    return moment.strftime("%Y-%m-%dT%H:%M:%S") + f".{moment.microsecond // 1000:03d}Z"


def parse_timestamp(value: TimestampValue) -> Optional[datetime]:
    """Parse ISO strings, datetimes and epoch seconds/millis; None if unparseable"""
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = value / 1000 if abs(value) >= _EPOCH_MILLIS_THRESHOLD else value
        try:
            return datetime.fromtimestamp(seconds, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            return None
    return None


class EventNormalizer:
    """
    Normalize ingested events into warehouse rows.

    Handles:
    - Choosing the event time from the candidate fields
    - Moving autocapture elements out of properties
    - Serializing structured fields with empty defaults
    """

    def normalize(self, event: RawEvent) -> NormalizedRow:
        """
        Normalize one event.

        Returns:
            Immutable NormalizedRow

        Raises:
            MissingTimestampError: If none of the time fields holds a usable value
        """
        properties: Dict[str, Any] = dict(event.properties or {})
        ip = properties.get(IP_PROPERTY) or event.ip

        elements: Any = []
        # only move prop to elements for the autocapture action
        if event.event == AUTOCAPTURE_EVENT and ELEMENTS_PROPERTY in properties:
            elements = properties.pop(ELEMENTS_PROPERTY)

        return NormalizedRow(
            uuid=event.uuid,
            event=event.event,
            properties=serialize(properties),
            elements=serialize(elements if elements is not None else []),
            set=serialize(event.set or {}),
            set_once=serialize(event.set_once or {}),
            distinct_id=event.distinct_id,
            team_id=event.team_id,
            ip=str(ip) if ip is not None else None,
            site_url=event.site_url or "",
            timestamp=self._resolve_timestamp(event, properties),
        )

    def _resolve_timestamp(self, event: RawEvent, properties: Dict[str, Any]) -> str:
        """First present candidate wins; a present but unparseable value is an error"""
        candidates: Tuple[Tuple[str, Any], ...] = (
            ("timestamp", event.timestamp),
            ("properties.timestamp", properties.get("timestamp")),
            ("now", event.now),
            ("sent_at", event.sent_at),
        )

        for field_name, value in candidates:
            if value is None or value == "":
                continue
            parsed = parse_timestamp(value)
            if parsed is None:
                raise MissingTimestampError(
                    f"Unparseable {field_name} on event",
                    context={
                        "uuid": event.uuid,
                        "event": event.event,
                        "field": field_name,
                        "value": str(value)[:100],
                    }
                )
            return format_timestamp(parsed)

        raise MissingTimestampError(
            "Event has no timestamp",
            context={
                "uuid": event.uuid,
                "event": event.event,
                "candidates": [name for name, _ in candidates],
            }
        )
