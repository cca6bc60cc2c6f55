"""
Unit tests for event normalization
"""

import json
import pytest
from datetime import datetime, timezone
from ingestion.transformers.normalizer import EventNormalizer, format_timestamp, parse_timestamp
from core.exceptions import MissingTimestampError, NormalizationError
from schemas.events import RawEvent


class TestEventNormalizer:
    """Test event normalization functionality"""

    def test_normalize_plain_event(self):
        """Converts an ingested event into a warehouse row"""
        event = RawEvent.model_validate({
            "event": "test",
            "properties": {"foo": "bar"},
            "distinct_id": "did1",
            "team_id": 1,
            "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
            "ip": "127.0.0.1",
            "timestamp": "2022-08-18T15:42:32.597Z",
        })

        row = EventNormalizer().normalize(event)

        assert row.model_dump() == {
            "distinct_id": "did1",
            "elements": "[]",
            "event": "test",
            "ip": "127.0.0.1",
            "properties": '{"foo":"bar"}',
            "set": "{}",
            "set_once": "{}",
            "site_url": "",
            "team_id": 1,
            "timestamp": "2022-08-18T15:42:32.597Z",
            "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
        }

    def test_non_autocapture_keeps_properties(self):
        """Elements stay empty and properties keep every key, $elements included"""
        properties = {"b": [1, 2], "a": {"nested": True}, "$elements": ["kept"]}
        event = RawEvent(event="$pageview", properties=properties, timestamp="2022-08-18T15:42:32.597Z")

        row = EventNormalizer().normalize(event)

        assert json.loads(row.elements) == []
        assert json.loads(row.properties) == properties

    def test_autocapture_moves_elements(self):
        elements = [{"tag_name": "a", "text": "Sign up"}, {"tag_name": "div"}]
        event = RawEvent(
            event="$autocapture",
            properties={"$elements": elements, "a": 1},
            timestamp="2022-08-18T15:42:32.597Z",
        )

        row = EventNormalizer().normalize(event)

        assert row.properties == '{"a":1}'
        assert json.loads(row.elements) == elements

    def test_autocapture_does_not_mutate_input(self):
        properties = {"$elements": [{"tag_name": "a"}], "a": 1}
        event = RawEvent(event="$autocapture", properties=properties, timestamp="2022-08-18T15:42:32.597Z")

        EventNormalizer().normalize(event)

        assert "$elements" in event.properties

    def test_ip_property_wins_over_event_ip(self):
        event = RawEvent(
            event="test",
            properties={"$ip": "10.0.0.1"},
            ip="127.0.0.1",
            timestamp="2022-08-18T15:42:32.597Z",
        )

        assert EventNormalizer().normalize(event).ip == "10.0.0.1"

    def test_set_and_set_once_serialized(self):
        event = RawEvent.model_validate({
            "event": "$identify",
            "$set": {"email": "user@example.com"},
            "$set_once": {"first_seen": "2022-01-01"},
            "timestamp": "2022-08-18T15:42:32.597Z",
        })

        row = EventNormalizer().normalize(event)

        assert json.loads(row.set) == {"email": "user@example.com"}
        assert json.loads(row.set_once) == {"first_seen": "2022-01-01"}

    def test_missing_fields_default_to_empty(self):
        row = EventNormalizer().normalize(RawEvent(event="bare", timestamp="2022-08-18T15:42:32.597Z"))

        assert row.properties == "{}"
        assert row.elements == "[]"
        assert row.set == "{}"
        assert row.set_once == "{}"
        assert row.site_url == ""
        assert row.ip is None

    @pytest.mark.parametrize(
        "fields, expected",
        [
            ({"timestamp": "2022-08-18T15:42:32.597Z", "now": "2021-01-01T00:00:00Z"}, "2022-08-18T15:42:32.597Z"),
            ({"properties": {"timestamp": "2022-08-18T10:00:00+02:00"}, "now": "2021-01-01T00:00:00Z"}, "2022-08-18T08:00:00.000Z"),
            ({"now": "2022-08-18T15:42:32.500Z", "sent_at": "2021-01-01T00:00:00Z"}, "2022-08-18T15:42:32.500Z"),
            ({"sent_at": "2022-08-18T15:42:32Z"}, "2022-08-18T15:42:32.000Z"),
        ],
    )
    def test_timestamp_fallback_order(self, fields, expected):
        event = RawEvent.model_validate({"event": "test", **fields})

        assert EventNormalizer().normalize(event).timestamp == expected

    def test_missing_timestamp_raises(self):
        event = RawEvent(uuid="u1", event="test")

        with pytest.raises(MissingTimestampError) as exc_info:
            EventNormalizer().normalize(event)

        assert isinstance(exc_info.value, NormalizationError)
        assert exc_info.value.context["uuid"] == "u1"

    def test_unparseable_timestamp_raises(self):
        event = RawEvent(event="test", timestamp="not a date", now="2022-08-18T15:42:32Z")

        with pytest.raises(MissingTimestampError):
            EventNormalizer().normalize(event)


class TestTimestampHelpers:

    def test_naive_datetime_is_utc(self):
        assert format_timestamp(datetime(2022, 8, 18, 15, 42, 32, 597000)) == "2022-08-18T15:42:32.597Z"

    def test_epoch_seconds_and_millis(self):
        expected = datetime(2022, 8, 18, 15, 42, 32, tzinfo=timezone.utc)

        assert parse_timestamp(1660837352) == expected
        assert parse_timestamp(1660837352000) == expected

    def test_garbage_is_none(self):
        assert parse_timestamp("yesterday") is None
        assert parse_timestamp("") is None
