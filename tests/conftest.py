"""
Pytest configuration and fixtures
"""

import pytest
from typing import Any, Callable, List, Optional, Sequence, Tuple

from core.config import load_settings
from schemas.events import NormalizedRow


class FakeExecutor:
    """Records statements; fails the first ``failures`` calls"""

    def __init__(self, failures: int = 0, error: Optional[Exception] = None):
        self.failures = failures
        self.error = error or RuntimeError("connection reset by peer")
        self.calls: List[Tuple[str, List[Any]]] = []

    async def execute(self, statement: str, values: Sequence[Any] = ()) -> None:
        self.calls.append((statement, list(values)))
        if self.failures > 0:
            self.failures -= 1
            raise self.error


class FakeScheduler:
    """Keeps scheduled jobs instead of running them"""

    def __init__(self):
        self.jobs: List[Tuple[int, Callable[..., Any], tuple, Optional[str]]] = []

    def schedule_after(self, delay_ms, job, *args, job_id=None):
        self.jobs.append((delay_ms, job, args, job_id))

    async def fire_next(self):
        delay_ms, job, args, job_id = self.jobs.pop(0)
        return await job(*args)


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float):
        self.now += seconds


@pytest.fixture
def executor():
    return FakeExecutor()


@pytest.fixture
def make_executor():
    return FakeExecutor


@pytest.fixture
def scheduler():
    return FakeScheduler()


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def settings_env(monkeypatch):
    """Minimal valid environment for Settings"""
    values = {
        "CLUSTER_HOST": "examplecluster.abc123.us-west-2.redshift.amazonaws.com",
        "CLUSTER_PORT": "5439",
        "DB_NAME": "dev",
        "DB_USERNAME": "admin",
        "DB_PASSWORD": "strongpass123",
    }
    for key, value in values.items():
        monkeypatch.setenv(key, value)
    return values


@pytest.fixture
def settings(settings_env):
    return load_settings(_env_file=None)


@pytest.fixture
def make_row():
    """Factory for rows; ``padding`` inflates the properties payload"""

    def _make_row(index: int = 0, padding: int = 0) -> NormalizedRow:
        properties = '{"p":"' + "x" * padding + '"}' if padding else "{}"
        return NormalizedRow(
            uuid=f"uuid-{index}",
            event="test",
            properties=properties,
            elements="[]",
            set="{}",
            set_once="{}",
            distinct_id="did1",
            team_id=1,
            ip="127.0.0.1",
            site_url="",
            timestamp="2022-08-18T15:42:32.597Z",
        )

    return _make_row


@pytest.fixture
def mock_events():
    """Events as they arrive from the ingestion pipeline"""
    return [
        {
            "uuid": "37114ebb-7b13-4301-b849-0d0bd4d5c7e5",
            "event": "$pageview",
            "properties": {"$ip": "10.0.0.1", "$current_url": "https://example.com"},
            "distinct_id": "did1",
            "team_id": 1,
            "ip": "127.0.0.1",
            "timestamp": "2022-08-18T15:42:32.597Z",
        },
        {
            "uuid": "37114ebb-7b13-4301-b859-0d0bd4d5c7e5",
            "event": "$autocapture",
            "properties": {"$elements": [{"tag_name": "button"}], "a": 1},
            "$set": {"email": "user@example.com"},
            "distinct_id": "did2",
            "team_id": 1,
            "ip": "127.0.0.1",
            "timestamp": "2022-08-18T15:43:00.000Z",
        },
        {
            "uuid": "37114ebb-7b13-4301-b869-0d0bd4d5c7e5",
            "event": "$feature_flag_called",
            "properties": {},
            "distinct_id": "did3",
            "team_id": 1,
            "timestamp": "2022-08-18T15:44:00.000Z",
        },
    ]
