import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from analytics_pipeline.config import AnalyticsConfig
from analytics_pipeline.sender import SendResult
from analytics_pipeline.serializer import deserialize_batch


class RecordingSender:
    """Sender double that records every payload and can be scripted to
    return specific status codes or raise."""

    def __init__(self, responses=None):
        self.payloads: list[bytes] = []
        self._responses = list(responses or [])
        self._lock = threading.Lock()
        self._sent = threading.Condition(self._lock)
        self.closed = False

    def send(self, payload: bytes) -> SendResult:
        with self._lock:
            self.payloads.append(payload)
            self._sent.notify_all()
            response = self._responses.pop(0) if self._responses else 200
        if isinstance(response, Exception):
            raise response
        return SendResult(status_code=response, body="")

    def close(self):
        self.closed = True

    @property
    def batches(self) -> list[list[dict]]:
        with self._lock:
            return [deserialize_batch(p)["batch"] for p in self.payloads]

    @property
    def call_count(self) -> int:
        with self._lock:
            return len(self.payloads)

    def wait_for_calls(self, count: int, timeout: float = 5.0) -> bool:
        with self._lock:
            return self._sent.wait_for(lambda: len(self.payloads) >= count, timeout)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def make_sender():
    return RecordingSender


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=1)
    yield pool
    pool.shutdown(wait=True)


@pytest.fixture
def make_config():
    def _make(**overrides) -> AnalyticsConfig:
        defaults = {
            "write_key": "test-write-key",
            "flush_queue_size": 10,
            "flush_interval": 30.0,
        }
        defaults.update(overrides)
        return AnalyticsConfig(**defaults)

    return _make
