from typing import Any, List, Optional

import pytest

from vendor_relay.config import Settings
from vendor_relay.database import InMemoryJobStore
from vendor_relay.errors import VendorError
from vendor_relay.job_queue import InMemoryJobQueue
from vendor_relay.models import VendorOutcome, VendorType
from vendor_relay.rate_limiter import InMemoryRateLimiter
from vendor_relay.vendor_client import VendorAdapter

RAW_VENDOR_RESPONSE = {
    "id": "abc123xyz",
    "data": {"userId": 1},
    "timestamp": "2024-01-01T00:00:00+00:00",
    "source": "immediate-reply",
    "raw_data": {
        "user_email": "user@example.com",
        "phone_number": "+1234567890",
        "address": "  123 Main St, City, State 12345  ",
        "preferences": ["pref1", "pref2"],
    },
}


class FakeAdapter(VendorAdapter):
    """Adapter that records calls and returns a canned outcome"""

    def __init__(self, vendor: VendorType, outcome: Optional[VendorOutcome] = None, error: Exception = None):
        super().__init__("http://vendor.test")
        self.vendor = vendor
        self.outcome = outcome
        self.error = error
        self.calls: List[tuple] = []

    async def call(self, request_id: str, payload: Any) -> VendorOutcome:
        self.calls.append((request_id, payload))
        if self.error is not None:
            raise self.error
        return self.outcome


def make_settings(**overrides) -> Settings:
    settings = Settings()
    settings.STORAGE_BACKEND = "memory"
    settings.POLL_INTERVAL = 0.01
    settings.RATE_LIMIT_MAX_WAIT = 0.05
    settings.RATE_LIMIT_MAX_REQUESTS = 10
    settings.RATE_LIMIT_WINDOW = 60
    settings.RUN_DISPATCHER_IN_API = False
    settings.IMMEDIATE_VENDOR_URL = "http://immediate.test"
    settings.DELAYED_VENDOR_URL = "http://delayed.test"
    for key, value in overrides.items():
        setattr(settings, key, value)
    return settings


@pytest.fixture
def memory_settings():
    return make_settings()


@pytest.fixture
def store():
    return InMemoryJobStore()


@pytest.fixture
def queue():
    return InMemoryJobQueue()


@pytest.fixture
def rate_limiter():
    return InMemoryRateLimiter(max_requests=10, window=60)


@pytest.fixture
def immediate_adapter():
    return FakeAdapter(VendorType.IMMEDIATE, VendorOutcome(final=True, body=dict(RAW_VENDOR_RESPONSE)))


@pytest.fixture
def delayed_adapter():
    ack = {"job_id": "vendor-ref-1", "status": "accepted"}
    return FakeAdapter(VendorType.DELAYED, VendorOutcome(final=False, body=ack, reference="vendor-ref-1"))


@pytest.fixture
def failing_adapter():
    return FakeAdapter(VendorType.IMMEDIATE, error=VendorError("immediate-reply vendor call failed: boom"))
