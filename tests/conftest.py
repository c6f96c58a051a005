import os
import sys
from datetime import datetime, timezone

import pytest


PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
BACKEND_DIR = os.path.join(PROJECT_ROOT, "backend")

if BACKEND_DIR not in sys.path:
    sys.path.insert(0, BACKEND_DIR)


from alerts import AlertStore, EventStore, reset_alert_engine  # noqa: E402
from core import FixedClock, sequential_ids  # noqa: E402
from db import MemoryKVStore, reset_store  # noqa: E402


T0 = datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def clock():
    return FixedClock(T0)


@pytest.fixture
def kv(clock):
    return MemoryKVStore(clock=clock)


@pytest.fixture
def alert_store(kv, clock):
    return AlertStore(kv, clock)


@pytest.fixture
def event_store(kv, clock):
    return EventStore(kv, clock)


@pytest.fixture
def new_id():
    return sequential_ids("evt")


@pytest.fixture(autouse=True)
def _reset_singletons():
    reset_store()
    reset_alert_engine()
    yield
    reset_store()
    reset_alert_engine()
