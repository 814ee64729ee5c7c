from datetime import datetime, timezone

import pytest

from tracking.engine import LiveEngine
from tracking.store import InMemoryStore
from .support import Clock, Recorder


@pytest.fixture
def recorder():
    return Recorder()


@pytest.fixture
def clock():
    return Clock(datetime(2025, 9, 21, 8, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def make_engine(recorder, clock):
    def make(store, **config):
        overrides = {"STORE_BACKOFF_SECONDS": 0, "STORE_TIMEOUT_SECONDS": 1.0}
        overrides.update(config)
        return LiveEngine(store=store, deliver=recorder, clock=clock, config=overrides)
    return make


@pytest.fixture
def engine(make_engine, store):
    return make_engine(store)
