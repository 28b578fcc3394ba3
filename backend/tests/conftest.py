import random

import pytest

from services import firestore_service
from services.memory_store import InMemorySessionStore
from services.room_service import ActionContext
from tests.stubs import LOCATIONS, WORDS, FakeClock, RecordingSleep


@pytest.fixture()
def store():
    return InMemorySessionStore()


@pytest.fixture()
def fake_clock():
    return FakeClock()


@pytest.fixture()
def no_sleep():
    return RecordingSleep()


@pytest.fixture()
def rng():
    return random.Random(1234)


@pytest.fixture()
def make_ctx(fake_clock, rng):
    def _make(**overrides) -> ActionContext:
        kwargs = dict(
            now=fake_clock.now(),
            rng=rng,
            words=lambda: WORDS,
            locations=lambda: LOCATIONS,
        )
        kwargs.update(overrides)
        return ActionContext(**kwargs)

    return _make


@pytest.fixture()
def client(store, make_ctx, monkeypatch):
    pytest.importorskip("httpx", reason="httpx is required for the FastAPI test client")
    from fastapi.testclient import TestClient

    from main import app
    from routers.game_router import get_action_context

    monkeypatch.setattr(firestore_service, "_session_store", store)
    app.dependency_overrides[get_action_context] = lambda: make_ctx()
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()
