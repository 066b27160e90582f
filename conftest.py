import pytest

from taletree.storage import MemoryStore, SessionStore
from tests.helpers import StubNarrator


@pytest.fixture
def kv() -> MemoryStore:
    return MemoryStore()


@pytest.fixture
def store(kv) -> SessionStore:
    return SessionStore(kv)


@pytest.fixture
def narrator() -> StubNarrator:
    return StubNarrator()
