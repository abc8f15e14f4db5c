import pytest

from fakes import FakeConnection, FakePool, FakeState


@pytest.fixture
def state():
    """Empty in-memory mirror tables."""
    return FakeState()


@pytest.fixture
def conn(state):
    return FakeConnection(state)


@pytest.fixture
def db_pool(state):
    return FakePool(state)
