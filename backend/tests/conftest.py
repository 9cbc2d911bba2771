import pytest

from .helpers import FakeStore


@pytest.fixture
def store():
    return FakeStore()
