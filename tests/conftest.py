# tests/conftest.py
import pytest

from fakes import FakeSessions, FakeStore


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def sessions():
    return FakeSessions()
