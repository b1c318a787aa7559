import pytest

from fakes import FakeStore, RecordingHooks


@pytest.fixture
def store():
    return FakeStore()


@pytest.fixture
def hooks():
    return RecordingHooks()
