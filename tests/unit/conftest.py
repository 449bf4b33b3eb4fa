import pytest

from fakes import FakeBleakClient


@pytest.fixture
def fake_client():
    return FakeBleakClient()
