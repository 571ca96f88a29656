import pytest

from soakload.config import WorkloadConfig

from fakes import FakeGateway


@pytest.fixture
def config():
    return WorkloadConfig(chain_id=0, max_fee=500)


@pytest.fixture
def gateway():
    return FakeGateway()
