import pytest

from autoprovision.logger import set_verbose
from tests.fakes import NOW, FakePortalClient


@pytest.fixture
def client():
    return FakePortalClient()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture(autouse=True)
def quiet_logging():
    set_verbose(False)
    yield
    set_verbose(False)
