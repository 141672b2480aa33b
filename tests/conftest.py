"""
Shared fixtures: deterministic credentials, settings pointing at a fake host,
and a scripted transport standing in for the API.
"""
import pytest

from finaccess.config import Environment, Settings
from finaccess.core.keys import PrivateKey
from finaccess.core.rest import AccessClient, set_default_client
from finaccess.core.user import Organization, Project

from tests.helpers import FIXED_TIME, NO_WAIT, FakeApi, key_from_exponent


@pytest.fixture
def private_key() -> PrivateKey:
    return key_from_exponent(0x5EED)


@pytest.fixture
def service_key() -> PrivateKey:
    return key_from_exponent(0xC0FFEE)


@pytest.fixture
def project(private_key) -> Project:
    return Project(id="5656565656565656", private_key=private_key, environment=Environment.SANDBOX)


@pytest.fixture
def organization() -> Organization:
    return Organization(id="4545454545454545", private_key=key_from_exponent(0xBEEF), environment="sandbox")


@pytest.fixture
def test_settings() -> Settings:
    settings = Settings()
    settings.base_urls = {
        Environment.SANDBOX: "https://sandbox.api.test/v2",
        Environment.PRODUCTION: "https://api.test/v2",
    }
    settings.page_size = 100
    settings.public_key_limit = 2
    return settings


@pytest.fixture
def api() -> FakeApi:
    return FakeApi()


@pytest.fixture
def make_client(project, test_settings, api):
    def _make(user=None, settings=None, retry=NO_WAIT) -> AccessClient:
        return AccessClient(
            user or project,
            settings or test_settings,
            retry=retry,
            transport=api.transport,
            clock=lambda: FIXED_TIME,
        )

    return _make


@pytest.fixture
def reset_default_client():
    yield
    set_default_client(None)
