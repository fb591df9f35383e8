"""
Shared fixtures: a gateway container wired to a fake provider, a temporary
SQLite database and a controllable clock.
"""
import pytest
from fastapi.testclient import TestClient

from config.settings import Settings
from gateway.container import build_container
from gateway.main import create_app
from tests.factories import FakeClock, FakeProvider


def make_settings(tmp_path, **overrides) -> Settings:
    values = dict(
        durable_store_url=f"sqlite:///{tmp_path}/gateway.db",
        redis_url=None,
        sweep_interval_seconds=0,
        sync_pause_seconds=0,
        upstream_max_retries=1,
    )
    values.update(overrides)
    return Settings(_env_file=None, **values)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def settings(tmp_path):
    return make_settings(tmp_path)


@pytest.fixture
def container(settings, provider, clock):
    container = build_container(settings, provider=provider, clock=clock)
    yield container
    if provider.gate is not None:
        provider.gate.set()
    container.shutdown()


@pytest.fixture
def service(container):
    return container.service


@pytest.fixture
def client(container):
    return TestClient(create_app(container))
