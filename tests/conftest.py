"""
Pytest configuration and shared fixtures.

Every test gets an in-memory store, a controllable clock and its own
temporary data, work and output directories.
"""
from datetime import datetime, timedelta, timezone

import pytest

from setupkit.config import ConfigModel, Settings
from setupkit.config.defaults import get_sample_config
from setupkit.storage import MemoryStore
from setupkit.wizard import SetupOrchestrator


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    return FakeClock(datetime(2024, 3, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def sample_config():
    """A complete docker-mode configuration that passes validation."""
    return ConfigModel.model_validate(get_sample_config())


@pytest.fixture
def work_dir(tmp_path):
    return tmp_path / "work"


@pytest.fixture
def output_dir(tmp_path):
    return tmp_path / "output"


@pytest.fixture
def settings(tmp_path, work_dir, output_dir):
    return Settings(
        data_dir=tmp_path / "data",
        output_dir=output_dir,
        work_dir=work_dir,
        health_poll_interval=0.01,
        health_timeout=2.0,
        stream_interval=0.01,
    )


@pytest.fixture
def orchestrator(store, settings, clock):
    return SetupOrchestrator(store, settings=settings, clock=clock)
