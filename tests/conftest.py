"""Shared fixtures for home-reactor tests."""

import pytest

from home_reactor.core.config import RuntimeConfig
from home_reactor.core.scheduler import JobScheduler


@pytest.fixture
def scheduler():
    """Create an active job scheduler with small pools."""
    sched = JobScheduler()
    sched.activate(
        RuntimeConfig(
            pool_min_size=2,
            pool_max_size=8,
            pool_keep_alive_ms=200,
            background_pool_size=2,
        )
    )
    yield sched
    sched.deactivate()
