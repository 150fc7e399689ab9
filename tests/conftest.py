"""
Shared test fixtures for cloudstack-cli tests.

This module provides common fixtures used across the unit tests:
- A fake control plane preloaded with a sample catalog
- Resolver and orchestrator instances wired to it
- Sample deployment options
"""

import pytest

from cloudstack_cli.orchestrator import JobOrchestrator
from cloudstack_cli.orchestrator_config import OrchestratorConfig
from cloudstack_cli.resolver import IdentifierResolver
from tests.mocks.cloudstack_mock import FakeCloudStack, sample_catalog

# ============================================================================
# CONTROL PLANE FIXTURES
# ============================================================================


@pytest.fixture
def fake_cloud():
    """Fake control plane with one of every catalog entity type."""
    return FakeCloudStack(sample_catalog())


@pytest.fixture
def resolver(fake_cloud):
    """Resolver with the default (strict) ambiguity policy."""
    return IdentifierResolver(fake_cloud)


@pytest.fixture
def fast_config():
    """Orchestrator settings without delays between polls."""
    return OrchestratorConfig(concurrency=10, poll_interval=0, poll_max_retries=3)


@pytest.fixture
def orchestrator(fake_cloud, fast_config):
    """Orchestrator wired to the fake control plane."""
    return JobOrchestrator(fake_cloud, config=fast_config)


class FakeClock:
    """Manual clock: time only moves when the orchestrator sleeps."""

    def __init__(self, step: float = 1.0):
        self.now = 0.0
        self.step = step
        self.sleeps: list[float] = []

    def __call__(self) -> float:
        return self.now

    def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)
        self.now += max(seconds, self.step)


@pytest.fixture
def fake_clock():
    return FakeClock()


# ============================================================================
# OPTION FIXTURES
# ============================================================================


@pytest.fixture
def deployment_options():
    """Template-based deployment in Zone-A with one named network."""
    return {
        "zone": "Zone-A",
        "offering": "small",
        "template": "ubuntu-20",
        "networks": ["net-1"],
    }
