"""
Unit test specific fixtures.

Each test gets a private Prometheus registry so metric names never collide
between tests.
"""

import pytest
from prometheus_client import CollectorRegistry

from certreloader.metrics import ReloadMetrics


@pytest.fixture
def registry() -> CollectorRegistry:
    return CollectorRegistry()


@pytest.fixture
def metrics(registry: CollectorRegistry) -> ReloadMetrics:
    return ReloadMetrics(registry=registry)
