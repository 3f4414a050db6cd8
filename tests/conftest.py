"""Pytest configuration for all tests."""

import pytest
from prometheus_client import CollectorRegistry

from src.relay.metrics import RelayMetrics


@pytest.fixture
def metrics() -> RelayMetrics:
    """Metrics bound to an isolated registry."""
    return RelayMetrics(registry=CollectorRegistry())
