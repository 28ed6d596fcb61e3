"""Shared fixtures for the metrics_cloudwatch tests."""

import threading

import pytest
from prometheus_client import CollectorRegistry


class FakeCloudWatch:
    """Stand-in for a boto3 CloudWatch client that records every call."""

    def __init__(self):
        self.calls = []
        self.closed = 0
        self._lock = threading.Lock()

    def put_metric_data(self, **kwargs):
        with self._lock:
            self.calls.append(kwargs)
        return {}

    def close(self):
        self.closed += 1

    @property
    def datums(self):
        return [d for call in self.calls for d in call["MetricData"]]


@pytest.fixture
def fake_client():
    return FakeCloudWatch()


@pytest.fixture
def client_factory(fake_client):
    regions = []

    def factory(region):
        regions.append(region)
        return fake_client

    factory.regions = regions
    return factory


@pytest.fixture
def registry():
    return CollectorRegistry()
