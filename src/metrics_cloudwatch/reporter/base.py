"""Base interface for reporter configurators."""

from __future__ import annotations

import abc

from prometheus_client import CollectorRegistry

from ..filters import ALL, MetricFilter


class ReporterConfigurator(abc.ABC):
    """Abstract base for configurators that bind a registry to a reporter."""

    @abc.abstractmethod
    def start(self, name: str, registry: CollectorRegistry, metric_filter: MetricFilter = ALL) -> None:
        """Build the reporter for *registry* and start its schedule."""

    @abc.abstractmethod
    def close(self) -> None:
        """Stop reporting and release resources."""

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()
