"""Base interface for process resource collectors."""

from __future__ import annotations

import abc
from typing import Iterable

from prometheus_client.metrics_core import Metric


class BaseCollector(abc.ABC):
    """Abstract base class for collectors registered into a prometheus_client registry.

    The registry calls :meth:`collect` every time it is snapshotted, so
    values are read at export time.
    """

    @property
    @abc.abstractmethod
    def name(self) -> str:
        """Collector name used in logs and the CLI."""

    @abc.abstractmethod
    def collect(self) -> Iterable[Metric]:
        """Return the current metric families."""

    def describe(self) -> Iterable[Metric]:
        # Keeps the registry from calling collect() at registration time.
        return []
