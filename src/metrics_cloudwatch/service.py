"""Metrics service that starts every configured reporter against one registry."""

from __future__ import annotations

import logging
from typing import Any

from prometheus_client import CollectorRegistry

from .config import TelemetryConfig
from .filters import IncludesExcludesFilter
from .reporter import ReporterConfigurator, create_reporter

logger = logging.getLogger(__name__)


class MetricsService:
    """Owns the reporters described by a :class:`TelemetryConfig`.

    Instantiate it with a config and the registry to export, then call
    :meth:`start` / :meth:`stop`. Keyword arguments are passed through to
    each reporter's ``configure`` (for example ``client_factory``).
    """

    def __init__(self, config: TelemetryConfig, registry: CollectorRegistry, **reporter_kwargs: Any) -> None:
        self._config = config
        self._registry = registry
        self._reporter_kwargs = reporter_kwargs
        self._reporters: list[tuple[str, ReporterConfigurator]] = []

    @property
    def reporters(self) -> list[ReporterConfigurator]:
        return [reporter for _, reporter in self._reporters]

    def start(self) -> None:
        """Configure and start every reporter; on failure, close those already started."""
        if self._reporters:
            return
        try:
            for entry in self._config.metrics:
                reporter = create_reporter(entry.reporter, **self._reporter_kwargs)
                metric_filter = IncludesExcludesFilter(entry.includes, entry.excludes)
                reporter.start(entry.name, self._registry, metric_filter)
                self._reporters.append((entry.name, reporter))
        except Exception:
            logger.error("Starting reporters failed, closing %d already running", len(self._reporters))
            self.stop()
            raise
        logger.info("MetricsService started (%d reporters)", len(self._reporters))

    def stop(self) -> None:
        """Close all reporters in reverse start order."""
        reporters, self._reporters = self._reporters, []
        for name, reporter in reversed(reporters):
            try:
                reporter.close()
            except Exception:
                logger.exception("Closing reporter %s failed", name)
        logger.info("MetricsService stopped")

    def __enter__(self) -> MetricsService:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.stop()
