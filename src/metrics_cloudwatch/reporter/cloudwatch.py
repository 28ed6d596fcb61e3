"""CloudWatch reporter configurator: config block in, running reporter out."""

from __future__ import annotations

import contextlib
import logging
import threading
import time
from typing import Any, Callable, Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from prometheus_client import CollectorRegistry

from ..config import ExportConfig, TimeUnit
from ..errors import AlreadyStartedError, SinkUnavailableError
from ..filters import ALL, MetricFilter
from .base import ReporterConfigurator
from .cloudwatch_reporter import CloudWatchReporter
from .profile import ReportingProfile

logger = logging.getLogger(__name__)

NAMESPACE = f"{__name__}.CloudWatchAdapter"

ClientFactory = Callable[[str], Any]


def default_client_factory(region: str) -> Any:
    """Create a CloudWatch client using the standard AWS credential chain."""
    return boto3.client("cloudwatch", region_name=region)


def _close_client(client: Any) -> None:
    close = getattr(client, "close", None)
    if callable(close):
        close()


class CloudWatchAdapter(ReporterConfigurator):
    """Starts and stops a :class:`CloudWatchReporter` described by an :class:`ExportConfig`.

    The reporter always uses :meth:`ReportingProfile.default`. One reporter
    may run per adapter; :meth:`close` stops it and releases the client so
    the adapter can be started again.

    Adapters compare equal when their configs do, which ignores tags.
    """

    type = "cloudwatch"

    def __init__(
        self,
        config: ExportConfig,
        *,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._config = config
        self._client_factory = client_factory or default_client_factory
        self._clock = clock
        self._lock = threading.Lock()
        self._client: Any = None
        self._reporter: CloudWatchReporter | None = None

    @classmethod
    def configure(
        cls,
        config: ExportConfig | Mapping[str, Any],
        *,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.time,
    ) -> CloudWatchAdapter:
        """Validate *config* (a dataclass or a raw reporter block) and build an adapter."""
        if not isinstance(config, ExportConfig):
            config = ExportConfig.from_dict(config)
        return cls(config, client_factory=client_factory, clock=clock)

    @property
    def config(self) -> ExportConfig:
        return self._config

    @property
    def rate_unit(self) -> TimeUnit:
        assert self._config.rate_unit is not None
        return self._config.rate_unit

    @property
    def duration_unit(self) -> TimeUnit:
        assert self._config.duration_unit is not None
        return self._config.duration_unit

    @property
    def reporter(self) -> CloudWatchReporter | None:
        return self._reporter

    @property
    def is_running(self) -> bool:
        return self._reporter is not None

    def _build_reporter(
        self, name: str, registry: CollectorRegistry, metric_filter: MetricFilter, client: Any
    ) -> CloudWatchReporter:
        return CloudWatchReporter(
            registry,
            client,
            NAMESPACE,
            metric_filter=metric_filter,
            rate_unit=self.rate_unit,
            duration_unit=self.duration_unit,
            profile=ReportingProfile.default(),
            global_dimensions=self._config.dimensions(),
            clock=self._clock,
            name=f"cloudwatch-{name}",
        )

    def preview(
        self, registry: CollectorRegistry, metric_filter: MetricFilter = ALL
    ) -> list[dict[str, Any]]:
        """Datums one tick would send for *registry*, without contacting CloudWatch."""
        return self._build_reporter("preview", registry, metric_filter, None).build_datums()

    def start(self, name: str, registry: CollectorRegistry, metric_filter: MetricFilter = ALL) -> None:
        with self._lock:
            if self._reporter is not None:
                raise AlreadyStartedError(f"CloudWatch reporter {name!r} is already started")

            try:
                client = self._client_factory(self._config.region)
            except (BotoCoreError, ClientError) as exc:
                raise SinkUnavailableError(
                    f"Cannot create CloudWatch client for {self._config.region}: {exc}"
                ) from exc

            with contextlib.ExitStack() as cleanup:
                cleanup.callback(_close_client, client)
                reporter = self._build_reporter(name, registry, metric_filter, client)
                reporter.start(self._config.interval_ms)
                cleanup.pop_all()

            self._client = client
            self._reporter = reporter
        logger.info(
            "CloudWatch reporter %s started → %s (interval=%dms)",
            name,
            self._config.region,
            self._config.interval_ms,
        )

    def close(self) -> None:
        with self._lock:
            reporter, client = self._reporter, self._client
            self._reporter = None
            self._client = None
        if reporter is None:
            return
        try:
            # wait out an in-flight tick so nothing is sent on a closed client
            reporter.stop(timeout=None)
        finally:
            _close_client(client)
        logger.info("CloudWatch reporter %s closed", reporter.name)

    def __eq__(self, other: object) -> bool:
        if self is other:
            return True
        if not isinstance(other, CloudWatchAdapter):
            return NotImplemented
        return self._config == other._config

    def __hash__(self) -> int:
        return hash(self._config)

    def __repr__(self) -> str:
        return (
            f"CloudWatchAdapter(region={self._config.region!r}, "
            f"interval_ms={self._config.interval_ms}, running={self.is_running})"
        )
