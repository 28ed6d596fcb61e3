"""Scheduled reporter that ships a prometheus_client registry to CloudWatch."""

from __future__ import annotations

import logging
import math
import threading
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable

from botocore.exceptions import BotoCoreError, ClientError
from prometheus_client import CollectorRegistry
from prometheus_client.metrics_core import Metric

from ..config import TimeUnit
from ..errors import AlreadyStartedError, ExportTickError
from ..filters import ALL, MetricFilter
from .profile import ReportingProfile
from .snapshot import SeriesSnapshot, group_series, series_key

logger = logging.getLogger(__name__)

DIMENSION_NAME_TYPE = "Type"
DIMENSION_GAUGE = "gauge"
DIMENSION_COUNT = "count"
DIMENSION_SNAPSHOT_SUMMARY = "snapshot-summary"
DIMENSION_SNAPSHOT_MEAN = "snapshot-mean"
DIMENSION_SNAPSHOT_STD_DEV = "snapshot-std-dev"
DIMENSION_RATE_1_MINUTE = "1-min-mean-rate"
DIMENSION_RATE_MEAN = "mean-rate"

# put_metric_data batch size
MAXIMUM_DATUMS_PER_REQUEST = 20
# CloudWatch rejects values outside this magnitude range (except zero).
SMALLEST_SENDABLE_VALUE = 8.515920e-109
LARGEST_SENDABLE_VALUE = 1.174271e108

ONE_MINUTE = 60.0

_DURATION_UNITS = {
    TimeUnit.SECONDS: "Seconds",
    TimeUnit.MILLISECONDS: "Milliseconds",
    TimeUnit.MICROSECONDS: "Microseconds",
}


def clean_metric_value(value: float) -> float:
    """Clamp *value* into the range CloudWatch accepts, keeping its sign."""
    magnitude = abs(value)
    if 0 < magnitude < SMALLEST_SENDABLE_VALUE:
        return math.copysign(SMALLEST_SENDABLE_VALUE, value)
    if magnitude > LARGEST_SENDABLE_VALUE:
        return math.copysign(LARGEST_SENDABLE_VALUE, value)
    return value


def is_timer(metric: Metric) -> bool:
    """Histograms and summaries measured in seconds are treated as timers."""
    return metric.unit == "seconds" or metric.name.endswith("_seconds")


@dataclass
class _MeterState:
    created: float
    last_count: float
    last_time: float
    last_reported: float
    one_minute_rate: float


class CloudWatchReporter:
    """Reports every metric of a registry to CloudWatch on a fixed schedule.

    Each tick snapshots ``registry.collect()``, keeps the families admitted
    by *metric_filter*, turns them into ``MetricDatum`` dicts according to
    *profile* and sends them with ``put_metric_data`` in batches of
    :data:`MAXIMUM_DATUMS_PER_REQUEST`.

    Counters double as meters: besides the count, their one-minute and
    lifetime mean rates are derived from successive snapshots and converted
    to events per *rate_unit*. Histograms and summaries in seconds are
    converted to *duration_unit*.
    """

    def __init__(
        self,
        registry: CollectorRegistry,
        client: Any,
        namespace: str,
        *,
        metric_filter: MetricFilter = ALL,
        rate_unit: TimeUnit = TimeUnit.SECONDS,
        duration_unit: TimeUnit = TimeUnit.MILLISECONDS,
        profile: ReportingProfile | None = None,
        global_dimensions: list[dict[str, str]] | None = None,
        clock: Callable[[], float] = time.time,
        name: str = "cloudwatch-reporter",
    ) -> None:
        self._registry = registry
        self._client = client
        self._namespace = namespace
        self._filter = metric_filter
        self._rate_unit = rate_unit
        self._duration_unit = duration_unit
        self._profile = profile or ReportingProfile()
        self._global_dimensions = list(global_dimensions or [])
        self._clock = clock
        self._name = name
        self._meters: dict[tuple[Any, ...], _MeterState] = {}
        self._thread: threading.Thread | None = None
        self._stop_event = threading.Event()
        self._report_lock = threading.Lock()

    @property
    def name(self) -> str:
        return self._name

    @property
    def namespace(self) -> str:
        return self._namespace

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    # ------------------------------------------------------------------
    # snapshot -> datums
    # ------------------------------------------------------------------

    def build_datums(self) -> list[dict[str, Any]]:
        """Snapshot the registry once and return the datums to send."""
        now = self._clock()
        timestamp = datetime.fromtimestamp(now, tz=timezone.utc)
        datums: list[dict[str, Any]] = []
        seen: set[tuple[Any, ...]] = set()
        for metric in self._registry.collect():
            if not self._filter(metric.name, metric):
                continue
            for series in group_series(metric):
                if metric.type == "counter":
                    seen.add((metric.name, series_key(series.labels)))
                    datums.extend(self._counter_datums(metric, series, now, timestamp))
                elif metric.type in ("gauge", "unknown"):
                    datums.extend(self._gauge_datums(metric, series, timestamp))
                elif metric.type in ("histogram", "summary"):
                    datums.extend(self._histogram_datums(metric, series, timestamp))
                else:
                    logger.debug("Skipping %s of unsupported type %s", metric.name, metric.type)
        # forget series that were removed from the registry
        for key in self._meters.keys() - seen:
            del self._meters[key]
        return datums

    def _datum(
        self,
        metric_name: str,
        type_value: str,
        unit: str,
        labels: dict[str, str],
        timestamp: datetime,
        value: float | None = None,
        statistic_values: dict[str, float] | None = None,
    ) -> dict[str, Any]:
        dimensions = [{"Name": DIMENSION_NAME_TYPE, "Value": type_value}]
        dimensions.extend({"Name": k, "Value": v} for k, v in sorted(labels.items()))
        dimensions.extend(self._global_dimensions)
        datum: dict[str, Any] = {
            "MetricName": metric_name,
            "Dimensions": dimensions,
            "Timestamp": timestamp,
            "Unit": unit,
        }
        if statistic_values is not None:
            datum["StatisticValues"] = statistic_values
        else:
            datum["Value"] = clean_metric_value(value or 0.0)
        if self._profile.high_resolution:
            datum["StorageResolution"] = 1
        return datum

    def _gauge_datums(self, metric, series, timestamp):
        if series.value is None or not math.isfinite(series.value):
            return []
        return [self._datum(metric.name, DIMENSION_GAUGE, "None", series.labels, timestamp,
                            value=series.value)]

    def _counter_datums(
        self, metric: Metric, series: SeriesSnapshot, now: float, timestamp: datetime
    ) -> list[dict[str, Any]]:
        if series.value is None or not math.isfinite(series.value):
            return []
        count = series.value
        state = self._update_meter(metric.name, series, now)
        datums = []

        reported = count if self._profile.raw_count_value else count - state.last_reported
        state.last_reported = count
        datums.append(self._datum(metric.name, DIMENSION_COUNT, "Count", series.labels,
                                  timestamp, value=reported))

        per = f" [per-{self._rate_unit.singular}]"
        if self._profile.one_minute_mean_rate:
            datums.append(self._datum(
                metric.name, DIMENSION_RATE_1_MINUTE + per, self._profile.meter_unit,
                series.labels, timestamp, value=self._convert_rate(state.one_minute_rate),
            ))
        if self._profile.mean_rate:
            elapsed = now - state.created
            mean_rate = count / elapsed if elapsed > 0 else 0.0
            datums.append(self._datum(
                metric.name, DIMENSION_RATE_MEAN + per, self._profile.meter_unit,
                series.labels, timestamp, value=self._convert_rate(mean_rate),
            ))
        return datums

    def _update_meter(self, name: str, series: SeriesSnapshot, now: float) -> _MeterState:
        key = (name, series_key(series.labels))
        count = series.value or 0.0
        state = self._meters.get(key)
        if state is None or count < state.last_count:
            created = series.created if series.created is not None else now
            elapsed = now - created
            seed = count / elapsed if elapsed > 0 else 0.0
            state = _MeterState(created=created, last_count=count, last_time=now,
                                last_reported=0.0, one_minute_rate=seed)
            self._meters[key] = state
            return state

        dt = now - state.last_time
        if dt > 0:
            instant = (count - state.last_count) / dt
            alpha = 1.0 - math.exp(-dt / ONE_MINUTE)
            state.one_minute_rate += alpha * (instant - state.one_minute_rate)
        state.last_count = count
        state.last_time = now
        return state

    def _histogram_datums(
        self, metric: Metric, series: SeriesSnapshot, timestamp: datetime
    ) -> list[dict[str, Any]]:
        snapshot = series.histogram()
        if snapshot is None:
            return []
        timer = is_timer(metric)
        if timer:
            suffix = f" [in-{self._duration_unit.singular}]"
            unit = _DURATION_UNITS.get(self._duration_unit, "None")
            convert = self._convert_duration
        else:
            suffix, unit = "", "None"
            convert = float

        labels = series.labels
        datums = [self._datum(metric.name, DIMENSION_COUNT, "Count", labels, timestamp,
                              value=snapshot.count)]
        if not snapshot.count:
            return datums

        if snapshot.buckets:
            for percentile in self._profile.percentiles:
                datums.append(self._datum(
                    metric.name, percentile.desc + suffix, unit, labels, timestamp,
                    value=convert(snapshot.quantile(percentile.quantile)),
                ))
        if self._profile.arithmetic_mean:
            datums.append(self._datum(metric.name, DIMENSION_SNAPSHOT_MEAN + suffix, unit,
                                      labels, timestamp, value=convert(snapshot.mean)))
        if self._profile.std_dev and snapshot.buckets:
            datums.append(self._datum(metric.name, DIMENSION_SNAPSHOT_STD_DEV + suffix, unit,
                                      labels, timestamp, value=convert(snapshot.std_dev)))
        if self._profile.statistic_set:
            low, high = snapshot.min, snapshot.max
            if not snapshot.buckets:
                low = high = snapshot.mean
            datums.append(self._datum(
                metric.name, DIMENSION_SNAPSHOT_SUMMARY + suffix, unit, labels, timestamp,
                statistic_values={
                    "SampleCount": snapshot.count,
                    "Sum": clean_metric_value(convert(snapshot.total)),
                    "Minimum": clean_metric_value(convert(low)),
                    "Maximum": clean_metric_value(convert(high)),
                },
            ))
        return datums

    def _convert_rate(self, per_second: float) -> float:
        return per_second * self._rate_unit.seconds

    def _convert_duration(self, seconds: float) -> float:
        return seconds / self._duration_unit.seconds

    # ------------------------------------------------------------------
    # sending
    # ------------------------------------------------------------------

    def report(self) -> int:
        """Run one export tick and return the number of datums sent.

        Raises :class:`ExportTickError` when any batch was rejected; the
        remaining batches are still attempted.
        """
        with self._report_lock:
            datums = self.build_datums()
            failures: list[str] = []
            for start in range(0, len(datums), MAXIMUM_DATUMS_PER_REQUEST):
                batch = datums[start:start + MAXIMUM_DATUMS_PER_REQUEST]
                try:
                    self._client.put_metric_data(Namespace=self._namespace, MetricData=batch)
                except (BotoCoreError, ClientError) as exc:
                    failures.append(str(exc))
            if failures:
                raise ExportTickError(
                    f"{len(failures)} of {math.ceil(len(datums) / MAXIMUM_DATUMS_PER_REQUEST)} "
                    f"put_metric_data calls failed: {failures[0]}"
                )
            logger.debug("Reported %d datums to namespace %s", len(datums), self._namespace)
            return len(datums)

    # ------------------------------------------------------------------
    # scheduling
    # ------------------------------------------------------------------

    def _run(self, interval_seconds: float) -> None:
        """Background thread loop."""
        while not self._stop_event.wait(interval_seconds):
            try:
                self.report()
            except Exception:
                logger.exception("Reporter %s failed to export metrics", self._name)

    def start(self, interval_ms: int) -> None:
        """Report every *interval_ms* milliseconds in a background thread."""
        if self._thread is not None:
            raise AlreadyStartedError(f"Reporter {self._name} is already running")
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._run, args=(interval_ms / 1000.0,), name=self._name, daemon=True,
        )
        self._thread.start()
        logger.info("CloudWatchReporter %s started (interval=%dms)", self._name, interval_ms)

    def stop(self, timeout: float | None = 5.0) -> None:
        """Stop the schedule; a tick already in flight may finish first."""
        self._stop_event.set()
        thread, self._thread = self._thread, None
        if thread is None:
            return
        thread.join(timeout=timeout)
        if thread.is_alive():
            logger.warning("Reporter %s still busy after %.1fs", self._name, timeout)
        logger.info("CloudWatchReporter %s stopped", self._name)
