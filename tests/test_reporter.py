"""Tests for the scheduled CloudWatch reporter."""

import math
import time
from datetime import datetime, timezone

import pytest
from botocore.exceptions import ClientError
from prometheus_client import Counter, Gauge, Histogram, Summary
from prometheus_client.core import CounterMetricFamily

from metrics_cloudwatch.config import TimeUnit
from metrics_cloudwatch.errors import AlreadyStartedError, ExportTickError
from metrics_cloudwatch.filters import IncludesExcludesFilter
from metrics_cloudwatch.reporter.cloudwatch_reporter import (
    MAXIMUM_DATUMS_PER_REQUEST,
    SMALLEST_SENDABLE_VALUE,
    CloudWatchReporter,
    clean_metric_value,
)
from metrics_cloudwatch.reporter.profile import Percentile, ReportingProfile


def _type(datum):
    return next(d["Value"] for d in datum["Dimensions"] if d["Name"] == "Type")


def _by_type(datums, name):
    return {_type(d): d for d in datums if d["MetricName"] == name}


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


class FixedCounter:
    """Custom collector exposing one counter with a fixed creation time."""

    def __init__(self, name, value, created):
        self.name = name
        self.value = value
        self.created = created

    def collect(self):
        return [CounterMetricFamily(self.name, "doc", value=self.value, created=self.created)]


class Clock:
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now


def _reporter(registry, client, **kwargs):
    kwargs.setdefault("profile", ReportingProfile.default())
    return CloudWatchReporter(registry, client, "test.namespace", **kwargs)


class TestBuildDatums:
    def test_gauge(self, registry, fake_client):
        Gauge("temperature", "Temp", registry=registry).set(21.5)
        datums = _reporter(registry, fake_client).build_datums()
        assert len(datums) == 1
        datum = datums[0]
        assert datum["MetricName"] == "temperature"
        assert datum["Value"] == 21.5
        assert datum["Unit"] == "None"
        assert datum["StorageResolution"] == 1
        assert _type(datum) == "gauge"
        assert datum["Timestamp"].tzinfo is timezone.utc

    def test_counter_profile(self, registry, fake_client):
        registry.register(FixedCounter("jobs", 50.0, created=1000.0))
        reporter = _reporter(registry, fake_client, rate_unit=TimeUnit.MINUTES, clock=Clock(1010.0))
        datums = _by_type(reporter.build_datums(), "jobs")

        assert set(datums) == {"count", "1-min-mean-rate [per-minute]", "mean-rate [per-minute]"}
        assert datums["count"]["Value"] == 50.0
        assert datums["count"]["Unit"] == "Count"
        # 50 events over 10s = 5/s = 300/min
        assert datums["mean-rate [per-minute]"]["Value"] == pytest.approx(300.0)
        assert datums["mean-rate [per-minute]"]["Unit"] == "Bytes"
        assert datums["1-min-mean-rate [per-minute]"]["Value"] == pytest.approx(300.0)

    def test_one_minute_rate_decays(self, registry, fake_client):
        registry.register(FixedCounter("jobs", 50.0, created=1000.0))
        clock = Clock(1010.0)
        reporter = _reporter(registry, fake_client, clock=clock)
        reporter.build_datums()
        clock.now = 1070.0
        datums = _by_type(reporter.build_datums(), "jobs")
        assert datums["1-min-mean-rate [per-second]"]["Value"] == pytest.approx(5.0 * math.exp(-1))
        assert datums["count"]["Value"] == 50.0

    def test_delta_counts_without_raw_values(self, registry, fake_client):
        counter = FixedCounter("jobs", 10.0, created=1000.0)
        registry.register(counter)
        reporter = _reporter(registry, fake_client, profile=ReportingProfile(), clock=Clock(1010.0))
        assert [d["Value"] for d in reporter.build_datums()] == [10.0]
        counter.value = 25.0
        assert [d["Value"] for d in reporter.build_datums()] == [15.0]

    def test_removed_counter_series_are_forgotten(self, registry, fake_client):
        counter = Counter("hits", "Hits", ["route"], registry=registry)
        counter.labels("a").inc()
        counter.labels("b").inc(2)
        reporter = _reporter(registry, fake_client)
        reporter.build_datums()
        assert len(reporter._meters) == 2

        counter.remove("a")
        datums = reporter.build_datums()
        assert len(reporter._meters) == 1
        assert {d["Dimensions"][1]["Value"] for d in datums} == {"b"}

        counter.clear()
        reporter.build_datums()
        assert reporter._meters == {}

    def test_timer_histogram(self, registry, fake_client):
        h = Histogram("latency_seconds", "Latency", buckets=(0.1, 0.5, 1.0), registry=registry)
        for v in (0.05, 0.2, 0.3, 0.7):
            h.observe(v)
        datums = _by_type(_reporter(registry, fake_client).build_datums(), "latency_seconds")

        assert set(datums) == {
            "count",
            "75% [in-millisecond]",
            "99% [in-millisecond]",
            "snapshot-mean [in-millisecond]",
            "snapshot-std-dev [in-millisecond]",
            "snapshot-summary [in-millisecond]",
        }
        assert datums["count"]["Value"] == 4
        assert datums["75% [in-millisecond]"]["Value"] == pytest.approx(500.0)
        assert datums["75% [in-millisecond]"]["Unit"] == "Milliseconds"
        assert datums["99% [in-millisecond]"]["Value"] == pytest.approx(980.0)
        assert datums["snapshot-mean [in-millisecond]"]["Value"] == pytest.approx(312.5)
        stats = datums["snapshot-summary [in-millisecond]"]["StatisticValues"]
        assert stats["SampleCount"] == 4
        assert stats["Sum"] == pytest.approx(1250.0)
        assert stats["Maximum"] == pytest.approx(1000.0)
        assert "Value" not in datums["snapshot-summary [in-millisecond]"]

    def test_plain_histogram_is_not_converted(self, registry, fake_client):
        h = Histogram("payload_size", "Size", buckets=(10, 100), registry=registry)
        h.observe(50)
        datums = _by_type(_reporter(registry, fake_client).build_datums(), "payload_size")
        assert "75%" in datums
        assert datums["75%"]["Unit"] == "None"
        assert datums["snapshot-mean"]["Value"] == pytest.approx(50.0)

    def test_summary_has_mean_but_no_percentiles(self, registry, fake_client):
        s = Summary("request_seconds", "Request time", registry=registry)
        s.observe(0.2)
        s.observe(0.4)
        datums = _by_type(
            _reporter(registry, fake_client, duration_unit=TimeUnit.SECONDS).build_datums(),
            "request_seconds",
        )
        assert set(datums) == {"count", "snapshot-mean [in-second]", "snapshot-summary [in-second]"}
        assert datums["snapshot-mean [in-second]"]["Value"] == pytest.approx(0.3)
        assert datums["snapshot-mean [in-second]"]["Unit"] == "Seconds"

    def test_empty_histogram_reports_only_count(self, registry, fake_client):
        Histogram("idle_seconds", "Idle", registry=registry)
        datums = _reporter(registry, fake_client).build_datums()
        assert [(d["MetricName"], _type(d), d["Value"]) for d in datums] == [("idle_seconds", "count", 0)]

    def test_labels_and_global_dimensions(self, registry, fake_client):
        Gauge("depth", "Depth", ["queue"], registry=registry).labels("jobs").set(3)
        reporter = _reporter(
            registry, fake_client, global_dimensions=[{"Name": "env", "Value": "prod"}],
        )
        (datum,) = reporter.build_datums()
        assert datum["Dimensions"] == [
            {"Name": "Type", "Value": "gauge"},
            {"Name": "queue", "Value": "jobs"},
            {"Name": "env", "Value": "prod"},
        ]

    def test_filter_and_non_finite_values(self, registry, fake_client):
        Gauge("app_ok", "ok", registry=registry).set(1)
        Gauge("app_nan", "nan", registry=registry).set(float("nan"))
        Gauge("other", "other", registry=registry).set(1)
        reporter = _reporter(registry, fake_client, metric_filter=IncludesExcludesFilter(["^app_"]))
        assert [d["MetricName"] for d in reporter.build_datums()] == ["app_ok"]

    def test_custom_percentiles(self, registry, fake_client):
        Histogram("size", "Size", buckets=(1, 2), registry=registry).observe(1.5)
        profile = ReportingProfile(percentiles=(Percentile.P50,))
        datums = _by_type(_reporter(registry, fake_client, profile=profile).build_datums(), "size")
        assert set(datums) == {"count", "50%"}
        assert "StorageResolution" not in datums["count"]


def test_clean_metric_value():
    assert clean_metric_value(0.0) == 0.0
    assert clean_metric_value(1e-200) == SMALLEST_SENDABLE_VALUE
    assert clean_metric_value(-1e-200) == -SMALLEST_SENDABLE_VALUE
    assert clean_metric_value(1e300) == pytest.approx(1.174271e108)
    assert clean_metric_value(42.0) == 42.0


class TestReport:
    def test_report_sends_namespace_and_timestamp(self, registry, fake_client):
        Gauge("g", "g", registry=registry).set(1)
        reporter = _reporter(registry, fake_client, clock=Clock(0.0))
        assert reporter.report() == 1
        (call,) = fake_client.calls
        assert call["Namespace"] == "test.namespace"
        assert call["MetricData"][0]["Timestamp"] == datetime(1970, 1, 1, tzinfo=timezone.utc)

    def test_report_batches(self, registry, fake_client):
        for i in range(25):
            Gauge(f"gauge_{i}", "g", registry=registry).set(i)
        assert _reporter(registry, fake_client).report() == 25
        assert [len(c["MetricData"]) for c in fake_client.calls] == [MAXIMUM_DATUMS_PER_REQUEST, 5]

    def test_empty_registry_sends_nothing(self, registry, fake_client):
        assert _reporter(registry, fake_client).report() == 0
        assert fake_client.calls == []

    def test_client_error_raises_tick_error(self, registry):
        class Throttled:
            calls = 0

            def put_metric_data(self, **kwargs):
                Throttled.calls += 1
                raise ClientError({"Error": {"Code": "Throttling", "Message": "slow down"}}, "PutMetricData")

        for i in range(25):
            Gauge(f"gauge_{i}", "g", registry=registry).set(i)
        with pytest.raises(ExportTickError, match="2 of 2"):
            _reporter(registry, Throttled()).report()
        assert Throttled.calls == 2


class TestSchedule:
    def test_ticks_until_stopped(self, registry, fake_client):
        Gauge("g", "g", registry=registry).set(1)
        reporter = _reporter(registry, fake_client)
        reporter.start(10)
        try:
            assert _wait_for(lambda: len(fake_client.calls) >= 2)
        finally:
            reporter.stop()
        assert not reporter.is_running
        seen = len(fake_client.calls)
        time.sleep(0.1)
        assert len(fake_client.calls) == seen

    def test_failed_tick_does_not_stop_schedule(self, registry):
        class Flaky:
            def __init__(self):
                self.calls = 0

            def put_metric_data(self, **kwargs):
                self.calls += 1
                raise RuntimeError("network down")

        Gauge("g", "g", registry=registry).set(1)
        client = Flaky()
        reporter = _reporter(registry, client)
        reporter.start(10)
        try:
            assert _wait_for(lambda: client.calls >= 3)
            assert reporter.is_running
        finally:
            reporter.stop()

    def test_first_tick_waits_one_interval(self, registry, fake_client):
        Gauge("g", "g", registry=registry).set(1)
        reporter = _reporter(registry, fake_client)
        reporter.start(60_000)
        try:
            time.sleep(0.05)
            assert fake_client.calls == []
        finally:
            reporter.stop()

    def test_start_twice(self, registry, fake_client):
        reporter = _reporter(registry, fake_client)
        reporter.start(60_000)
        try:
            with pytest.raises(AlreadyStartedError):
                reporter.start(60_000)
            assert reporter.is_running
        finally:
            reporter.stop()

    def test_stop_is_idempotent(self, registry, fake_client):
        reporter = _reporter(registry, fake_client)
        reporter.stop()
        reporter.start(60_000)
        reporter.stop()
        reporter.stop()
        assert not reporter.is_running
