"""CPU resource collector."""

from __future__ import annotations

from typing import Iterable

import psutil
from prometheus_client.core import CounterMetricFamily, GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .base import BaseCollector


class CpuCollector(BaseCollector):
    """Collects CPU usage of one process plus the host load average."""

    def __init__(self, pid: int | None = None) -> None:
        self._process = psutil.Process(pid)
        # prime cpu_percent so the first snapshot is not always 0.0
        self._process.cpu_percent(interval=None)

    @property
    def name(self) -> str:
        return "cpu"

    def collect(self) -> Iterable[Metric]:
        times = self._process.cpu_times()
        cpu_seconds = CounterMetricFamily(
            "process_cpu_seconds",
            "Total user and system CPU time spent in seconds",
            labels=["mode"],
        )
        cpu_seconds.add_metric(["user"], times.user)
        cpu_seconds.add_metric(["system"], times.system)
        yield cpu_seconds

        yield GaugeMetricFamily(
            "process_cpu_usage_percent",
            "Process CPU usage percentage since the previous snapshot",
            value=self._process.cpu_percent(interval=None),
        )

        load1, _load5, _load15 = psutil.getloadavg()
        yield GaugeMetricFamily(
            "system_cpu_load_avg_1m",
            "Load average 1 minute",
            value=load1,
        )
