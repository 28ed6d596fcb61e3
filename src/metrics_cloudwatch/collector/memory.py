"""Memory resource collector."""

from __future__ import annotations

from typing import Iterable

import psutil
from prometheus_client.core import GaugeMetricFamily
from prometheus_client.metrics_core import Metric

from .base import BaseCollector


class MemoryCollector(BaseCollector):
    """Collects memory usage of one process and of the host."""

    def __init__(self, pid: int | None = None) -> None:
        self._process = psutil.Process(pid)

    @property
    def name(self) -> str:
        return "memory"

    def collect(self) -> Iterable[Metric]:
        info = self._process.memory_info()
        mem = psutil.virtual_memory()

        return [
            GaugeMetricFamily(
                "process_memory_rss_bytes",
                "Resident set size in bytes",
                value=float(info.rss),
            ),
            GaugeMetricFamily(
                "process_memory_vms_bytes",
                "Virtual memory size in bytes",
                value=float(info.vms),
            ),
            GaugeMetricFamily(
                "system_memory_usage_percent",
                "Memory usage percentage",
                value=mem.percent,
            ),
            GaugeMetricFamily(
                "system_memory_available_bytes",
                "Memory available in bytes",
                value=float(mem.available),
            ),
        ]
