"""Process resource collectors feeding a prometheus_client registry."""

from __future__ import annotations

import logging

from prometheus_client import CollectorRegistry

from .base import BaseCollector
from .cpu import CpuCollector
from .memory import MemoryCollector

logger = logging.getLogger(__name__)


def register_system_collectors(
    registry: CollectorRegistry, pid: int | None = None
) -> list[BaseCollector]:
    """Register CPU and memory collectors for *pid* (default: this process)."""
    collectors: list[BaseCollector] = [CpuCollector(pid), MemoryCollector(pid)]
    for collector in collectors:
        registry.register(collector)
    logger.info("Registered %s collectors", ", ".join(c.name for c in collectors))
    return collectors


__all__ = ["BaseCollector", "CpuCollector", "MemoryCollector", "register_system_collectors"]
