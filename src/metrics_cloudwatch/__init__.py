"""Periodic export of a prometheus_client registry to Amazon CloudWatch."""

from .config import ExportConfig, TimeUnit, load_config
from .errors import (
    AlreadyStartedError,
    ExportTickError,
    InvalidConfigError,
    MetricsExportError,
    SinkUnavailableError,
)
from .reporter import CloudWatchAdapter, create_reporter
from .service import MetricsService

__version__ = "0.1.0"

__all__ = [
    "AlreadyStartedError",
    "CloudWatchAdapter",
    "ExportConfig",
    "ExportTickError",
    "InvalidConfigError",
    "MetricsExportError",
    "MetricsService",
    "SinkUnavailableError",
    "TimeUnit",
    "create_reporter",
    "load_config",
]
