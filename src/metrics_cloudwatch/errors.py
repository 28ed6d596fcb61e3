"""Exception types raised by metrics_cloudwatch."""

from __future__ import annotations


class MetricsExportError(Exception):
    """Base class for all metrics export failures."""


class InvalidConfigError(MetricsExportError, ValueError):
    """A reporter configuration block is malformed or out of range."""


class AlreadyStartedError(MetricsExportError, RuntimeError):
    """``start`` was called on a reporter that is already running."""


class SinkUnavailableError(MetricsExportError):
    """The CloudWatch client could not be constructed."""


class ExportTickError(MetricsExportError):
    """A single scheduled export failed."""
