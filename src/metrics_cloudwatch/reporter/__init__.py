"""Reporter configurators, looked up by the ``type`` key of a reporter block."""

from __future__ import annotations

from typing import Any, Mapping

from ..errors import InvalidConfigError
from .base import ReporterConfigurator
from .cloudwatch import CloudWatchAdapter
from .cloudwatch_reporter import CloudWatchReporter
from .profile import Percentile, ReportingProfile

REPORTER_TYPES: dict[str, type[CloudWatchAdapter]] = {
    CloudWatchAdapter.type: CloudWatchAdapter,
}


def create_reporter(data: Mapping[str, Any], **kwargs: Any) -> ReporterConfigurator:
    """Build the configurator named by ``data["type"]``.

    Extra keyword arguments go to the configurator's ``configure``.
    """
    kind = data.get("type")
    if kind is None:
        raise InvalidConfigError("reporter block is missing 'type'")
    try:
        configurator = REPORTER_TYPES[kind]
    except KeyError:
        known = ", ".join(sorted(REPORTER_TYPES))
        raise InvalidConfigError(f"Unknown reporter type {kind!r} (known: {known})") from None
    return configurator.configure(data, **kwargs)


__all__ = [
    "CloudWatchAdapter",
    "CloudWatchReporter",
    "Percentile",
    "REPORTER_TYPES",
    "ReporterConfigurator",
    "ReportingProfile",
    "create_reporter",
]
