"""Configuration loading and validation for metrics_cloudwatch."""

from __future__ import annotations

import enum
import functools
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Mapping

import boto3
import yaml

from .errors import InvalidConfigError

DEFAULT_CONFIG_PATH = "metrics_cloudwatch.yaml"
REPORTER_TYPE = "cloudwatch"


class TimeUnit(enum.Enum):
    """Units used to scale rates and durations before they are reported."""

    NANOSECONDS = "nanoseconds"
    MICROSECONDS = "microseconds"
    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    MINUTES = "minutes"
    HOURS = "hours"
    DAYS = "days"

    @property
    def seconds(self) -> float:
        """Length of one unit expressed in seconds."""
        return _UNIT_SECONDS[self]

    @property
    def singular(self) -> str:
        return self.value[:-1]

    @classmethod
    def parse(cls, value: TimeUnit | str | None, default: TimeUnit) -> TimeUnit:
        """Resolve *value* to a member, falling back to *default* when unset."""
        if value is None:
            return default
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        choices = ", ".join(m.value for m in cls)
        raise InvalidConfigError(f"Unknown time unit {value!r} (expected one of: {choices})")


_UNIT_SECONDS = {
    TimeUnit.NANOSECONDS: 1e-9,
    TimeUnit.MICROSECONDS: 1e-6,
    TimeUnit.MILLISECONDS: 1e-3,
    TimeUnit.SECONDS: 1.0,
    TimeUnit.MINUTES: 60.0,
    TimeUnit.HOURS: 3600.0,
    TimeUnit.DAYS: 86400.0,
}


@functools.lru_cache(maxsize=1)
def known_regions() -> frozenset[str]:
    """All regions botocore knows a CloudWatch endpoint for, across partitions."""
    session = boto3.Session()
    regions: set[str] = set()
    for partition in session.get_available_partitions():
        regions.update(session.get_available_regions("cloudwatch", partition_name=partition))
    return frozenset(regions)


def split_tag(tag: str) -> tuple[str, str]:
    """Split a ``Name=Value`` or ``Name:Value`` tag at its first separator."""
    positions = [pos for pos in (tag.find("="), tag.find(":")) if pos >= 0]
    if not positions:
        raise InvalidConfigError(f"Tag {tag!r} must look like Name=Value or Name:Value")
    pos = min(positions)
    name, value = tag[:pos].strip(), tag[pos + 1:].strip()
    if not name:
        raise InvalidConfigError(f"Tag {tag!r} has an empty dimension name")
    return name, value


@dataclass(frozen=True)
class ExportConfig:
    """Settings of one CloudWatch reporter.

    Unset units resolve to seconds (rates) and milliseconds (durations).
    Two configs compare equal when region, units and interval match; tags
    take no part in equality or hashing.
    """

    region: str
    interval_ms: int
    rate_unit: TimeUnit | None = None
    duration_unit: TimeUnit | None = None
    tags: frozenset[str] = field(default_factory=frozenset, compare=False)

    def __post_init__(self) -> None:
        if not isinstance(self.region, str) or not self.region.strip():
            raise InvalidConfigError("region must be a non-empty string")
        if self.region not in known_regions():
            raise InvalidConfigError(f"Unrecognized region {self.region!r}")
        if isinstance(self.interval_ms, bool) or not isinstance(self.interval_ms, int):
            raise InvalidConfigError(f"intervalMs must be an integer, got {self.interval_ms!r}")
        if self.interval_ms <= 0:
            raise InvalidConfigError(f"intervalMs must be positive, got {self.interval_ms}")

        object.__setattr__(self, "rate_unit", TimeUnit.parse(self.rate_unit, TimeUnit.SECONDS))
        object.__setattr__(
            self, "duration_unit", TimeUnit.parse(self.duration_unit, TimeUnit.MILLISECONDS)
        )
        tags = frozenset(self.tags or ())
        for tag in tags:
            if not isinstance(tag, str):
                raise InvalidConfigError(f"Tags must be strings, got {tag!r}")
            split_tag(tag)
        object.__setattr__(self, "tags", tags)

    @property
    def type(self) -> str:
        return REPORTER_TYPE

    def dimensions(self) -> list[dict[str, str]]:
        """Tags as CloudWatch dimensions, sorted by name."""
        pairs = sorted(split_tag(tag) for tag in self.tags)
        return [{"Name": name, "Value": value} for name, value in pairs]

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> ExportConfig:
        """Build a config from a reporter block (``intervalMs``/``rate``/... keys)."""
        kind = data.get("type", REPORTER_TYPE)
        if kind != REPORTER_TYPE:
            raise InvalidConfigError(f"Expected reporter type {REPORTER_TYPE!r}, got {kind!r}")
        if "region" not in data:
            raise InvalidConfigError("region is required")
        if "intervalMs" not in data:
            raise InvalidConfigError("intervalMs is required")
        return cls(
            region=data["region"],
            interval_ms=_coerce_int(data["intervalMs"], "intervalMs"),
            rate_unit=data.get("rate"),
            duration_unit=data.get("duration"),
            tags=_coerce_tags(data.get("tags")),
        )

    def to_dict(self) -> dict[str, Any]:
        assert self.rate_unit is not None and self.duration_unit is not None
        return {
            "type": self.type,
            "region": self.region,
            "rate": self.rate_unit.value,
            "duration": self.duration_unit.value,
            "intervalMs": self.interval_ms,
            "tags": sorted(self.tags),
        }


@dataclass
class MetricsEntry:
    """One named reporter together with the metric names it should ship."""

    name: str
    reporter: Mapping[str, Any]
    comment: str = ""
    includes: list[str] = field(default_factory=list)
    excludes: list[str] = field(default_factory=list)


@dataclass
class TelemetryConfig:
    """Top-level metrics_cloudwatch configuration."""

    metrics: list[MetricsEntry] = field(default_factory=list)


def _coerce_int(value: Any, key: str) -> int:
    if isinstance(value, bool) or (isinstance(value, float) and not value.is_integer()):
        raise InvalidConfigError(f"{key} must be an integer, got {value!r}")
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise InvalidConfigError(f"{key} must be an integer, got {value!r}") from exc


def _coerce_tags(value: Any) -> frozenset[str]:
    if value is None:
        return frozenset()
    if isinstance(value, str):
        return frozenset(part.strip() for part in value.split(",") if part.strip())
    if isinstance(value, Iterable):
        return frozenset(value)
    raise InvalidConfigError(f"tags must be a list of strings, got {value!r}")


def _apply_env_overrides(data: dict[str, Any]) -> dict[str, Any]:
    """Apply environment variable overrides using METRICS_CLOUDWATCH_ prefix.

    Overrides land in every reporter block of type ``cloudwatch``.
    """
    env_map = {
        "METRICS_CLOUDWATCH_REGION": "region",
        "METRICS_CLOUDWATCH_INTERVAL_MS": "intervalMs",
        "METRICS_CLOUDWATCH_TAGS": "tags",
    }
    overrides = {
        key: os.environ[env_key] for env_key, key in env_map.items() if env_key in os.environ
    }
    if not overrides:
        return data
    for entry in data.get("metrics") or []:
        reporter = entry.get("reporter") if isinstance(entry, dict) else None
        if not isinstance(reporter, dict):
            continue
        if reporter.get("type", REPORTER_TYPE) != REPORTER_TYPE:
            continue
        for key, value in overrides.items():
            # coerce numeric values
            if key == "intervalMs":
                reporter[key] = _coerce_int(value, key)
            elif key == "tags":
                reporter[key] = sorted(_coerce_tags(value))
            else:
                reporter[key] = value
    return data


def _dict_to_config(data: dict[str, Any]) -> TelemetryConfig:
    """Convert a raw dictionary to a TelemetryConfig dataclass."""
    entries: list[MetricsEntry] = []
    for idx, raw in enumerate(data.get("metrics") or []):
        if not isinstance(raw, dict):
            raise InvalidConfigError(f"metrics[{idx}] must be a mapping")
        reporter = raw.get("reporter")
        if not isinstance(reporter, dict):
            raise InvalidConfigError(f"metrics[{idx}].reporter must be a mapping")
        entries.append(MetricsEntry(
            name=str(raw.get("name") or f"reporter-{idx}"),
            reporter=reporter,
            comment=str(raw.get("comment") or ""),
            includes=list(raw.get("includes") or []),
            excludes=list(raw.get("excludes") or []),
        ))
    return TelemetryConfig(metrics=entries)


def load_config(path: str | Path | None = None) -> TelemetryConfig:
    """Load configuration from a YAML file with environment overrides.

    Looks for ``metrics_cloudwatch.yaml`` in the current directory if *path*
    is None. A missing file yields an empty configuration.
    """
    data: dict[str, Any] = {}
    if path is None:
        path = Path(DEFAULT_CONFIG_PATH)
    else:
        path = Path(path)

    if path.exists():
        with open(path, encoding="utf-8") as fh:
            loaded = yaml.safe_load(fh)
            if isinstance(loaded, dict):
                data = loaded

    data = _apply_env_overrides(data)
    return _dict_to_config(data)
