"""Which statistics a CloudWatch reporter emits for each metric type."""

from __future__ import annotations

import enum
from dataclasses import dataclass


class Percentile(enum.Enum):
    """Reportable histogram percentiles and their ``Type`` dimension labels."""

    P50 = (0.50, "50%")
    P75 = (0.75, "75%")
    P95 = (0.95, "95%")
    P98 = (0.98, "98%")
    P99 = (0.99, "99%")
    P995 = (0.995, "99.5%")
    P999 = (0.999, "99.9%")

    @property
    def quantile(self) -> float:
        return self.value[0]

    @property
    def desc(self) -> str:
        return self.value[1]


@dataclass(frozen=True)
class ReportingProfile:
    """Switches controlling the datums built from a registry snapshot.

    Everything is off by default; :meth:`default` is the profile adapters
    always use.
    """

    percentiles: tuple[Percentile, ...] = ()
    one_minute_mean_rate: bool = False
    mean_rate: bool = False
    arithmetic_mean: bool = False
    std_dev: bool = False
    statistic_set: bool = False
    raw_count_value: bool = False
    high_resolution: bool = False
    meter_unit: str = "None"

    @classmethod
    def default(cls) -> ReportingProfile:
        return cls(
            percentiles=(Percentile.P75, Percentile.P99),
            one_minute_mean_rate=True,
            mean_rate=True,
            arithmetic_mean=True,
            std_dev=True,
            statistic_set=True,
            raw_count_value=True,
            high_resolution=True,
            meter_unit="Bytes",
        )
