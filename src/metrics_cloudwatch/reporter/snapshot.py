"""Reading prometheus_client families into per-series snapshots."""

from __future__ import annotations

import math
from dataclasses import dataclass, field

from prometheus_client.metrics_core import Metric

# Labels prometheus_client adds to individual samples of one series.
_SERIES_LABELS = ("le", "quantile")


def series_key(labels: dict[str, str]) -> tuple[tuple[str, str], ...]:
    return tuple(sorted((k, v) for k, v in labels.items() if k not in _SERIES_LABELS))


@dataclass
class SeriesSnapshot:
    """All samples of one label set within a family."""

    labels: dict[str, str]
    value: float | None = None
    count: float | None = None
    total: float | None = None
    created: float | None = None
    buckets: list[tuple[float, float]] = field(default_factory=list)

    def histogram(self) -> HistogramSnapshot | None:
        if self.count is None:
            return None
        return HistogramSnapshot(
            buckets=sorted(self.buckets),
            count=self.count,
            total=self.total or 0.0,
        )


@dataclass
class HistogramSnapshot:
    """Cumulative bucket counts plus the running count and sum of a histogram.

    Quantiles, spread and extremes are estimated from bucket boundaries the
    same way PromQL's ``histogram_quantile`` does, so they are only as
    precise as the bucket layout.
    """

    buckets: list[tuple[float, float]]
    count: float
    total: float

    @property
    def mean(self) -> float:
        return self.total / self.count if self.count else 0.0

    def quantile(self, q: float) -> float:
        if not self.buckets or not self.count:
            return 0.0
        rank = q * self.count
        prev_bound, prev_count = 0.0, 0.0
        for bound, cumulative in self.buckets:
            if cumulative >= rank:
                if math.isinf(bound):
                    return prev_bound
                lower = prev_bound if prev_bound < bound else min(0.0, bound)
                in_bucket = cumulative - prev_count
                if in_bucket <= 0:
                    return bound
                return lower + (bound - lower) * (rank - prev_count) / in_bucket
            prev_bound, prev_count = bound, cumulative
        return prev_bound

    def _populated(self) -> list[tuple[float, float, float]]:
        """(lower, upper, observations) for every non-empty bucket."""
        out = []
        prev_bound, prev_count = 0.0, 0.0
        for bound, cumulative in self.buckets:
            n = cumulative - prev_count
            upper = prev_bound if math.isinf(bound) else bound
            lower = min(prev_bound, upper)
            if n > 0:
                out.append((lower, upper, n))
            prev_bound, prev_count = upper, cumulative
        return out

    @property
    def min(self) -> float:
        populated = self._populated()
        return populated[0][0] if populated else 0.0

    @property
    def max(self) -> float:
        populated = self._populated()
        return populated[-1][1] if populated else 0.0

    @property
    def std_dev(self) -> float:
        populated = self._populated()
        if not populated or self.count <= 1:
            return 0.0
        mean = self.mean
        variance = sum(n * ((lo + hi) / 2 - mean) ** 2 for lo, hi, n in populated) / self.count
        return math.sqrt(variance)


def group_series(metric: Metric) -> list[SeriesSnapshot]:
    """Fold the flat sample list of *metric* into one snapshot per label set."""
    grouped: dict[tuple[tuple[str, str], ...], SeriesSnapshot] = {}
    for sample in metric.samples:
        key = series_key(sample.labels)
        series = grouped.get(key)
        if series is None:
            series = grouped[key] = SeriesSnapshot(labels=dict(key))
        suffix = sample.name[len(metric.name):]
        if suffix == "_created":
            series.created = sample.value
        elif suffix == "_bucket":
            series.buckets.append((float(sample.labels["le"]), sample.value))
        elif suffix == "_count":
            series.count = sample.value
        elif suffix == "_sum":
            series.total = sample.value
        elif suffix in ("", "_total"):
            series.value = sample.value
    return list(grouped.values())
