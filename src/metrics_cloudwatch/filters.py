"""Predicates deciding which registry families are exported."""

from __future__ import annotations

import re
from typing import Callable, Iterable

from prometheus_client.metrics_core import Metric

from .errors import InvalidConfigError

MetricFilter = Callable[[str, Metric], bool]


def ALL(name: str, metric: Metric) -> bool:  # noqa: N802
    """Admit every metric."""
    return True


class IncludesExcludesFilter:
    """Admit names matching any include pattern and no exclude pattern.

    An empty include list admits everything that is not excluded. Patterns
    are regular expressions searched anywhere in the metric name.
    """

    def __init__(self, includes: Iterable[str] = (), excludes: Iterable[str] = ()) -> None:
        self._includes = _compile(includes)
        self._excludes = _compile(excludes)

    def __call__(self, name: str, metric: Metric) -> bool:
        if self._includes and not any(p.search(name) for p in self._includes):
            return False
        return not any(p.search(name) for p in self._excludes)

    def __repr__(self) -> str:
        includes = [p.pattern for p in self._includes]
        excludes = [p.pattern for p in self._excludes]
        return f"IncludesExcludesFilter(includes={includes!r}, excludes={excludes!r})"


def _compile(patterns: Iterable[str]) -> list[re.Pattern[str]]:
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as exc:
            raise InvalidConfigError(f"Invalid metric name pattern {pattern!r}: {exc}") from exc
    return compiled
