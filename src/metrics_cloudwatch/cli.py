"""CLI interface for metrics_cloudwatch."""

from __future__ import annotations

import argparse
import json
import logging
import signal
import sys
import time
from typing import Any

from prometheus_client import CollectorRegistry

from . import __version__
from .config import TelemetryConfig, load_config
from .errors import MetricsExportError


def _process_registry() -> CollectorRegistry:
    from .collector import register_system_collectors

    registry = CollectorRegistry()
    register_system_collectors(registry)
    return registry


def _require_entries(cfg: TelemetryConfig, config_path: str | None) -> None:
    if not cfg.metrics:
        print(f"No reporters configured in {config_path or 'metrics_cloudwatch.yaml'}")
        sys.exit(1)


def _cmd_validate(args: argparse.Namespace) -> None:
    """Parse every reporter block and print the resolved settings."""
    cfg = load_config(args.config)
    _require_entries(cfg, args.config)

    from .reporter import create_reporter

    resolved = []
    for entry in cfg.metrics:
        reporter = create_reporter(entry.reporter)
        resolved.append({
            "name": entry.name,
            "comment": entry.comment,
            "reporter": reporter.config.to_dict(),
            "includes": entry.includes,
            "excludes": entry.excludes,
        })
    print(json.dumps({"metrics": resolved}, indent=2))


def print_datums(datums: list[dict[str, Any]], *, title: str, max_rows: int = 200) -> None:
    """Pretty-print CloudWatch datums to the terminal using Rich."""
    from rich.console import Console
    from rich.table import Table

    table = Table(title=title, show_lines=False)
    table.add_column("Metric", style="green", width=32)
    table.add_column("Type", style="magenta", width=28)
    table.add_column("Value", justify="right", width=18)
    table.add_column("Unit", width=12)
    table.add_column("Dimensions", width=40)

    for datum in datums[:max_rows]:
        dims = datum["Dimensions"]
        type_value = next((d["Value"] for d in dims if d["Name"] == "Type"), "")
        other_dims = ", ".join(f"{d['Name']}={d['Value']}" for d in dims if d["Name"] != "Type")
        if "StatisticValues" in datum:
            stats = datum["StatisticValues"]
            value = f"n={stats['SampleCount']:g} sum={stats['Sum']:.2f}"
        else:
            value = f"{datum['Value']:.4g}"
        table.add_row(datum["MetricName"], type_value, value, datum["Unit"], other_dims)

    console = Console()
    console.print(table)
    if len(datums) > max_rows:
        console.print(f"  ... ({len(datums) - max_rows} more datums)")


def _cmd_preview(args: argparse.Namespace) -> None:
    """Render the datums one tick would send for this process, without sending."""
    cfg = load_config(args.config)
    _require_entries(cfg, args.config)

    from .filters import IncludesExcludesFilter
    from .reporter import create_reporter

    registry = _process_registry()
    for entry in cfg.metrics:
        reporter = create_reporter(entry.reporter)
        datums = reporter.preview(registry, IncludesExcludesFilter(entry.includes, entry.excludes))
        print_datums(datums, title=f"{entry.name} → {reporter.config.region}", max_rows=args.max_rows)


def _cmd_run(args: argparse.Namespace) -> None:
    """Export this process's metrics to CloudWatch until interrupted."""
    cfg = load_config(args.config)
    _require_entries(cfg, args.config)

    from .service import MetricsService

    service = MetricsService(cfg, _process_registry())

    stop = False

    def _handle_signal(_sig: int, _frame: object) -> None:
        nonlocal stop
        stop = True

    signal.signal(signal.SIGINT, _handle_signal)
    signal.signal(signal.SIGTERM, _handle_signal)

    service.start()
    print(f"metrics_cloudwatch running ({len(service.reporters)} reporters)")
    print("Press Ctrl+C to stop.\n")
    try:
        while not stop:
            time.sleep(0.5)
    finally:
        service.stop()
    print("\nReporting stopped.")


def _cmd_version(_args: argparse.Namespace) -> None:
    print(f"metrics_cloudwatch {__version__}")


def main(argv: list[str] | None = None) -> None:
    """Entry point for the metrics-cloudwatch CLI."""
    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    parser = argparse.ArgumentParser(
        prog="metrics-cloudwatch",
        description="Export process metrics to Amazon CloudWatch",
    )
    parser.add_argument("--config", "-c", default=None, help="Path to metrics_cloudwatch.yaml")
    sub = parser.add_subparsers(dest="command")

    # validate
    validate_p = sub.add_parser("validate", help="Check reporter configuration and print it")
    validate_p.set_defaults(func=_cmd_validate)

    # preview
    preview_p = sub.add_parser("preview", help="Show the datums one export would send")
    preview_p.add_argument("--max-rows", type=int, default=200, help="Rows per table")
    preview_p.set_defaults(func=_cmd_preview)

    # run
    run_p = sub.add_parser("run", help="Start exporting to CloudWatch")
    run_p.set_defaults(func=_cmd_run)

    # version
    ver_p = sub.add_parser("version", help="Print version")
    ver_p.set_defaults(func=_cmd_version)

    args = parser.parse_args(argv)
    if not hasattr(args, "func"):
        parser.print_help()
        sys.exit(1)

    try:
        args.func(args)
    except MetricsExportError as exc:
        print(f"error: {exc}", file=sys.stderr)
        sys.exit(2)


if __name__ == "__main__":
    main()
