from __future__ import annotations

"""Agenda alerts daemon: refresh agenda sources and fire reminders."""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from agenda_alerts.adapters.collection_runner import InlineCollectionRunner
from agenda_alerts.config.logging_config import get_logger
from agenda_alerts.config.settings import Settings, get_settings
from agenda_alerts.domain.models import CycleStatus
from agenda_alerts.observability.metrics import ensure_metrics_exporter
from agenda_alerts.use_cases.refresh_scheduler import create_scheduler
from scripts import alerts_runtime

logger = get_logger(__name__)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Run the agenda alerts scheduler")
    parser.add_argument(
        "--agenda-file",
        dest="agenda_files",
        action="append",
        default=None,
        help="Agenda source to watch (repeatable; overrides settings)",
    )
    parser.add_argument(
        "--parser",
        default=None,
        help="Parser import target 'package.module:attribute'",
    )
    parser.add_argument(
        "--refresh-seconds",
        type=float,
        default=None,
        help="Interval between refresh cycles",
    )
    parser.add_argument(
        "--startup-delay",
        type=float,
        default=None,
        help="Delay before the first refresh cycle",
    )
    parser.add_argument(
        "--json-logs",
        action="store_true",
        help="Emit logs in JSON format",
    )
    parser.add_argument(
        "--run-once",
        action="store_true",
        help="Run a single refresh cycle inline, print the summary and exit",
    )
    args = parser.parse_args(argv)
    if args.refresh_seconds is not None and args.refresh_seconds <= 0:
        parser.error("--refresh-seconds must be greater than 0")
    if args.startup_delay is not None and args.startup_delay < 0:
        parser.error("--startup-delay must not be negative")
    return args


def _apply_overrides(settings: Settings, args: argparse.Namespace) -> Settings:
    update: dict[str, object] = {}
    if args.agenda_files:
        update["agenda_files"] = list(args.agenda_files)
    if args.parser:
        update["parser"] = args.parser
    if args.refresh_seconds is not None:
        update["refresh_period_seconds"] = args.refresh_seconds
    if args.startup_delay is not None:
        update["startup_delay_seconds"] = args.startup_delay
    return settings.model_copy(update=update) if update else settings


def run_once(settings: Settings) -> int:
    scheduler = create_scheduler(settings, collection_runner=InlineCollectionRunner())
    try:
        result = scheduler.refresh().result()
    finally:
        scheduler.shutdown()

    if result.status is not CycleStatus.SUCCEEDED:
        for issue in result.issues:
            print(f"error: {issue}", file=sys.stderr)
        return 1

    print(scheduler.summary or "(nothing upcoming)")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)

    settings = _apply_overrides(get_settings(), args)
    alerts_runtime.initialize_logging(settings, json_logs=args.json_logs)

    if args.run_once:
        return run_once(settings)

    if settings.metrics_port is not None:
        ensure_metrics_exporter(settings.metrics_port)

    controller = alerts_runtime.create_shutdown_controller()
    alerts_runtime.install_signal_handlers(controller)

    scheduler = create_scheduler(settings)
    scheduler.activate()
    try:
        alerts_runtime.wait_for_shutdown(controller)
    finally:
        scheduler.shutdown()

    return 0


if __name__ == "__main__":
    raise SystemExit(main())
