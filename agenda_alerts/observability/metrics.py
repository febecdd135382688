"""Prometheus metrics for refresh cycles and alert delivery."""

from __future__ import annotations

import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from agenda_alerts.config.logging_config import get_logger

logger = get_logger(__name__)

REFRESH_CYCLES_TOTAL: Final[Counter] = Counter(
    "agenda_refresh_cycles_total",
    "Total number of refresh cycles by terminal status",
    labelnames=("status",),
)

ALERTS_FIRED_TOTAL: Final[Counter] = Counter(
    "agenda_alerts_fired_total",
    "Alerts handed to the presenter, by severity",
    labelnames=("severity",),
)

ALERTS_SUPPRESSED_TOTAL: Final[Counter] = Counter(
    "agenda_alerts_suppressed_total",
    "Crossed tiers marked fired without presenting, by severity",
    labelnames=("severity",),
)

SOURCE_FAILURES_TOTAL: Final[Counter] = Counter(
    "agenda_source_failures_total",
    "Agenda sources that failed to parse during collection",
)

COLLECTION_DURATION_SECONDS: Final[Histogram] = Histogram(
    "agenda_collection_duration_seconds",
    "Duration of event collection in seconds",
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False


def ensure_metrics_exporter(port: int) -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        try:
            start_http_server(port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=port)


__all__ = [
    "ALERTS_FIRED_TOTAL",
    "ALERTS_SUPPRESSED_TOTAL",
    "COLLECTION_DURATION_SECONDS",
    "REFRESH_CYCLES_TOTAL",
    "SOURCE_FAILURES_TOTAL",
    "ensure_metrics_exporter",
]
