"""Prometheus metrics for weekly reward runs.

Counters are module-level so every orchestrator instance in a process
reports into the same registry. The HTTP exporter is started explicitly
by the CLI (never on import).
"""

from __future__ import annotations

import os
import threading
from typing import Final

from prometheus_client import Counter, Histogram, start_http_server

from channelsense.config.logging_config import get_logger

logger = get_logger(__name__)

REWARD_ISSUANCE_TOTAL: Final[Counter] = Counter(
    "channelsense_reward_issuance_total",
    "Reward issuance attempts by outcome",
    labelnames=("status",),
)

WEEKLY_CHANNEL_RUNS_TOTAL: Final[Counter] = Counter(
    "channelsense_weekly_channel_runs_total",
    "Channels processed by weekly runs, by terminal status",
    labelnames=("status",),
)

NOTIFICATIONS_TOTAL: Final[Counter] = Counter(
    "channelsense_notifications_total",
    "Outbound notifications by kind and outcome",
    labelnames=("kind", "status"),
)

WEEKLY_RUN_DURATION_SECONDS: Final[Histogram] = Histogram(
    "channelsense_weekly_run_duration_seconds",
    "Duration of weekly reward runs in seconds",
)

_EXPORTER_LOCK = threading.Lock()
_EXPORTER_STARTED = False
_DEFAULT_METRICS_PORT: Final[int] = 9000
_METRICS_PORT_ENV: Final[str] = "METRICS_PORT"


def _resolve_metrics_port() -> int:
    port_raw = os.getenv(_METRICS_PORT_ENV)
    try:
        return int(port_raw) if port_raw else _DEFAULT_METRICS_PORT
    except ValueError:
        logger.warning("invalid_metrics_port", port=port_raw)
        return _DEFAULT_METRICS_PORT


def ensure_metrics_exporter(port: int | None = None) -> None:
    """Start Prometheus HTTP exporter once per process."""

    global _EXPORTER_STARTED
    with _EXPORTER_LOCK:
        if _EXPORTER_STARTED:
            return

        resolved_port = port if port is not None else _resolve_metrics_port()
        try:
            start_http_server(resolved_port)
        except OSError as exc:
            logger.error(
                "metrics_exporter_start_failed",
                port=resolved_port,
                error=str(exc),
            )
            raise

        _EXPORTER_STARTED = True
        logger.info("metrics_exporter_started", port=resolved_port)


__all__ = [
    "NOTIFICATIONS_TOTAL",
    "REWARD_ISSUANCE_TOTAL",
    "WEEKLY_CHANNEL_RUNS_TOTAL",
    "WEEKLY_RUN_DURATION_SECONDS",
    "ensure_metrics_exporter",
]
