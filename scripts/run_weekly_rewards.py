"""Weekly rewards runner script.

Runs one weekly reward cycle:
1. Find channels active in the last week
2. Build each channel's weekly report
3. Mint rewards for the top eligible contributors
4. Record outcomes, then notify winners and post channel summaries

Meant to be triggered by an external scheduler (cron, systemd timer).
"""

import argparse
import asyncio
import sys
from datetime import datetime

import pytz

from channelsense.adapters.narrative_generator import create_narrative_generator
from channelsense.adapters.reward_issuer import create_reward_issuer
from channelsense.adapters.store_factory import create_activity_store
from channelsense.adapters.telegram_notifier import LoggingNotifier, create_notifier
from channelsense.config.logging_config import get_logger, setup_logging
from channelsense.config.settings import Settings, get_settings
from channelsense.domain.exceptions import FatalConfigurationError
from channelsense.domain.models import WeeklyRewardRunResult
from channelsense.domain.protocols import NotifierProtocol
from channelsense.observability.metrics import ensure_metrics_exporter
from channelsense.use_cases.weekly_rewards import run_weekly_rewards_use_case_async

logger = get_logger(__name__)


def parse_run_time(raw: str | None) -> datetime | None:
    """Parse --now (ISO 8601); naive values are taken as UTC."""
    if raw is None:
        return None
    parsed = datetime.fromisoformat(raw)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=pytz.UTC)
    return parsed


async def run_once(
    settings: Settings, *, now: datetime | None, dry_run: bool
) -> WeeklyRewardRunResult:
    store = create_activity_store(settings)
    narrative = create_narrative_generator(settings)
    telegram = None if dry_run else create_notifier(settings)
    notifier: NotifierProtocol = telegram if telegram is not None else LoggingNotifier()

    try:
        issuer = create_reward_issuer(settings)
        try:
            return await run_weekly_rewards_use_case_async(
                store, issuer, notifier, narrative, settings, now=now, dry_run=dry_run
            )
        finally:
            await issuer.close()
    finally:
        if telegram is not None:
            await telegram.close()


def print_summary(result: WeeklyRewardRunResult) -> None:
    print(f"Run {result.run_id}")
    print(f"  Active channels: {result.channels_found}")
    for channel in result.channels:
        line = (
            f"  - {channel.channel_id}: {channel.status.value} "
            f"(candidates={channel.candidates}, issued={channel.rewards_issued}, "
            f"failed={channel.rewards_failed})"
        )
        if channel.error:
            line += f" error={channel.error}"
        print(line)
    print(f"  Rewards issued: {result.rewards_issued}")


def main(argv: list[str] | None = None) -> int:
    """Run one weekly reward cycle.

    Returns:
        Exit code (0 = success, 1 = fatal configuration error)
    """
    parser = argparse.ArgumentParser(
        description="Run the ChannelSense weekly reward cycle",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run the weekly cycle now
  python scripts/run_weekly_rewards.py

  # Preview candidates without minting or messaging anyone
  python scripts/run_weekly_rewards.py --dry-run

  # Re-run a cycle for a specific moment
  python scripts/run_weekly_rewards.py --now 2025-06-01T00:00:00+00:00
        """,
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="Build reports and select candidates only (no minting or messages)",
    )
    parser.add_argument(
        "--now",
        type=str,
        default=None,
        help="Run timestamp in ISO 8601 (default: current UTC time)",
    )
    parser.add_argument(
        "--metrics-port",
        type=int,
        default=None,
        help="Expose Prometheus metrics on this port while running",
    )
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(log_level=settings.log_level, json_logs=settings.json_logs)

    if args.metrics_port is not None:
        ensure_metrics_exporter(args.metrics_port)

    try:
        now = parse_run_time(args.now)
    except ValueError as exc:
        print(f"Invalid --now value: {exc}", file=sys.stderr)
        return 1

    try:
        result = asyncio.run(run_once(settings, now=now, dry_run=args.dry_run))
    except FatalConfigurationError as exc:
        logger.error("weekly_rewards_aborted", error=str(exc))
        print(f"Weekly rewards aborted: {exc}", file=sys.stderr)
        return 1

    print_summary(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
