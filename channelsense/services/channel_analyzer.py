"""Channel analyzer.

Produces period metrics for one channel (volume, growth, peak hour, most
active day) together with the top users ranked by engagement score.
"""

import asyncio
from collections.abc import Awaitable, Sequence
from datetime import UTC, datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import TypeVar

from channelsense.config.logging_config import get_logger
from channelsense.domain.exceptions import ChannelAnalysisError, ValidationError
from channelsense.domain.models import (
    AnalysisPeriod,
    AnalysisWindow,
    ChannelAnalysis,
    DailyActivity,
    EngagementScore,
    HourlyActivity,
    RankedUser,
    UserActivity,
    WalletLink,
)
from channelsense.domain.protocols import ActivityStoreProtocol
from channelsense.domain.reward_constants import DEFAULT_RANKING_LIMIT
from channelsense.services.bounded_calls import bounded
from channelsense.services.engagement_scorer import EngagementScorer

logger = get_logger(__name__)

T = TypeVar("T")

_ONE_DECIMAL = Decimal("0.1")


def round_half_up(value: Decimal) -> float:
    """Round to one decimal place, halves away from zero."""
    return float(value.quantize(_ONE_DECIMAL, rounding=ROUND_HALF_UP))


def calculate_growth(current: int, previous: int) -> float:
    """Percent change of message volume versus the previous window.

    Returns 0.0 when the previous window had no messages.

    Example:
        >>> calculate_growth(150, 100)
        50.0
        >>> calculate_growth(7, 0)
        0.0
    """
    if previous <= 0:
        return 0.0
    return round_half_up(Decimal(current - previous) / Decimal(previous) * 100)


def average_messages_per_user(total_messages: int, active_users: int) -> float:
    if active_users <= 0:
        return 0.0
    return round_half_up(Decimal(total_messages) / Decimal(active_users))


def find_peak_hour(hourly: Sequence[HourlyActivity]) -> int | None:
    """Hour of day with the most messages (lowest hour wins ties)."""
    best: HourlyActivity | None = None
    for bucket in sorted(hourly, key=lambda item: item.hour):
        if best is None or bucket.count > best.count:
            best = bucket
    return best.hour if best is not None else None


def find_most_active_day(daily: Sequence[DailyActivity]) -> str | None:
    """Weekday name with the most messages (Sunday-first order wins ties)."""
    best: DailyActivity | None = None
    for bucket in sorted(daily, key=lambda item: item.weekday):
        if best is None or bucket.count > best.count:
            best = bucket
    return best.day_name if best is not None else None


def user_id_sort_key(user_id: str) -> tuple[int, int, str]:
    """Order numeric ids numerically, then everything else lexicographically."""
    digits = user_id[1:] if user_id.startswith("-") else user_id
    if digits.isdigit():
        return (0, int(user_id), "")
    return (1, 0, user_id)


def rank_users(
    activities: Sequence[UserActivity],
    scores: Sequence[EngagementScore],
    wallets: dict[str, WalletLink | None],
    channel_id: str,
) -> list[RankedUser]:
    """Order users by score, then message count, then user id.

    Args:
        activities: Per-user message volume rows
        scores: Engagement scores, index-aligned with `activities`
        wallets: Linked wallet per user id (None when not linked)
        channel_id: Channel the ranking belongs to

    Returns:
        RankedUser list with 1-based consecutive ranks
    """
    pairs = sorted(
        zip(activities, scores, strict=True),
        key=lambda pair: (
            -pair[1].score,
            -pair[0].message_count,
            user_id_sort_key(pair[0].user_id),
        ),
    )

    ranked: list[RankedUser] = []
    for position, (activity, score) in enumerate(pairs, start=1):
        wallet = wallets.get(activity.user_id)
        ranked.append(
            RankedUser(
                user_id=activity.user_id,
                channel_id=channel_id,
                rank=position,
                score=score.score,
                message_count=activity.message_count,
                components=score.components,
                degraded=score.degraded,
                username=activity.username,
                first_name=activity.first_name,
                wallet_address=wallet.address if wallet else None,
            )
        )
    return ranked


class ChannelAnalyzer:
    """Computes channel metrics and the engagement ranking."""

    def __init__(
        self,
        store: ActivityStoreProtocol,
        scorer: EngagementScorer,
        *,
        ranking_limit: int = DEFAULT_RANKING_LIMIT,
        call_timeout: float | None = None,
    ) -> None:
        """Initialize analyzer.

        Args:
            store: Activity store accessor
            scorer: Engagement scorer used for ranking
            ranking_limit: Number of most active users to rank
            call_timeout: Timeout (seconds) for each store query
        """
        if ranking_limit < 1:
            raise ValidationError("ranking_limit must be at least 1")
        self._store = store
        self._scorer = scorer
        self._ranking_limit = ranking_limit
        self._call_timeout = call_timeout

    async def analyze(
        self,
        channel_id: str,
        period: AnalysisPeriod = AnalysisPeriod.WEEK,
        *,
        now: datetime | None = None,
    ) -> ChannelAnalysis:
        """Analyze one channel over one period ending at `now`.

        Raises:
            ValidationError: If channel_id is empty
            ChannelAnalysisError: If metrics or the ranking cannot be produced
        """
        if not channel_id:
            raise ValidationError("channel_id must be non-empty")

        generated_at = now or datetime.now(tz=UTC)
        window = AnalysisWindow.ending_at(generated_at, period.hours)
        previous = window.previous()

        metrics = await self._query(
            channel_id,
            "metrics",
            self._store.get_channel_metrics(channel_id, window.start, window.end),
        )
        previous_metrics = await self._query(
            channel_id,
            "previous metrics",
            self._store.get_channel_metrics(channel_id, previous.start, previous.end),
        )
        hourly = await self._query(
            channel_id,
            "hourly activity",
            self._store.get_hourly_activity(channel_id, window.start, window.end),
        )
        daily = await self._query(
            channel_id,
            "daily activity",
            self._store.get_daily_activity(channel_id, window.start, window.end),
        )

        ranked_users = await self.rank(channel_id, window)

        analysis = ChannelAnalysis(
            channel_id=channel_id,
            period=period,
            window=window,
            total_messages=metrics.total_messages,
            active_users=metrics.active_users,
            avg_messages_per_user=average_messages_per_user(
                metrics.total_messages, metrics.active_users
            ),
            previous_total_messages=previous_metrics.total_messages,
            growth=calculate_growth(
                metrics.total_messages, previous_metrics.total_messages
            ),
            peak_hour=find_peak_hour(hourly),
            most_active_day=find_most_active_day(daily),
            ranked_users=ranked_users,
            generated_at=generated_at,
        )

        logger.info(
            "channel_analysis_completed",
            channel_id=channel_id,
            period=period.value,
            total_messages=analysis.total_messages,
            active_users=analysis.active_users,
            ranked_users=len(ranked_users),
            degraded_scores=sum(1 for user in ranked_users if user.degraded),
        )
        return analysis

    async def rank(self, channel_id: str, window: AnalysisWindow) -> list[RankedUser]:
        """Rank the most active users of a channel by engagement score.

        Raises:
            ChannelAnalysisError: If user activity or wallets cannot be read
        """
        activities = await self._query(
            channel_id,
            "user activity",
            self._store.get_user_activity(
                channel_id, window.start, window.end, self._ranking_limit
            ),
        )
        if not activities:
            return []

        scores = await asyncio.gather(
            *(
                self._scorer.score(
                    activity.user_id,
                    channel_id,
                    window,
                    message_count=activity.message_count,
                )
                for activity in activities
            )
        )

        wallets: dict[str, WalletLink | None] = {}
        for activity in activities:
            wallets[activity.user_id] = await self._query(
                channel_id,
                "wallet lookup",
                self._store.get_wallet_for_user(activity.user_id),
            )

        return rank_users(activities, scores, wallets, channel_id)

    async def _query(self, channel_id: str, what: str, call: Awaitable[T]) -> T:
        try:
            return await bounded(call, self._call_timeout)
        except Exception as exc:
            logger.warning(
                "channel_analysis_query_failed",
                channel_id=channel_id,
                query=what,
                error=str(exc),
            )
            raise ChannelAnalysisError(channel_id, f"{what} failed: {exc}") from exc
