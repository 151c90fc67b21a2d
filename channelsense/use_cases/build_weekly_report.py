"""Weekly report use case.

Assembles the per-channel weekly report: analysis, reward candidates,
sentiment with trend, trending topics, growth chart, AI insights and
recommendations. Only the analysis is mandatory; the narrative parts fall
back to canned text when the LLM or their store queries are unavailable.
"""

from collections.abc import Awaitable
from datetime import date, datetime, time, timedelta
from typing import Final, TypeVar

import pytz

from channelsense.config.logging_config import get_logger
from channelsense.domain.models import (
    ActiveChannel,
    AnalysisPeriod,
    AnalysisWindow,
    ChannelAnalysis,
    GrowthPoint,
    Message,
    SentimentResult,
    SentimentSummary,
    WeeklyReport,
    WeeklyReportSummary,
)
from channelsense.domain.protocols import (
    ActivityStoreProtocol,
    NarrativeGeneratorProtocol,
)
from channelsense.domain.reward_constants import (
    DEFAULT_MIN_MESSAGES_FOR_REWARD,
    DEFAULT_TOP_USERS_COUNT,
    GROWTH_CHART_DAYS,
    INSIGHT_MESSAGE_LIMIT,
    PREVIOUS_SENTIMENT_SAMPLE_LIMIT,
    SENTIMENT_SAMPLE_LIMIT,
)
from channelsense.services.bounded_calls import bounded
from channelsense.services.channel_analyzer import ChannelAnalyzer
from channelsense.services.community_insights import (
    SENTIMENT_UNAVAILABLE_SUMMARY,
    build_recommendations,
    extract_trending_topics,
    summarize_sentiment,
)
from channelsense.services.reward_selector import select_reward_candidates

logger = get_logger(__name__)

T = TypeVar("T")

NO_RECENT_MESSAGES_TEXT: Final[str] = "No recent messages to analyze."
INSIGHTS_FALLBACK_TEXT: Final[str] = (
    "AI analysis temporarily unavailable. Based on the metrics, the channel "
    "shows moderate activity with room for increased engagement."
)


def growth_chart_days(now: datetime, tz_name: str, days: int) -> list[AnalysisWindow]:
    """Calendar-day windows (in `tz_name`) for the last `days` days, oldest first."""
    tz = pytz.timezone(tz_name)
    today = now.astimezone(tz).date()

    def _midnight(day: date) -> datetime:
        return tz.localize(datetime.combine(day, time.min))

    windows = []
    for offset in range(days - 1, -1, -1):
        day = today - timedelta(days=offset)
        windows.append(
            AnalysisWindow(
                start=_midnight(day), end=_midnight(day + timedelta(days=1))
            )
        )
    return windows


class WeeklyReportBuilder:
    """Builds one channel's weekly report."""

    def __init__(
        self,
        store: ActivityStoreProtocol,
        analyzer: ChannelAnalyzer,
        narrative: NarrativeGeneratorProtocol,
        *,
        min_messages: int = DEFAULT_MIN_MESSAGES_FOR_REWARD,
        top_n: int = DEFAULT_TOP_USERS_COUNT,
        tz_name: str = "UTC",
        call_timeout: float | None = None,
    ) -> None:
        self._store = store
        self._analyzer = analyzer
        self._narrative = narrative
        self._min_messages = min_messages
        self._top_n = top_n
        self._tz_name = tz_name
        self._call_timeout = call_timeout

    async def build(
        self, channel: ActiveChannel, run_id: str, now: datetime
    ) -> WeeklyReport:
        """Build the report for one channel.

        Raises:
            ChannelAnalysisError: If channel metrics or ranking are unavailable
        """
        analysis = await self._analyzer.analyze(
            channel.channel_id, AnalysisPeriod.WEEK, now=now
        )
        candidates = select_reward_candidates(
            analysis.ranked_users, self._min_messages, self._top_n
        )
        sentiment, topics = await self._sentiment(channel.channel_id, analysis.window)
        narrative_text = await self._insights(channel.channel_id, analysis)
        growth_chart = await self._growth_chart(channel.channel_id, now)

        logger.info(
            "weekly_report_built",
            channel_id=channel.channel_id,
            ranked_users=len(analysis.ranked_users),
            candidates=len(candidates),
            sentiment_degraded=sentiment.degraded,
        )

        return WeeklyReport(
            run_id=run_id,
            channel_id=channel.channel_id,
            channel_title=channel.title,
            generated_at=now,
            period_start=analysis.window.start,
            period_end=analysis.window.end,
            summary=WeeklyReportSummary(
                total_messages=analysis.total_messages,
                active_users=analysis.active_users,
                growth=analysis.growth,
                avg_messages_per_user=analysis.avg_messages_per_user,
                peak_hour=analysis.peak_hour,
                most_active_day=analysis.most_active_day,
                sentiment=sentiment.overall,
            ),
            ranked_users=analysis.ranked_users,
            reward_candidates=candidates,
            sentiment=sentiment,
            trending_topics=topics,
            recommendations=build_recommendations(
                analysis, sentiment, analysis.ranked_users
            ),
            growth_chart=growth_chart,
            narrative_text=narrative_text,
        )

    async def _sentiment(
        self, channel_id: str, window: AnalysisWindow
    ) -> tuple[SentimentSummary, list[str]]:
        previous = window.previous()
        try:
            messages = await self._call(
                self._store.get_messages_in_window(
                    channel_id, window.start, window.end, SENTIMENT_SAMPLE_LIMIT
                )
            )
            if not messages:
                return summarize_sentiment(None), []

            current = await self._call(self._narrative.generate_sentiment(messages))
            previous_messages = await self._call(
                self._store.get_messages_in_window(
                    channel_id,
                    previous.start,
                    previous.end,
                    PREVIOUS_SENTIMENT_SAMPLE_LIMIT,
                )
            )
            previous_result: SentimentResult | None = None
            if previous_messages:
                previous_result = await self._call(
                    self._narrative.generate_sentiment(previous_messages)
                )
        except Exception as exc:
            logger.warning(
                "weekly_report_sentiment_degraded",
                channel_id=channel_id,
                error=str(exc),
            )
            return (
                SentimentSummary(summary=SENTIMENT_UNAVAILABLE_SUMMARY, degraded=True),
                [],
            )

        return summarize_sentiment(current, previous_result), extract_trending_topics(
            messages
        )

    async def _insights(self, channel_id: str, analysis: ChannelAnalysis) -> str:
        try:
            messages: list[Message] = await self._call(
                self._store.get_recent_messages(channel_id, INSIGHT_MESSAGE_LIMIT)
            )
            if not messages:
                return NO_RECENT_MESSAGES_TEXT
            result = await self._call(
                self._narrative.generate_insights(
                    messages,
                    {
                        "total_messages": analysis.total_messages,
                        "active_users": analysis.active_users,
                        "avg_messages_per_user": analysis.avg_messages_per_user,
                    },
                )
            )
        except Exception as exc:
            logger.warning(
                "weekly_report_insights_degraded", channel_id=channel_id, error=str(exc)
            )
            return INSIGHTS_FALLBACK_TEXT

        if not result.ok or not result.text:
            logger.info(
                "weekly_report_insights_fallback",
                channel_id=channel_id,
                reason=result.error,
            )
            return INSIGHTS_FALLBACK_TEXT
        return result.text

    async def _growth_chart(self, channel_id: str, now: datetime) -> list[GrowthPoint]:
        points: list[GrowthPoint] = []
        try:
            for day in growth_chart_days(now, self._tz_name, GROWTH_CHART_DAYS):
                metrics = await self._call(
                    self._store.get_channel_metrics(channel_id, day.start, day.end)
                )
                points.append(
                    GrowthPoint(
                        date=day.start.date().isoformat(),
                        messages=metrics.total_messages,
                        active_users=metrics.active_users,
                    )
                )
        except Exception as exc:
            logger.warning(
                "weekly_report_growth_chart_degraded",
                channel_id=channel_id,
                error=str(exc),
            )
            return []
        return points

    async def _call(self, call: Awaitable[T]) -> T:
        return await bounded(call, self._call_timeout)
