"""Tests for channel metrics and engagement ranking."""

import asyncio
from collections.abc import Callable
from datetime import datetime, timedelta
from decimal import Decimal
from unittest.mock import AsyncMock

import pytest

from channelsense.adapters.sqlite_store import SQLiteActivityStore
from channelsense.domain.exceptions import (
    ChannelAnalysisError,
    RepositoryError,
    ValidationError,
)
from channelsense.domain.models import (
    AnalysisPeriod,
    AnalysisWindow,
    ChannelUser,
    DailyActivity,
    EngagementScore,
    HourlyActivity,
    Message,
    UserActivity,
    WalletLink,
)
from channelsense.services.channel_analyzer import (
    ChannelAnalyzer,
    average_messages_per_user,
    calculate_growth,
    find_most_active_day,
    find_peak_hour,
    rank_users,
    round_half_up,
)
from channelsense.services.engagement_scorer import EngagementScorer
from tests.conftest import seed_store, spread_messages


def _score(user_id: str, score: int, window: AnalysisWindow) -> EngagementScore:
    return EngagementScore(
        user_id=user_id, channel_id="-1001", window=window, score=score
    )


class TestMetricHelpers:
    """Pure metric arithmetic."""

    def test_growth_with_empty_previous_window_is_zero(self) -> None:
        assert calculate_growth(0, 0) == 0.0
        assert calculate_growth(25, 0) == 0.0

    def test_growth_percentages(self) -> None:
        assert calculate_growth(150, 100) == 50.0
        assert calculate_growth(50, 100) == -50.0
        assert calculate_growth(1, 3) == -66.7
        assert calculate_growth(2, 3) == -33.3

    def test_round_half_up(self) -> None:
        assert round_half_up(Decimal("2.25")) == 2.3
        assert round_half_up(Decimal("2.35")) == 2.4
        assert round_half_up(Decimal("-0.05")) == -0.1

    def test_average_messages_per_user(self) -> None:
        assert average_messages_per_user(0, 0) == 0.0
        assert average_messages_per_user(10, 4) == 2.5
        assert average_messages_per_user(10, 3) == 3.3

    def test_peak_hour_ties_go_to_lowest_hour(self) -> None:
        hourly = [
            HourlyActivity(hour=18, count=5),
            HourlyActivity(hour=9, count=5),
            HourlyActivity(hour=3, count=1),
        ]
        assert find_peak_hour(hourly) == 9

    def test_peak_hour_zero_is_a_real_hour(self) -> None:
        assert find_peak_hour([HourlyActivity(hour=0, count=2)]) == 0
        assert find_peak_hour([]) is None

    def test_most_active_day_ties_follow_sunday_first_order(self) -> None:
        daily = [
            DailyActivity(weekday=3, count=4),
            DailyActivity(weekday=1, count=4),
        ]
        assert find_most_active_day(daily) == "Monday"
        assert find_most_active_day([]) is None


class TestRankUsers:
    """Ordering of the engagement ranking."""

    def test_ties_broken_by_message_count_then_user_id(
        self, week_window: AnalysisWindow
    ) -> None:
        activities = [
            UserActivity(user_id="300", message_count=5),
            UserActivity(user_id="20", message_count=5),
            UserActivity(user_id="100", message_count=9),
            UserActivity(user_id="7", message_count=1),
        ]
        scores = [
            _score("300", 80, week_window),
            _score("20", 80, week_window),
            _score("100", 80, week_window),
            _score("7", 95, week_window),
        ]

        ranked = rank_users(activities, scores, {}, "-1001")

        assert [user.user_id for user in ranked] == ["7", "100", "20", "300"]
        assert [user.rank for user in ranked] == [1, 2, 3, 4]

    def test_wallets_attached(self, week_window: AnalysisWindow) -> None:
        activities = [
            UserActivity(user_id="1", message_count=3),
            UserActivity(user_id="2", message_count=2),
        ]
        scores = [_score("1", 30, week_window), _score("2", 20, week_window)]
        wallets = {"1": WalletLink(user_id="1", address="EQ-one"), "2": None}

        ranked = rank_users(activities, scores, wallets, "-1001")

        assert ranked[0].wallet_address == "EQ-one"
        assert ranked[0].has_wallet is True
        assert ranked[1].has_wallet is False


class TestChannelAnalyzer:
    """Analysis against a real SQLite store."""

    def test_week_metrics(
        self,
        store: SQLiteActivityStore,
        now: datetime,
        make_message: Callable[..., Message],
    ) -> None:
        current = spread_messages(make_message, "1", 6) + spread_messages(
            make_message, "2", 4
        )
        previous = spread_messages(
            make_message, "1", 8, start=now - timedelta(days=10)
        )
        seed_store(
            store,
            messages=current + previous,
            users=[ChannelUser(user_id="1", username="alice")],
            wallets=[WalletLink(user_id="1", address="EQ-alice")],
        )
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        analysis = asyncio.run(analyzer.analyze("-1001", now=now))

        assert analysis.period == AnalysisPeriod.WEEK
        assert analysis.window.end == now
        assert analysis.total_messages == 10
        assert analysis.active_users == 2
        assert analysis.avg_messages_per_user == 5.0
        assert analysis.previous_total_messages == 8
        assert analysis.growth == 25.0
        assert analysis.peak_hour == 12
        assert analysis.most_active_day == "Thursday"
        assert [user.user_id for user in analysis.ranked_users] == ["1", "2"]
        assert analysis.ranked_users[0].username == "alice"
        assert analysis.ranked_users[0].wallet_address == "EQ-alice"
        assert analysis.ranked_users[1].wallet_address is None

    def test_empty_channel(self, store: SQLiteActivityStore, now: datetime) -> None:
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        analysis = asyncio.run(analyzer.analyze("-1001", now=now))

        assert analysis.total_messages == 0
        assert analysis.growth == 0.0
        assert analysis.avg_messages_per_user == 0.0
        assert analysis.peak_hour is None
        assert analysis.most_active_day is None
        assert analysis.ranked_users == []

    def test_analysis_is_repeatable(
        self,
        store: SQLiteActivityStore,
        now: datetime,
        make_message: Callable[..., Message],
    ) -> None:
        seed_store(
            store,
            messages=spread_messages(make_message, "1", 5, hours=3)
            + spread_messages(make_message, "2", 5, hours=3),
        )
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        first = asyncio.run(analyzer.analyze("-1001", now=now))
        second = asyncio.run(analyzer.analyze("-1001", now=now))

        assert first == second

    def test_ranking_limit(
        self,
        store: SQLiteActivityStore,
        now: datetime,
        make_message: Callable[..., Message],
    ) -> None:
        messages: list[Message] = []
        for index in range(5):
            messages += spread_messages(make_message, str(index + 1), index + 1)
        seed_store(store, messages=messages)
        analyzer = ChannelAnalyzer(store, EngagementScorer(store), ranking_limit=2)

        analysis = asyncio.run(analyzer.analyze("-1001", now=now))

        assert [user.user_id for user in analysis.ranked_users] == ["5", "4"]

    def test_day_period(
        self,
        store: SQLiteActivityStore,
        now: datetime,
        make_message: Callable[..., Message],
    ) -> None:
        seed_store(
            store,
            messages=[
                make_message(sent_at=now - timedelta(hours=2)),
                make_message(sent_at=now - timedelta(hours=30)),
            ],
        )
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        analysis = asyncio.run(analyzer.analyze("-1001", AnalysisPeriod.DAY, now=now))

        assert analysis.total_messages == 1
        assert analysis.previous_total_messages == 1
        assert analysis.growth == 0.0

    def test_store_failure_raises_analysis_error(self, now: datetime) -> None:
        store = AsyncMock()
        store.get_channel_metrics.side_effect = RepositoryError("database is locked")
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        with pytest.raises(ChannelAnalysisError) as exc_info:
            asyncio.run(analyzer.analyze("-1001", now=now))

        assert exc_info.value.channel_id == "-1001"
        assert "metrics" in exc_info.value.reason

    def test_empty_channel_id_rejected(self, store: SQLiteActivityStore) -> None:
        analyzer = ChannelAnalyzer(store, EngagementScorer(store))

        with pytest.raises(ValidationError):
            asyncio.run(analyzer.analyze(""))

    def test_invalid_ranking_limit(self, store: SQLiteActivityStore) -> None:
        with pytest.raises(ValidationError):
            ChannelAnalyzer(store, EngagementScorer(store), ranking_limit=0)
