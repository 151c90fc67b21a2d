"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Iterable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from channelsense.adapters.sqlite_store import SQLiteActivityStore
from channelsense.config.settings import Settings
from channelsense.domain.models import (
    AnalysisWindow,
    ChannelUser,
    IssuanceResult,
    Message,
    RewardCandidate,
    WalletLink,
)

RUN_NOW = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
"""Fixed 'now' for reproducible windows (a Sunday)."""


@pytest.fixture
def settings(tmp_path_factory: pytest.TempPathFactory) -> Settings:
    """Settings pointing at a throwaway SQLite file."""
    db_path = tmp_path_factory.mktemp("db") / "test.sqlite"
    return Settings().model_copy(
        update={
            "database_type": "sqlite",
            "db_path": str(db_path),
            "external_call_timeout_seconds": 5.0,
            "min_messages_for_reward": 10,
            "top_users_count": 3,
            "ranking_limit": 10,
            "reward_issue_concurrency": 1,
            "active_channel_min_messages": 10,
            "active_channel_lookback_days": 7,
            "tz_default": "UTC",
        }
    )


@pytest.fixture
def store(settings: Settings) -> SQLiteActivityStore:
    return SQLiteActivityStore(settings.db_path)


@pytest.fixture
def now() -> datetime:
    return RUN_NOW


@pytest.fixture
def week_window(now: datetime) -> AnalysisWindow:
    return AnalysisWindow.ending_at(now, 168)


@pytest.fixture
def make_message() -> Callable[..., Message]:
    """Factory for messages with sensible defaults."""
    counter = {"next_id": 1}

    def _make(
        user_id: str = "42",
        channel_id: str = "-1001",
        *,
        sent_at: datetime | None = None,
        text: str | None = "hello there",
        message_id: int | None = None,
        reply_to_message_id: int | None = None,
        forward_from_channel_id: str | None = None,
        reactions_count: int = 0,
    ) -> Message:
        if message_id is None:
            message_id = counter["next_id"]
            counter["next_id"] += 1
        return Message(
            message_id=message_id,
            channel_id=channel_id,
            user_id=user_id,
            text=text,
            sent_at=sent_at or RUN_NOW - timedelta(days=1),
            reply_to_message_id=reply_to_message_id,
            forward_from_channel_id=forward_from_channel_id,
            reactions_count=reactions_count,
        )

    return _make


def seed_store(
    store: SQLiteActivityStore,
    *,
    messages: Iterable[Message] = (),
    users: Iterable[ChannelUser] = (),
    wallets: Iterable[WalletLink] = (),
) -> None:
    """Write fixture data through the store's own writers."""

    async def _seed() -> None:
        for user in users:
            await store.save_user(user)
        for wallet in wallets:
            await store.save_user_wallet(wallet)
        for message in messages:
            await store.save_message(message)

    asyncio.run(_seed())


def spread_messages(
    make_message: Callable[..., Message],
    user_id: str,
    count: int,
    *,
    channel_id: str = "-1001",
    start: datetime = RUN_NOW - timedelta(days=3),
    hours: int = 1,
) -> list[Message]:
    """`count` messages by one user cycling through `hours` distinct hours."""
    return [
        make_message(
            user_id,
            channel_id,
            sent_at=start + timedelta(hours=index % hours, minutes=index),
        )
        for index in range(count)
    ]


class FakeIssuer:
    """Reward issuer double that records calls and can fail per user."""

    def __init__(
        self,
        *,
        fail_users: set[str] | None = None,
        decline_users: set[str] | None = None,
    ) -> None:
        self.calls: list[tuple[str, str, dict[str, Any]]] = []
        self._fail_users = fail_users or set()
        self._decline_users = decline_users or set()

    async def issue_reward(
        self, candidate: RewardCandidate, channel_id: str, metadata: dict[str, Any]
    ) -> IssuanceResult:
        self.calls.append((candidate.user_id, channel_id, metadata))
        if candidate.user_id in self._fail_users:
            raise ConnectionError("minting service unreachable")
        if candidate.user_id in self._decline_users:
            return IssuanceResult(success=False, error="collection paused")
        return IssuanceResult(
            success=True,
            token_address=f"EQ-token-{candidate.user_id}",
            tx_ref=f"tx-{candidate.user_id}",
        )


class FakeNotifier:
    """Notifier double that records messages and can fail for given chats."""

    def __init__(self, *, fail_chats: set[str] | None = None) -> None:
        self.user_messages: list[tuple[str, str]] = []
        self.channel_messages: list[tuple[str, str]] = []
        self._fail_chats = fail_chats or set()

    async def notify_user(self, user_id: str, text: str) -> None:
        if user_id in self._fail_chats:
            raise ConnectionError("user blocked the bot")
        self.user_messages.append((user_id, text))

    async def notify_channel(self, channel_id: str, text: str) -> None:
        if channel_id in self._fail_chats:
            raise ConnectionError("bot removed from channel")
        self.channel_messages.append((channel_id, text))
