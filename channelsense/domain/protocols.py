"""Protocol definitions for dependency inversion.

These abstract interfaces define the contracts that adapters must implement.
Every collaborator call is asynchronous and may be bounded by a timeout.
"""

from datetime import datetime
from typing import Any, Protocol

from channelsense.domain.models import (
    ActiveChannel,
    ChannelInfo,
    ChannelMetrics,
    ChannelUser,
    DailyActivity,
    HourlyActivity,
    IssuanceResult,
    Message,
    MessageInteractions,
    NarrativeResult,
    RewardCandidate,
    RewardOutcome,
    SentimentResult,
    UserActivity,
    WalletLink,
    WeeklyReport,
)


class ActivityStoreProtocol(Protocol):
    """Query and append contract over persisted chat activity.

    "Not found" is reported as None or an empty collection; storage
    failures raise RepositoryError.
    """

    async def get_active_channels(
        self, since: datetime, min_messages: int, until: datetime | None = None
    ) -> list[ActiveChannel]:
        """Channels with more than `min_messages` messages in [since, until)."""
        ...

    async def get_channel_metrics(
        self, channel_id: str, start: datetime, end: datetime
    ) -> ChannelMetrics:
        """Total messages and distinct authors in [start, end)."""
        ...

    async def get_user_activity(
        self, channel_id: str, start: datetime, end: datetime, limit: int
    ) -> list[UserActivity]:
        """Most active users in [start, end), by message count descending."""
        ...

    async def get_user_messages(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> list[Message]:
        ...

    async def get_message_interactions(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> MessageInteractions:
        """Replies and reactions received on the user's messages in the window."""
        ...

    async def get_user_activity_hours(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> list[int]:
        """Distinct hours of day (UTC) in which the user posted."""
        ...

    async def get_hourly_activity(
        self, channel_id: str, start: datetime, end: datetime
    ) -> list[HourlyActivity]:
        ...

    async def get_daily_activity(
        self, channel_id: str, start: datetime, end: datetime
    ) -> list[DailyActivity]:
        ...

    async def get_recent_messages(self, channel_id: str, limit: int) -> list[Message]:
        """Latest messages with non-empty text, newest first."""
        ...

    async def get_messages_in_window(
        self, channel_id: str, start: datetime, end: datetime, limit: int
    ) -> list[Message]:
        """Messages with non-empty text in [start, end), newest first."""
        ...

    async def get_wallet_for_user(self, user_id: str) -> WalletLink | None:
        ...

    async def append_reward_outcome(self, outcome: RewardOutcome) -> None:
        ...

    async def append_weekly_report(self, report: WeeklyReport) -> None:
        ...

    async def get_reward_outcomes(self, run_id: str) -> list[RewardOutcome]:
        ...

    async def get_user_rewards(self, user_id: str) -> list[RewardOutcome]:
        """Successful rewards for a user, newest first."""
        ...

    async def get_weekly_reports(self, channel_id: str) -> list[WeeklyReport]:
        ...

    async def save_message(self, message: Message) -> None:
        ...

    async def save_user(self, user: ChannelUser) -> None:
        ...

    async def save_channel(self, channel: ChannelInfo) -> None:
        ...

    async def save_user_wallet(self, wallet: WalletLink) -> None:
        ...


class RewardIssuerProtocol(Protocol):
    """Reward token issuance (NFT minting service)."""

    async def issue_reward(
        self,
        candidate: RewardCandidate,
        channel_id: str,
        metadata: dict[str, Any],
    ) -> IssuanceResult:
        """Issue one reward.

        Not idempotent: callers must not repeat a call for the same
        (user, channel) within one run.

        Raises:
            RewardIssuanceError: On transport or service errors
        """
        ...


class NarrativeGeneratorProtocol(Protocol):
    """LLM-backed text generation. Never raises; errors are returned."""

    async def generate_insights(
        self, messages: list[Message], metrics: dict[str, Any]
    ) -> NarrativeResult:
        ...

    async def generate_sentiment(self, messages: list[Message]) -> SentimentResult:
        ...


class NotifierProtocol(Protocol):
    """Outbound chat messages."""

    async def notify_user(self, user_id: str, text: str) -> None:
        """Raises NotificationError on delivery failure."""
        ...

    async def notify_channel(self, channel_id: str, text: str) -> None:
        """Raises NotificationError on delivery failure."""
        ...
