"""Domain models for ChannelSense.

All models use Pydantic v2 for validation and serialization.
"""

from datetime import UTC, datetime, timedelta
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from channelsense.domain.reward_constants import PERIOD_HOURS, WEEKDAY_NAMES
from channelsense.domain.scoring_constants import HOURS_PER_DAY


class AnalysisPeriod(str, Enum):
    """Supported analysis periods."""

    DAY = "day"
    WEEK = "week"
    MONTH = "month"

    @property
    def hours(self) -> int:
        return PERIOD_HOURS[self.value]


class SentimentTrend(str, Enum):
    """Direction of sentiment compared with the previous period."""

    IMPROVING = "Improving"
    DECLINING = "Declining"
    STABLE = "Stable"


class RecommendationPriority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class RunState(str, Enum):
    """Weekly reward run states, in the order a run walks through them."""

    IDLE = "idle"
    ENUMERATING_CHANNELS = "enumerating_channels"
    ANALYZING = "analyzing"
    SELECTING = "selecting"
    ISSUING = "issuing"
    RECORDING = "recording"
    NOTIFYING = "notifying"
    COMPLETED = "completed"


class ChannelRunStatus(str, Enum):
    """Terminal status of one channel inside a weekly run."""

    REWARDED = "rewarded"
    NO_CANDIDATES = "no_candidates"
    DRY_RUN = "dry_run"
    ALREADY_RECORDED = "already_recorded"
    FAILED = "failed"


class WalletSessionState(str, Enum):
    PENDING = "pending"
    CONNECTED = "connected"
    EXPIRED = "expired"


# === Stored records ===


class Message(BaseModel):
    """One user-authored message in one channel. Immutable once recorded."""

    model_config = ConfigDict(frozen=True)

    message_id: int = Field(..., description="Telegram message ID within the chat")
    channel_id: str = Field(..., min_length=1, description="Chat/channel ID")
    user_id: str = Field(..., min_length=1, description="Author user ID")
    text: str | None = Field(default=None, description="Message text")
    sent_at: datetime = Field(..., description="Message timestamp (UTC)")
    reply_to_message_id: int | None = Field(
        default=None, description="ID of the message this one replies to"
    )
    forward_from_channel_id: str | None = Field(
        default=None, description="Source chat when the message is a forward"
    )
    reactions_count: int = Field(
        default=0, ge=0, description="Reactions received on this message"
    )

    @property
    def is_reply(self) -> bool:
        return self.reply_to_message_id is not None

    @property
    def is_forward(self) -> bool:
        return bool(self.forward_from_channel_id)

    @property
    def text_length(self) -> int:
        return len(self.text) if self.text else 0


class ChannelUser(BaseModel):
    """Telegram user profile as seen by the bot."""

    user_id: str = Field(..., min_length=1)
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    language_code: str | None = None


class ChannelInfo(BaseModel):
    """Telegram chat metadata."""

    channel_id: str = Field(..., min_length=1)
    title: str | None = None
    username: str | None = None
    type: str | None = None
    member_count: int | None = None
    description: str | None = None


class ActiveChannel(BaseModel):
    """Channel returned by active-channel enumeration."""

    channel_id: str
    title: str | None = None
    username: str | None = None
    message_count: int = Field(default=0, ge=0)

    @property
    def display_name(self) -> str:
        return self.title or self.channel_id


class WalletLink(BaseModel):
    """Reward destination linked to a user."""

    user_id: str
    address: str = Field(..., min_length=1)
    chain: str | None = None
    public_key: str | None = None
    connected_at: datetime | None = None


# === Windows and aggregates ===


class AnalysisWindow(BaseModel):
    """Half-open time interval [start, end)."""

    model_config = ConfigDict(frozen=True)

    start: datetime
    end: datetime

    @model_validator(mode="after")
    def validate_bounds(self) -> "AnalysisWindow":
        if self.start >= self.end:
            raise ValueError("window start must be before window end")
        return self

    @classmethod
    def ending_at(cls, end: datetime, hours: int) -> "AnalysisWindow":
        """Window of `hours` length that ends (exclusively) at `end`."""
        return cls(start=end - timedelta(hours=hours), end=end)

    @property
    def duration(self) -> timedelta:
        return self.end - self.start

    def previous(self) -> "AnalysisWindow":
        """Immediately preceding window of equal length."""
        return AnalysisWindow(start=self.start - self.duration, end=self.start)

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


class ChannelMetrics(BaseModel):
    total_messages: int = Field(default=0, ge=0)
    active_users: int = Field(default=0, ge=0)


class UserActivity(BaseModel):
    """Per-user message volume row, ordered by message count."""

    user_id: str
    message_count: int = Field(..., ge=0)
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class MessageInteractions(BaseModel):
    """Interactions received on one user's messages."""

    replies: int = Field(default=0, ge=0)
    reactions: int = Field(default=0, ge=0)


class HourlyActivity(BaseModel):
    hour: int = Field(..., ge=0, lt=HOURS_PER_DAY)
    count: int = Field(..., ge=0)


class DailyActivity(BaseModel):
    weekday: int = Field(..., ge=0, le=6, description="0 = Sunday")
    count: int = Field(..., ge=0)

    @property
    def day_name(self) -> str:
        return WEEKDAY_NAMES[self.weekday]


class UserActivityWindow(BaseModel):
    """Signals derived for one user in one channel and window."""

    user_id: str
    channel_id: str
    window: AnalysisWindow
    message_count: int = Field(default=0, ge=0)
    reply_count: int = Field(default=0, ge=0)
    long_message_count: int = Field(default=0, ge=0)
    forward_count: int = Field(default=0, ge=0)
    replies_received: int = Field(default=0, ge=0)
    reactions_received: int = Field(default=0, ge=0)
    distinct_active_hours: frozenset[int] = Field(default_factory=frozenset)

    @field_validator("distinct_active_hours")
    @classmethod
    def validate_hours(cls, v: frozenset[int]) -> frozenset[int]:
        """Hours must be hours of the day."""
        invalid = [hour for hour in v if not 0 <= hour < HOURS_PER_DAY]
        if invalid:
            raise ValueError(f"Invalid hours of day: {sorted(invalid)}")
        return v


class EngagementScore(BaseModel):
    """Engagement score with its per-signal breakdown."""

    user_id: str
    channel_id: str
    window: AnalysisWindow
    score: int = Field(..., ge=0)
    components: dict[str, int] = Field(default_factory=dict)
    degraded: bool = Field(
        default=False, description="True when only the base score could be computed"
    )

    @field_validator("components")
    @classmethod
    def validate_components(cls, v: dict[str, int]) -> dict[str, int]:
        negative = {name: value for name, value in v.items() if value < 0}
        if negative:
            raise ValueError(f"Score components must be non-negative: {negative}")
        return v


class RankedUser(BaseModel):
    """Engagement score plus rank within a channel and window."""

    user_id: str
    channel_id: str
    rank: int = Field(..., ge=1)
    score: int = Field(..., ge=0)
    message_count: int = Field(..., ge=0)
    components: dict[str, int] = Field(default_factory=dict)
    degraded: bool = False
    username: str | None = None
    first_name: str | None = None
    wallet_address: str | None = None

    @property
    def has_wallet(self) -> bool:
        return bool(self.wallet_address)

    @property
    def display_name(self) -> str:
        return self.username or self.first_name or "Unknown"


class RewardCandidate(RankedUser):
    """Ranked user that passed eligibility filtering."""

    wallet_linked: bool = True
    reward_rank: int = Field(
        ..., ge=1, description="Position among the selected candidates (reward tier)"
    )


# === Collaborator results ===


class IssuanceResult(BaseModel):
    """Response of the reward issuance collaborator."""

    success: bool
    token_address: str | None = None
    tx_ref: str | None = None
    error: str | None = None


class RewardOutcome(BaseModel):
    """One reward attempt. Appended to the reward ledger, never updated."""

    model_config = ConfigDict(frozen=True)

    run_id: str
    user_id: str
    channel_id: str
    succeeded: bool
    reward_token_address: str | None = None
    transaction_reference: str | None = None
    failure_reason: str | None = None
    reward_rank: int | None = None
    metadata: dict[str, Any] = Field(default_factory=dict)
    recorded_at: datetime = Field(default_factory=lambda: datetime.now(tz=UTC))


class NarrativeResult(BaseModel):
    """Text generation result: either text or an error, never both."""

    text: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.text)


class SentimentScores(BaseModel):
    positive: int = Field(..., ge=0, le=100)
    neutral: int = Field(..., ge=0, le=100)
    negative: int = Field(..., ge=0, le=100)
    summary: str = ""


class SentimentResult(BaseModel):
    """Sentiment generation result: either scores or an error."""

    scores: SentimentScores | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.scores is not None


# === Reports ===


class ChannelAnalysis(BaseModel):
    """Channel metrics for one period plus the ranked users."""

    channel_id: str
    period: AnalysisPeriod
    window: AnalysisWindow
    total_messages: int = Field(default=0, ge=0)
    active_users: int = Field(default=0, ge=0)
    avg_messages_per_user: float = 0.0
    previous_total_messages: int = Field(default=0, ge=0)
    growth: float = Field(
        default=0.0, description="Percent change vs previous window (0 when undefined)"
    )
    peak_hour: int | None = None
    most_active_day: str | None = None
    ranked_users: list[RankedUser] = Field(default_factory=list)
    generated_at: datetime


class SentimentSummary(BaseModel):
    overall: str = "Neutral"
    positive: int = 0
    neutral: int = 100
    negative: int = 0
    trend: SentimentTrend = SentimentTrend.STABLE
    summary: str = ""
    degraded: bool = False


class Recommendation(BaseModel):
    type: str
    priority: RecommendationPriority
    title: str
    description: str
    action: str


class GrowthPoint(BaseModel):
    date: str = Field(..., description="YYYY-MM-DD")
    messages: int = Field(default=0, ge=0)
    active_users: int = Field(default=0, ge=0)


class WeeklyReportSummary(BaseModel):
    total_messages: int
    active_users: int
    growth: float
    avg_messages_per_user: float
    peak_hour: int | None = None
    most_active_day: str | None = None
    sentiment: str = "Neutral"


class WeeklyReport(BaseModel):
    """Immutable weekly snapshot for one channel, keyed by run_id."""

    run_id: str
    channel_id: str
    channel_title: str | None = None
    generated_at: datetime
    period_start: datetime
    period_end: datetime
    summary: WeeklyReportSummary
    ranked_users: list[RankedUser] = Field(default_factory=list)
    reward_candidates: list[RewardCandidate] = Field(default_factory=list)
    outcomes: list[RewardOutcome] = Field(default_factory=list)
    sentiment: SentimentSummary = Field(default_factory=SentimentSummary)
    trending_topics: list[str] = Field(default_factory=list)
    recommendations: list[Recommendation] = Field(default_factory=list)
    growth_chart: list[GrowthPoint] = Field(default_factory=list)
    narrative_text: str = ""


# === Use case results ===


class ChannelRunResult(BaseModel):
    """What happened to one channel during a weekly run."""

    channel_id: str
    status: ChannelRunStatus
    candidates: int = 0
    rewards_issued: int = 0
    rewards_failed: int = 0
    outcomes_unrecorded: int = 0
    notifications_failed: int = 0
    report_recorded: bool = False
    error: str | None = None


class WeeklyRewardRunResult(BaseModel):
    """Result of one weekly reward run."""

    run_id: str
    started_at: datetime
    completed_at: datetime | None = None
    state: RunState = RunState.IDLE
    channels_found: int = 0
    channels: list[ChannelRunResult] = Field(default_factory=list)

    @property
    def rewards_issued(self) -> int:
        return sum(channel.rewards_issued for channel in self.channels)

    @property
    def rewards_failed(self) -> int:
        return sum(channel.rewards_failed for channel in self.channels)

    @property
    def channels_failed(self) -> list[str]:
        return [
            channel.channel_id
            for channel in self.channels
            if channel.status == ChannelRunStatus.FAILED
        ]

    @property
    def errors(self) -> list[str]:
        return [
            f"Channel {channel.channel_id}: {channel.error}"
            for channel in self.channels
            if channel.error
        ]


class RecordMessageResult(BaseModel):
    """Result of recording one inbound chat update."""

    saved: bool
    reason: str | None = None
    channel_id: str | None = None
    user_id: str | None = None


class WalletSession(BaseModel):
    """Pending or connected wallet-link session for one user."""

    user_id: str
    state: WalletSessionState = WalletSessionState.PENDING
    created_at: datetime
    expires_at: datetime
    address: str | None = None
    connected_at: datetime | None = None
