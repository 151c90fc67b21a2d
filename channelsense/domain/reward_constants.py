"""Reward eligibility, analysis period and run defaults."""

from typing import Final

DEFAULT_MIN_MESSAGES_FOR_REWARD: Final[int] = 10
"""Minimum messages in the week before a user can be rewarded."""

DEFAULT_TOP_USERS_COUNT: Final[int] = 3
"""Number of rewards handed out per channel per week."""

DEFAULT_RANKING_LIMIT: Final[int] = 10
"""Number of users ranked per channel (top-K by engagement)."""

DEFAULT_ACTIVE_CHANNEL_MIN_MESSAGES: Final[int] = 10
"""A channel is active when it had MORE than this many messages in the lookback."""

DEFAULT_ACTIVE_CHANNEL_LOOKBACK_DAYS: Final[int] = 7

DEFAULT_REWARD_ISSUE_CONCURRENCY: Final[int] = 1
"""Parallel issuance calls within one channel. 1 means strictly sequential."""

DEFAULT_EXTERNAL_CALL_TIMEOUT_SECONDS: Final[float] = 30.0

PERIOD_HOURS: Final[dict[str, int]] = {
    "day": 24,
    "week": 24 * 7,
    "month": 24 * 30,
}
"""Fixed window length for each analysis period."""

WEEKDAY_NAMES: Final[tuple[str, ...]] = (
    "Sunday",
    "Monday",
    "Tuesday",
    "Wednesday",
    "Thursday",
    "Friday",
    "Saturday",
)
"""Weekday names indexed like SQLite strftime('%w') (Sunday = 0)."""

# Sentiment trend
SENTIMENT_TREND_DELTA: Final[int] = 10
"""Positive-share change (percentage points) needed to call a trend."""

SENTIMENT_SAMPLE_LIMIT: Final[int] = 200
PREVIOUS_SENTIMENT_SAMPLE_LIMIT: Final[int] = 100
INSIGHT_MESSAGE_LIMIT: Final[int] = 50

# Recommendations
NEGATIVE_SENTIMENT_ALERT: Final[int] = 30
"""Negative share above which moderation is recommended."""

WALLET_COVERAGE_ALERT: Final[float] = 0.5
"""Share of ranked users with wallets below which wallet promotion is advised."""

TRENDING_TOPICS_LIMIT: Final[int] = 5
GROWTH_CHART_DAYS: Final[int] = 7
