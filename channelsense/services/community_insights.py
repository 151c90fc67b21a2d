"""Community insight rules: sentiment trend, trending topics, recommendations."""

import re
from collections import Counter
from collections.abc import Iterable, Sequence
from typing import Final

from channelsense.domain.models import (
    ChannelAnalysis,
    Message,
    RankedUser,
    Recommendation,
    RecommendationPriority,
    SentimentResult,
    SentimentScores,
    SentimentSummary,
    SentimentTrend,
)
from channelsense.domain.reward_constants import (
    NEGATIVE_SENTIMENT_ALERT,
    SENTIMENT_TREND_DELTA,
    TRENDING_TOPICS_LIMIT,
    WALLET_COVERAGE_ALERT,
)

STOP_WORDS: Final[frozenset[str]] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for",
        "of", "with", "by", "is", "are", "was", "were", "be", "been", "being",
        "have", "has", "had", "do", "does", "did", "will", "would", "could",
        "should", "may", "might", "must", "can", "this", "that", "these",
        "those", "i", "you", "he", "she", "it", "we", "they", "me", "him",
        "her", "us", "them",
    }
)

TOPIC_MIN_WORD_LENGTH: Final[int] = 4
"""Words of 3 characters or fewer are never topics."""

NO_MESSAGES_SENTIMENT_SUMMARY: Final[str] = "No messages to analyze in this period."
SENTIMENT_UNAVAILABLE_SUMMARY: Final[str] = (
    "Sentiment analysis temporarily unavailable."
)

_PUNCTUATION_RE = re.compile(r"[^\w\s]")


def extract_trending_topics(
    messages: Iterable[Message], limit: int = TRENDING_TOPICS_LIMIT
) -> list[str]:
    """Most frequent meaningful words across messages.

    Ties keep the order in which the words were first seen.

    Example:
        >>> msgs = [Message(..., text="Staking rewards, staking pools!")]
        >>> extract_trending_topics(msgs)
        ['staking', 'rewards', 'pools']
    """
    counts: Counter[str] = Counter()
    for message in messages:
        if not message.text:
            continue
        cleaned = _PUNCTUATION_RE.sub("", message.text.lower())
        counts.update(
            word
            for word in cleaned.split()
            if len(word) >= TOPIC_MIN_WORD_LENGTH and word not in STOP_WORDS
        )
    # most_common keeps first-seen order for equal counts
    return [word for word, _ in counts.most_common(limit)]


def overall_label(scores: SentimentScores) -> str:
    """Dominant sentiment; ties resolve to Neutral."""
    if scores.positive > max(scores.neutral, scores.negative):
        return "Positive"
    if scores.negative > max(scores.positive, scores.neutral):
        return "Negative"
    return "Neutral"


def sentiment_trend(
    current_positive: int, previous_positive: int | None
) -> SentimentTrend:
    """Compare positive shares of two consecutive windows."""
    if previous_positive is None:
        return SentimentTrend.STABLE
    if current_positive > previous_positive + SENTIMENT_TREND_DELTA:
        return SentimentTrend.IMPROVING
    if current_positive < previous_positive - SENTIMENT_TREND_DELTA:
        return SentimentTrend.DECLINING
    return SentimentTrend.STABLE


def summarize_sentiment(
    current: SentimentResult | None,
    previous: SentimentResult | None = None,
) -> SentimentSummary:
    """Build the report sentiment block from raw generator results.

    Args:
        current: Result for the current window, None when it had no messages
        previous: Result for the previous window, None when it had no messages

    Returns:
        SentimentSummary; degraded when the current result is an error
    """
    if current is None:
        return SentimentSummary(summary=NO_MESSAGES_SENTIMENT_SUMMARY)

    if not current.ok or current.scores is None:
        return SentimentSummary(summary=SENTIMENT_UNAVAILABLE_SUMMARY, degraded=True)

    scores = current.scores
    previous_positive = (
        previous.scores.positive
        if previous is not None and previous.ok and previous.scores is not None
        else None
    )
    return SentimentSummary(
        overall=overall_label(scores),
        positive=scores.positive,
        neutral=scores.neutral,
        negative=scores.negative,
        trend=sentiment_trend(scores.positive, previous_positive),
        summary=scores.summary,
    )


def build_recommendations(
    analysis: ChannelAnalysis,
    sentiment: SentimentSummary,
    ranked_users: Sequence[RankedUser],
) -> list[Recommendation]:
    """Rule-based advice for channel admins, most urgent first."""
    recommendations: list[Recommendation] = []

    if analysis.growth < 0:
        recommendations.append(
            Recommendation(
                type="growth",
                priority=RecommendationPriority.HIGH,
                title="Increase Engagement",
                description=(
                    "Channel activity is declining. Consider posting more "
                    "engaging content or organizing events."
                ),
                action="Host AMAs, contests, or discussion topics",
            )
        )

    if sentiment.negative > NEGATIVE_SENTIMENT_ALERT:
        recommendations.append(
            Recommendation(
                type="sentiment",
                priority=RecommendationPriority.MEDIUM,
                title="Address Negative Sentiment",
                description=(
                    "High negative sentiment detected. Review recent discussions "
                    "and address concerns."
                ),
                action="Moderate discussions and respond to community feedback",
            )
        )

    if ranked_users:
        connected = sum(1 for user in ranked_users if user.has_wallet)
        if connected / len(ranked_users) < WALLET_COVERAGE_ALERT:
            recommendations.append(
                Recommendation(
                    type="wallet",
                    priority=RecommendationPriority.MEDIUM,
                    title="Increase Wallet Connections",
                    description=(
                        f"Only {connected}/{len(ranked_users)} top users have "
                        "connected wallets."
                    ),
                    action="Promote wallet connection benefits and NFT rewards",
                )
            )

    if analysis.peak_hour is not None:
        recommendations.append(
            Recommendation(
                type="timing",
                priority=RecommendationPriority.LOW,
                title="Optimize Posting Time",
                description=(
                    f"Peak activity is at {analysis.peak_hour}:00. Schedule "
                    "important announcements around this time."
                ),
                action="Schedule posts during peak hours for maximum engagement",
            )
        )

    return recommendations
