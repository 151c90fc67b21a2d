"""Engagement scorer for channel members.

Scores one user in one channel and window from additive integer signals:
- Messages authored (base)
- Replies sent
- Long messages
- Forwards from other channels
- Replies received
- Reactions received
- Activity spread across the day (consistency bonus)
"""

from collections.abc import Awaitable, Iterable
from typing import TypeVar

from channelsense.config.logging_config import get_logger
from channelsense.domain.exceptions import DegradedSignalError, ValidationError
from channelsense.domain.models import (
    AnalysisWindow,
    EngagementScore,
    Message,
    MessageInteractions,
    UserActivityWindow,
)
from channelsense.domain.protocols import ActivityStoreProtocol
from channelsense.domain.scoring_constants import (
    COMPONENT_CONSISTENCY,
    COMPONENT_FORWARDS,
    COMPONENT_LONG_MESSAGES,
    COMPONENT_MESSAGES,
    COMPONENT_REACTIONS_RECEIVED,
    COMPONENT_REPLIES_RECEIVED,
    COMPONENT_REPLIES_SENT,
    CONSISTENCY_BONUS,
    CONSISTENCY_MIN_DISTINCT_HOURS,
    FORWARD_WEIGHT,
    LONG_MESSAGE_MIN_CHARS,
    LONG_MESSAGE_WEIGHT,
    MESSAGE_WEIGHT,
    REACTION_RECEIVED_WEIGHT,
    REPLY_RECEIVED_WEIGHT,
    REPLY_SENT_WEIGHT,
)
from channelsense.services.bounded_calls import bounded

logger = get_logger(__name__)

T = TypeVar("T")


def build_activity_window(
    user_id: str,
    channel_id: str,
    window: AnalysisWindow,
    messages: Iterable[Message],
    interactions: MessageInteractions,
    active_hours: Iterable[int],
    message_count: int | None = None,
) -> UserActivityWindow:
    """Derive the per-user signals from raw messages and interaction counts.

    Args:
        user_id: Author whose messages are given
        channel_id: Channel the messages belong to
        window: Analysis window
        messages: The user's messages inside the window
        interactions: Replies/reactions received on those messages
        active_hours: Distinct hours of day the user posted in
        message_count: Authoritative message count (defaults to len(messages))

    Returns:
        UserActivityWindow with all counts populated
    """
    message_list = list(messages)
    return UserActivityWindow(
        user_id=user_id,
        channel_id=channel_id,
        window=window,
        message_count=len(message_list) if message_count is None else message_count,
        reply_count=sum(1 for message in message_list if message.is_reply),
        long_message_count=sum(
            1
            for message in message_list
            if message.text_length > LONG_MESSAGE_MIN_CHARS
        ),
        forward_count=sum(1 for message in message_list if message.is_forward),
        replies_received=interactions.replies,
        reactions_received=interactions.reactions,
        distinct_active_hours=frozenset(active_hours),
    )


def calculate_components(activity: UserActivityWindow) -> dict[str, int]:
    """Calculate each signal's contribution.

    Example:
        >>> activity = UserActivityWindow(..., message_count=12, replies_received=3)
        >>> calculate_components(activity)[COMPONENT_REPLIES_RECEIVED]
        24
    """
    consistency = (
        CONSISTENCY_BONUS
        if len(activity.distinct_active_hours) > CONSISTENCY_MIN_DISTINCT_HOURS
        else 0
    )
    return {
        COMPONENT_MESSAGES: activity.message_count * MESSAGE_WEIGHT,
        COMPONENT_REPLIES_SENT: activity.reply_count * REPLY_SENT_WEIGHT,
        COMPONENT_LONG_MESSAGES: activity.long_message_count * LONG_MESSAGE_WEIGHT,
        COMPONENT_FORWARDS: activity.forward_count * FORWARD_WEIGHT,
        COMPONENT_REPLIES_RECEIVED: activity.replies_received * REPLY_RECEIVED_WEIGHT,
        COMPONENT_REACTIONS_RECEIVED: (
            activity.reactions_received * REACTION_RECEIVED_WEIGHT
        ),
        COMPONENT_CONSISTENCY: consistency,
    }


def score_activity(activity: UserActivityWindow) -> EngagementScore:
    """Turn a UserActivityWindow into an EngagementScore."""
    components = calculate_components(activity)
    return EngagementScore(
        user_id=activity.user_id,
        channel_id=activity.channel_id,
        window=activity.window,
        score=sum(components.values()),
        components=components,
    )


def base_score(
    user_id: str, channel_id: str, window: AnalysisWindow, message_count: int
) -> EngagementScore:
    """Volume-only score used when the other signals are unavailable."""
    base = message_count * MESSAGE_WEIGHT
    return EngagementScore(
        user_id=user_id,
        channel_id=channel_id,
        window=window,
        score=base,
        components={COMPONENT_MESSAGES: base},
        degraded=True,
    )


class EngagementScorer:
    """Computes engagement scores from the activity store."""

    def __init__(
        self,
        store: ActivityStoreProtocol,
        *,
        call_timeout: float | None = None,
    ) -> None:
        """Initialize scorer.

        Args:
            store: Activity store accessor
            call_timeout: Timeout (seconds) for each signal query
        """
        self._store = store
        self._call_timeout = call_timeout

    async def score(
        self,
        user_id: str,
        channel_id: str,
        window: AnalysisWindow,
        *,
        message_count: int | None = None,
    ) -> EngagementScore:
        """Score one user in one channel and window.

        A failing signal query does not fail the call: the score falls back
        to the message-volume base and is flagged as degraded.

        Args:
            user_id: User to score
            channel_id: Channel to score in
            window: Analysis window
            message_count: Known message count (e.g. from the ranking query)

        Returns:
            EngagementScore with per-signal components

        Raises:
            ValidationError: If an identifier is empty
        """
        if not user_id or not channel_id:
            raise ValidationError("user_id and channel_id must be non-empty")

        known_count = message_count
        try:
            messages = await self._fetch_signal(
                "messages",
                self._store.get_user_messages(
                    user_id, channel_id, window.start, window.end
                ),
            )
            if known_count is None:
                known_count = len(messages)

            interactions = await self._fetch_signal(
                "interactions",
                self._store.get_message_interactions(
                    user_id, channel_id, window.start, window.end
                ),
            )
            active_hours = await self._fetch_signal(
                "activity_hours",
                self._store.get_user_activity_hours(
                    user_id, channel_id, window.start, window.end
                ),
            )
        except DegradedSignalError as exc:
            logger.warning(
                "engagement_signal_degraded",
                user_id=user_id,
                channel_id=channel_id,
                signal=exc.signal,
                error=str(exc),
            )
            return base_score(user_id, channel_id, window, known_count or 0)

        activity = build_activity_window(
            user_id,
            channel_id,
            window,
            messages,
            interactions,
            active_hours,
            message_count=known_count,
        )
        return score_activity(activity)

    async def _fetch_signal(self, signal: str, call: Awaitable[T]) -> T:
        try:
            return await bounded(call, self._call_timeout)
        except Exception as exc:
            raise DegradedSignalError(signal, exc) from exc
