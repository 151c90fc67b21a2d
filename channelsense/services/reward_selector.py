"""Reward eligibility filter and top-N selection."""

from collections.abc import Sequence

from channelsense.domain.exceptions import ValidationError
from channelsense.domain.models import RankedUser, RewardCandidate
from channelsense.domain.reward_constants import (
    DEFAULT_MIN_MESSAGES_FOR_REWARD,
    DEFAULT_TOP_USERS_COUNT,
)


def is_eligible(user: RankedUser, min_messages: int) -> bool:
    """A user is eligible with enough messages and a linked wallet."""
    return user.message_count >= min_messages and user.has_wallet


def select_reward_candidates(
    ranked_users: Sequence[RankedUser],
    min_messages: int = DEFAULT_MIN_MESSAGES_FOR_REWARD,
    top_n: int = DEFAULT_TOP_USERS_COUNT,
) -> list[RewardCandidate]:
    """Pick the reward candidates from a ranked user list.

    Rank order is preserved; the result holds at most `top_n` users and
    fewer when not enough users are eligible.

    Args:
        ranked_users: Users in rank order
        min_messages: Minimum message count in the window
        top_n: Maximum number of candidates

    Returns:
        Eligible users, each with its 1-based reward_rank

    Raises:
        ValidationError: If min_messages or top_n is negative
    """
    if min_messages < 0 or top_n < 0:
        raise ValidationError("min_messages and top_n must be non-negative")

    ordered = sorted(ranked_users, key=lambda user: user.rank)
    eligible = [user for user in ordered if is_eligible(user, min_messages)]

    return [
        RewardCandidate(
            **user.model_dump(),
            wallet_linked=True,
            reward_rank=position,
        )
        for position, user in enumerate(eligible[:top_n], start=1)
    ]
