"""Tests for reward eligibility and top-N selection."""

import pytest

from channelsense.domain.exceptions import ValidationError
from channelsense.domain.models import RankedUser
from channelsense.services.reward_selector import is_eligible, select_reward_candidates


def _ranked(
    user_id: str, rank: int, message_count: int, wallet: str | None = "EQ-wallet"
) -> RankedUser:
    return RankedUser(
        user_id=user_id,
        channel_id="-1001",
        rank=rank,
        score=message_count * 10,
        message_count=message_count,
        wallet_address=wallet,
    )


def test_minimum_messages_filter() -> None:
    """Users with 20, 15 and 5 messages: only the first two qualify."""
    ranked = [_ranked("A", 1, 20), _ranked("B", 2, 15), _ranked("C", 3, 5)]

    candidates = select_reward_candidates(ranked, min_messages=10, top_n=3)

    assert [candidate.user_id for candidate in candidates] == ["A", "B"]
    assert [candidate.reward_rank for candidate in candidates] == [1, 2]


def test_top_n_caps_the_selection() -> None:
    ranked = [_ranked(str(index), index, 30) for index in range(1, 6)]

    candidates = select_reward_candidates(ranked, min_messages=10, top_n=3)

    assert [candidate.user_id for candidate in candidates] == ["1", "2", "3"]


def test_users_without_wallet_are_skipped() -> None:
    ranked = [
        _ranked("A", 1, 40, wallet=None),
        _ranked("B", 2, 30),
        _ranked("C", 3, 20, wallet=""),
        _ranked("D", 4, 12),
    ]

    candidates = select_reward_candidates(ranked, min_messages=10, top_n=3)

    assert [candidate.user_id for candidate in candidates] == ["B", "D"]
    assert all(candidate.wallet_linked for candidate in candidates)
    assert candidates[0].rank == 2
    assert candidates[0].reward_rank == 1


def test_rank_order_is_preserved_even_when_input_is_shuffled() -> None:
    ranked = [_ranked("C", 3, 12), _ranked("A", 1, 11), _ranked("B", 2, 50)]

    candidates = select_reward_candidates(ranked)

    assert [candidate.user_id for candidate in candidates] == ["A", "B", "C"]


def test_threshold_is_inclusive() -> None:
    assert is_eligible(_ranked("A", 1, 10), 10) is True
    assert is_eligible(_ranked("A", 1, 9), 10) is False


def test_candidate_keeps_ranking_fields() -> None:
    user = _ranked("A", 1, 20).model_copy(
        update={"username": "alice", "components": {"messages": 200}}
    )

    (candidate,) = select_reward_candidates([user])

    assert candidate.username == "alice"
    assert candidate.score == 200
    assert candidate.components == {"messages": 200}


def test_empty_and_zero_top_n() -> None:
    assert select_reward_candidates([]) == []
    assert select_reward_candidates([_ranked("A", 1, 20)], top_n=0) == []


@pytest.mark.parametrize("min_messages,top_n", [(-1, 3), (10, -1)])
def test_negative_arguments_rejected(min_messages: int, top_n: int) -> None:
    with pytest.raises(ValidationError):
        select_reward_candidates([], min_messages=min_messages, top_n=top_n)
