"""Tests for recording inbound chat updates."""

import asyncio
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from channelsense.adapters.sqlite_store import SQLiteActivityStore
from channelsense.domain.exceptions import ValidationError
from channelsense.use_cases.record_message import (
    SKIP_BOT_AUTHOR,
    SKIP_COMMAND,
    SKIP_NO_AUTHOR,
    parse_telegram_message,
    record_message_use_case,
    skip_reason,
)

SENT_AT = datetime(2025, 5, 30, 9, 15, tzinfo=UTC)


def create_update(**overrides: Any) -> dict[str, Any]:
    """Bot API message object for a group chat."""
    update: dict[str, Any] = {
        "message_id": 501,
        "date": int(SENT_AT.timestamp()),
        "chat": {
            "id": -1001,
            "type": "supergroup",
            "title": "Alpha",
            "username": "alpha_chat",
        },
        "from": {
            "id": 42,
            "is_bot": False,
            "username": "alice",
            "first_name": "Alice",
            "language_code": "en",
        },
        "text": "gm, anyone staking this week?",
    }
    update.update(overrides)
    return update


class TestParse:
    def test_plain_message(self) -> None:
        message, user, channel = parse_telegram_message(create_update())

        assert message.message_id == 501
        assert message.channel_id == "-1001"
        assert message.user_id == "42"
        assert message.sent_at == SENT_AT
        assert message.is_reply is False
        assert message.is_forward is False
        assert user.username == "alice"
        assert user.language_code == "en"
        assert channel.title == "Alpha"
        assert channel.type == "supergroup"

    def test_reply_forward_and_reactions(self) -> None:
        update = create_update(
            reply_to_message={"message_id": 480},
            forward_origin={"type": "channel", "chat": {"id": -100777}},
            reactions=[{"type": "emoji", "total_count": 3}, {"count": 2}],
        )

        message, _, _ = parse_telegram_message(update)

        assert message.reply_to_message_id == 480
        assert message.forward_from_channel_id == "-100777"
        assert message.reactions_count == 5

    def test_legacy_forward_field(self) -> None:
        update = create_update(forward_from_chat={"id": -100555})

        message, _, _ = parse_telegram_message(update)

        assert message.forward_from_channel_id == "-100555"

    def test_caption_used_when_no_text(self) -> None:
        update = create_update(text=None, caption="chart of the week")

        message, _, _ = parse_telegram_message(update)

        assert message.text == "chart of the week"

    @pytest.mark.parametrize("missing", ["chat", "from", "message_id", "date"])
    def test_missing_fields(self, missing: str) -> None:
        update = create_update()
        del update[missing]

        with pytest.raises(ValidationError):
            parse_telegram_message(update)


class TestSkipReason:
    def test_bot_author(self) -> None:
        update = create_update(**{"from": {"id": 7, "is_bot": True}})
        assert skip_reason(update) == SKIP_BOT_AUTHOR

    def test_service_update_without_author(self) -> None:
        update = create_update()
        del update["from"]
        assert skip_reason(update) == SKIP_NO_AUTHOR

    def test_command(self) -> None:
        assert skip_reason(create_update(text="/connect")) == SKIP_COMMAND

    def test_regular_message(self) -> None:
        assert skip_reason(create_update()) is None


class TestRecordMessageUseCase:
    def test_message_user_and_chat_saved(self, store: SQLiteActivityStore) -> None:
        result = asyncio.run(record_message_use_case(store, create_update()))

        assert result.saved is True
        assert (result.channel_id, result.user_id) == ("-1001", "42")

        start, end = SENT_AT - timedelta(hours=1), SENT_AT + timedelta(hours=1)
        (activity,) = asyncio.run(store.get_user_activity("-1001", start, end, 10))
        assert activity.username == "alice"
        messages = asyncio.run(store.get_user_messages("42", "-1001", start, end))
        assert [m.text for m in messages] == ["gm, anyone staking this week?"]

    def test_bot_message_not_saved(self, store: SQLiteActivityStore) -> None:
        update = create_update(**{"from": {"id": 7, "is_bot": True}})

        result = asyncio.run(record_message_use_case(store, update))

        assert result.saved is False
        assert result.reason == SKIP_BOT_AUTHOR
        assert asyncio.run(store.get_recent_messages("-1001", 10)) == []

    def test_redelivered_update_stored_once(self, store: SQLiteActivityStore) -> None:
        asyncio.run(record_message_use_case(store, create_update()))
        asyncio.run(record_message_use_case(store, create_update()))

        assert len(asyncio.run(store.get_recent_messages("-1001", 10))) == 1
