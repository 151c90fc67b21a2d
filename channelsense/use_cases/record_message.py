"""Record one inbound Telegram message for analytics."""

from datetime import UTC, datetime
from typing import Any

from channelsense.config.logging_config import get_logger
from channelsense.domain.exceptions import ValidationError
from channelsense.domain.models import (
    ChannelInfo,
    ChannelUser,
    Message,
    RecordMessageResult,
)
from channelsense.domain.protocols import ActivityStoreProtocol

logger = get_logger(__name__)

SKIP_NO_AUTHOR = "no_author"
SKIP_BOT_AUTHOR = "bot_author"
SKIP_COMMAND = "command"


def _message_text(raw_msg: dict[str, Any]) -> str | None:
    text = raw_msg.get("text")
    if text is None:
        text = raw_msg.get("caption")
    return text


def _reactions_count(raw_msg: dict[str, Any]) -> int:
    """Sum reaction counts when the update carries them (reaction_count updates)."""
    reactions = raw_msg.get("reactions") or []
    total = 0
    for reaction in reactions:
        if isinstance(reaction, dict):
            total += int(reaction.get("total_count") or reaction.get("count") or 0)
    return total


def skip_reason(raw_msg: dict[str, Any]) -> str | None:
    """Why an update is not analytics-relevant, or None to record it."""
    author = raw_msg.get("from")
    if not isinstance(author, dict):
        return SKIP_NO_AUTHOR
    if author.get("is_bot"):
        return SKIP_BOT_AUTHOR
    text = _message_text(raw_msg)
    if text and text.startswith("/"):
        return SKIP_COMMAND
    return None


def parse_telegram_message(
    raw_msg: dict[str, Any],
) -> tuple[Message, ChannelUser, ChannelInfo]:
    """Convert a Bot API message object into domain records.

    Raises:
        ValidationError: If required fields are missing
    """
    chat = raw_msg.get("chat")
    author = raw_msg.get("from")
    if not isinstance(chat, dict) or chat.get("id") is None:
        raise ValidationError("message has no chat")
    if not isinstance(author, dict) or author.get("id") is None:
        raise ValidationError("message has no author")
    if raw_msg.get("message_id") is None or raw_msg.get("date") is None:
        raise ValidationError("message has no message_id or date")

    channel_id = str(chat["id"])
    user_id = str(author["id"])

    reply_to = raw_msg.get("reply_to_message")
    forward_chat = raw_msg.get("forward_from_chat")
    if forward_chat is None:
        origin = raw_msg.get("forward_origin") or {}
        forward_chat = origin.get("chat") if isinstance(origin, dict) else None

    message = Message(
        message_id=int(raw_msg["message_id"]),
        channel_id=channel_id,
        user_id=user_id,
        text=_message_text(raw_msg),
        sent_at=datetime.fromtimestamp(int(raw_msg["date"]), tz=UTC),
        reply_to_message_id=(
            int(reply_to["message_id"]) if isinstance(reply_to, dict) else None
        ),
        forward_from_channel_id=(
            str(forward_chat["id"])
            if isinstance(forward_chat, dict) and forward_chat.get("id") is not None
            else None
        ),
        reactions_count=_reactions_count(raw_msg),
    )
    user = ChannelUser(
        user_id=user_id,
        username=author.get("username"),
        first_name=author.get("first_name"),
        last_name=author.get("last_name"),
        language_code=author.get("language_code"),
    )
    channel = ChannelInfo(
        channel_id=channel_id,
        title=chat.get("title"),
        username=chat.get("username"),
        type=chat.get("type"),
    )
    return message, user, channel


async def record_message_use_case(
    store: ActivityStoreProtocol, raw_msg: dict[str, Any]
) -> RecordMessageResult:
    """Persist one inbound message together with its author and chat.

    Bot authors, service updates without an author and /commands are skipped.

    Raises:
        ValidationError: If the update is malformed
        RepositoryError: On storage errors
    """
    reason = skip_reason(raw_msg)
    if reason is not None:
        logger.debug("message_skipped", reason=reason)
        return RecordMessageResult(saved=False, reason=reason)

    message, user, channel = parse_telegram_message(raw_msg)

    await store.save_user(user)
    await store.save_channel(channel)
    await store.save_message(message)

    logger.debug(
        "message_recorded",
        channel_id=message.channel_id,
        user_id=message.user_id,
        message_id=message.message_id,
    )
    return RecordMessageResult(
        saved=True, channel_id=message.channel_id, user_id=message.user_id
    )
