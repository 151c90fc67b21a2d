"""Telegram notifier adapter using Telethon library."""

import types
from typing import Final

from telethon import TelegramClient as TelegramClientLib  # type: ignore[import-untyped]
from telethon.errors import FloodWaitError, RPCError  # type: ignore[import-untyped]

from channelsense.config.logging_config import get_logger
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import FatalConfigurationError, NotificationError

logger = get_logger(__name__)

MESSAGE_PARSE_MODE: Final[str] = "md"


def resolve_chat(chat_id: str) -> int | str:
    """Numeric ids become ints (Telethon peers); usernames stay strings."""
    digits = chat_id[1:] if chat_id.startswith("-") else chat_id
    return int(chat_id) if digits.isdigit() else chat_id


class TelegramNotifier:
    """Sends bot messages to users and channels.

    The bot session is started lazily on the first send.

    Args:
        api_id: Telegram API ID (from my.telegram.org)
        api_hash: Telegram API hash
        bot_token: Bot token from @BotFather
        session_name: Path to session file
    """

    def __init__(
        self, api_id: int, api_hash: str, bot_token: str, session_name: str
    ) -> None:
        self.api_id = api_id
        self.api_hash = api_hash
        self.session_name = session_name
        self._bot_token = bot_token
        self._client: TelegramClientLib | None = None

    async def connect(self) -> TelegramClientLib:
        if self._client is None:
            client = TelegramClientLib(self.session_name, self.api_id, self.api_hash)
            await client.start(bot_token=self._bot_token)
            self._client = client
            logger.info("telegram_bot_connected", session=self.session_name)
        return self._client

    async def close(self) -> None:
        if self._client is None:
            return
        await self._client.disconnect()
        self._client = None
        logger.info("telegram_bot_disconnected")

    async def __aenter__(self) -> "TelegramNotifier":
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: types.TracebackType | None,
    ) -> None:
        await self.close()

    async def notify_user(self, user_id: str, text: str) -> None:
        await self._send(user_id, text, kind="user")

    async def notify_channel(self, channel_id: str, text: str) -> None:
        await self._send(channel_id, text, kind="channel")

    async def _send(self, chat_id: str, text: str, *, kind: str) -> None:
        try:
            client = await self.connect()
            await client.send_message(
                resolve_chat(chat_id), text, parse_mode=MESSAGE_PARSE_MODE
            )
        except FloodWaitError as e:
            wait_seconds = int(getattr(e, "seconds", 0))
            logger.warning(
                "telegram_flood_wait", chat_id=chat_id, wait_seconds=wait_seconds
            )
            raise NotificationError(
                f"Flood wait of {wait_seconds}s sending to {kind} {chat_id}"
            ) from e
        except (RPCError, ConnectionError, ValueError) as e:
            raise NotificationError(f"Failed to message {kind} {chat_id}: {e}") from e

        logger.debug("telegram_message_sent", chat_id=chat_id, kind=kind)


class LoggingNotifier:
    """Notifier that only logs; used for dry runs and local development."""

    async def notify_user(self, user_id: str, text: str) -> None:
        logger.info("notification_logged", kind="user", chat_id=user_id, text=text)

    async def notify_channel(self, channel_id: str, text: str) -> None:
        logger.info(
            "notification_logged", kind="channel", chat_id=channel_id, text=text
        )


def create_notifier(settings: Settings) -> TelegramNotifier:
    """Create the Telegram notifier.

    Raises:
        FatalConfigurationError: If bot credentials are missing
    """
    if (
        settings.telegram_bot_token is None
        or settings.telegram_api_id is None
        or settings.telegram_api_hash is None
    ):
        raise FatalConfigurationError(
            "TELEGRAM_BOT_TOKEN, TELEGRAM_API_ID and TELEGRAM_API_HASH must be set"
        )
    return TelegramNotifier(
        api_id=settings.telegram_api_id,
        api_hash=settings.telegram_api_hash.get_secret_value(),
        bot_token=settings.telegram_bot_token.get_secret_value(),
        session_name=settings.telegram_session_path,
    )
