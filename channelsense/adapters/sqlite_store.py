"""SQLite activity store adapter.

Implements ActivityStoreProtocol with a SQLite backend. Each call opens its
own connection and runs in a worker thread so the event loop is never
blocked by disk I/O.
"""

import asyncio
import json
import sqlite3
from collections import Counter
from collections.abc import Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Final, TypeVar

from channelsense.config.logging_config import get_logger
from channelsense.domain.exceptions import RepositoryError
from channelsense.domain.models import (
    ActiveChannel,
    ChannelInfo,
    ChannelMetrics,
    ChannelUser,
    DailyActivity,
    HourlyActivity,
    Message,
    MessageInteractions,
    RewardOutcome,
    UserActivity,
    WalletLink,
    WeeklyReport,
)

logger = get_logger(__name__)

T = TypeVar("T")

TIMESTAMP_FORMAT: Final[str] = "%Y-%m-%dT%H:%M:%S.%f+00:00"
"""Fixed-width UTC format so lexicographic order matches time order."""


def format_timestamp(moment: datetime) -> str:
    """Serialize a datetime as fixed-width UTC text (naive values are UTC)."""
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=UTC)
    return moment.astimezone(UTC).strftime(TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=UTC)
    return parsed


def _sunday_first_weekday(moment: datetime) -> int:
    """Map Python's Monday=0 weekday to Sunday=0."""
    return (moment.weekday() + 1) % 7


class SQLiteActivityStore:
    """SQLite-based activity store and append-only reward ledger."""

    def __init__(self, db_path: str) -> None:
        """Initialize store and ensure schema.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = db_path

        Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self._create_schema()

    def _get_connection(self) -> sqlite3.Connection:
        conn = sqlite3.Connection(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _create_schema(self) -> None:
        """Create database schema if not exists."""
        logger.info("sqlite_schema_creation_started", db_path=str(self.db_path))
        conn = self._get_connection()
        try:
            cursor = conn.cursor()

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS users (
                    user_id TEXT PRIMARY KEY,
                    username TEXT,
                    first_name TEXT,
                    last_name TEXT,
                    language_code TEXT,
                    created_at TEXT,
                    updated_at TEXT
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS user_wallets (
                    user_id TEXT PRIMARY KEY,
                    wallet_address TEXT NOT NULL,
                    chain TEXT,
                    public_key TEXT,
                    connected_at TEXT
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS messages (
                    message_id INTEGER NOT NULL,
                    channel_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    text TEXT,
                    sent_at TEXT NOT NULL,
                    reply_to_message_id INTEGER,
                    forward_from_channel_id TEXT,
                    reactions_count INTEGER DEFAULT 0,
                    PRIMARY KEY (channel_id, message_id)
                )
            """
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_channel_sent "
                "ON messages(channel_id, sent_at)"
            )
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_messages_user_channel "
                "ON messages(user_id, channel_id, sent_at)"
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS channels (
                    channel_id TEXT PRIMARY KEY,
                    title TEXT,
                    username TEXT,
                    type TEXT,
                    member_count INTEGER,
                    description TEXT,
                    updated_at TEXT
                )
            """
            )

            # Reward ledger: one row per attempt, never updated
            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS reward_outcomes (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    user_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    succeeded INTEGER NOT NULL,
                    reward_token_address TEXT,
                    transaction_reference TEXT,
                    failure_reason TEXT,
                    reward_rank INTEGER,
                    metadata_json TEXT,
                    recorded_at TEXT NOT NULL,
                    UNIQUE (run_id, user_id, channel_id)
                )
            """
            )

            cursor.execute(
                """
                CREATE TABLE IF NOT EXISTS weekly_reports (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    run_id TEXT NOT NULL,
                    channel_id TEXT NOT NULL,
                    report_json TEXT NOT NULL,
                    period_start TEXT NOT NULL,
                    period_end TEXT NOT NULL,
                    generated_at TEXT NOT NULL,
                    UNIQUE (run_id, channel_id)
                )
            """
            )

            conn.commit()
        finally:
            conn.close()

    async def _run(self, operation: str, func: Callable[..., T], *args: Any) -> T:
        """Run a blocking query in a worker thread, wrapping sqlite errors."""
        try:
            return await asyncio.to_thread(func, *args)
        except sqlite3.Error as e:
            logger.error("sqlite_operation_failed", operation=operation, error=str(e))
            raise RepositoryError(f"Failed to {operation}: {e}") from e

    def _fetch_all(self, query: str, params: tuple[Any, ...]) -> list[sqlite3.Row]:
        conn = self._get_connection()
        try:
            return conn.execute(query, params).fetchall()
        finally:
            conn.close()

    def _fetch_one(self, query: str, params: tuple[Any, ...]) -> sqlite3.Row | None:
        conn = self._get_connection()
        try:
            return conn.execute(query, params).fetchone()
        finally:
            conn.close()

    def _execute(self, query: str, params: tuple[Any, ...]) -> None:
        conn = self._get_connection()
        try:
            conn.execute(query, params)
            conn.commit()
        finally:
            conn.close()

    # === Channel queries ===

    async def get_active_channels(
        self, since: datetime, min_messages: int, until: datetime | None = None
    ) -> list[ActiveChannel]:
        """Channels with more than `min_messages` messages in [since, until).

        Without `until` every message from `since` onwards counts.

        Raises:
            RepositoryError: On storage errors
        """
        upper = format_timestamp(until) if until is not None else None
        rows = await self._run(
            "get active channels",
            self._fetch_all,
            """
            SELECT m.channel_id, c.title, c.username, COUNT(*) AS message_count
            FROM messages m
            LEFT JOIN channels c ON m.channel_id = c.channel_id
            WHERE m.sent_at >= ? AND (? IS NULL OR m.sent_at < ?)
            GROUP BY m.channel_id
            HAVING COUNT(*) > ?
            ORDER BY message_count DESC, m.channel_id ASC
            """,
            (format_timestamp(since), upper, upper, min_messages),
        )
        return [
            ActiveChannel(
                channel_id=row["channel_id"],
                title=row["title"],
                username=row["username"],
                message_count=row["message_count"],
            )
            for row in rows
        ]

    async def get_channel_metrics(
        self, channel_id: str, start: datetime, end: datetime
    ) -> ChannelMetrics:
        row = await self._run(
            "get channel metrics",
            self._fetch_one,
            """
            SELECT COUNT(*) AS total_messages, COUNT(DISTINCT user_id) AS active_users
            FROM messages
            WHERE channel_id = ? AND sent_at >= ? AND sent_at < ?
            """,
            (channel_id, format_timestamp(start), format_timestamp(end)),
        )
        if row is None:
            return ChannelMetrics()
        return ChannelMetrics(
            total_messages=row["total_messages"] or 0,
            active_users=row["active_users"] or 0,
        )

    async def get_user_activity(
        self, channel_id: str, start: datetime, end: datetime, limit: int
    ) -> list[UserActivity]:
        rows = await self._run(
            "get user activity",
            self._fetch_all,
            """
            SELECT m.user_id, u.username, u.first_name, u.last_name,
                   COUNT(*) AS message_count
            FROM messages m
            LEFT JOIN users u ON m.user_id = u.user_id
            WHERE m.channel_id = ? AND m.sent_at >= ? AND m.sent_at < ?
            GROUP BY m.user_id
            ORDER BY message_count DESC, m.user_id ASC
            LIMIT ?
            """,
            (channel_id, format_timestamp(start), format_timestamp(end), limit),
        )
        return [
            UserActivity(
                user_id=row["user_id"],
                message_count=row["message_count"],
                username=row["username"],
                first_name=row["first_name"],
                last_name=row["last_name"],
            )
            for row in rows
        ]

    async def get_hourly_activity(
        self, channel_id: str, start: datetime, end: datetime
    ) -> list[HourlyActivity]:
        timestamps = await self._sent_at_values(channel_id, start, end)
        counts = Counter(moment.hour for moment in timestamps)
        return [
            HourlyActivity(hour=hour, count=count)
            for hour, count in sorted(counts.items())
        ]

    async def get_daily_activity(
        self, channel_id: str, start: datetime, end: datetime
    ) -> list[DailyActivity]:
        timestamps = await self._sent_at_values(channel_id, start, end)
        counts = Counter(_sunday_first_weekday(moment) for moment in timestamps)
        return [
            DailyActivity(weekday=weekday, count=count)
            for weekday, count in sorted(counts.items())
        ]

    async def _sent_at_values(
        self, channel_id: str, start: datetime, end: datetime
    ) -> list[datetime]:
        rows = await self._run(
            "get activity timestamps",
            self._fetch_all,
            """
            SELECT sent_at FROM messages
            WHERE channel_id = ? AND sent_at >= ? AND sent_at < ?
            """,
            (channel_id, format_timestamp(start), format_timestamp(end)),
        )
        return [parse_timestamp(row["sent_at"]) for row in rows]

    async def get_recent_messages(self, channel_id: str, limit: int) -> list[Message]:
        rows = await self._run(
            "get recent messages",
            self._fetch_all,
            """
            SELECT * FROM messages
            WHERE channel_id = ? AND text IS NOT NULL AND text != ''
            ORDER BY sent_at DESC
            LIMIT ?
            """,
            (channel_id, limit),
        )
        return [self._row_to_message(row) for row in rows]

    async def get_messages_in_window(
        self, channel_id: str, start: datetime, end: datetime, limit: int
    ) -> list[Message]:
        rows = await self._run(
            "get messages in window",
            self._fetch_all,
            """
            SELECT * FROM messages
            WHERE channel_id = ? AND sent_at >= ? AND sent_at < ?
              AND text IS NOT NULL AND text != ''
            ORDER BY sent_at DESC
            LIMIT ?
            """,
            (channel_id, format_timestamp(start), format_timestamp(end), limit),
        )
        return [self._row_to_message(row) for row in rows]

    # === User signal queries ===

    async def get_user_messages(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> list[Message]:
        rows = await self._run(
            "get user messages",
            self._fetch_all,
            """
            SELECT * FROM messages
            WHERE user_id = ? AND channel_id = ? AND sent_at >= ? AND sent_at < ?
            ORDER BY sent_at ASC, message_id ASC
            """,
            (user_id, channel_id, format_timestamp(start), format_timestamp(end)),
        )
        return [self._row_to_message(row) for row in rows]

    async def get_message_interactions(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> MessageInteractions:
        params = (user_id, channel_id, format_timestamp(start), format_timestamp(end))
        replies_row = await self._run(
            "get replies received",
            self._fetch_one,
            """
            SELECT COUNT(*) AS replies
            FROM messages m1
            JOIN messages m2
              ON m2.channel_id = m1.channel_id
             AND m2.reply_to_message_id = m1.message_id
            WHERE m1.user_id = ? AND m1.channel_id = ?
              AND m1.sent_at >= ? AND m1.sent_at < ?
            """,
            params,
        )
        reactions_row = await self._run(
            "get reactions received",
            self._fetch_one,
            """
            SELECT COALESCE(SUM(reactions_count), 0) AS reactions
            FROM messages
            WHERE user_id = ? AND channel_id = ? AND sent_at >= ? AND sent_at < ?
            """,
            params,
        )
        return MessageInteractions(
            replies=replies_row["replies"] if replies_row else 0,
            reactions=reactions_row["reactions"] if reactions_row else 0,
        )

    async def get_user_activity_hours(
        self, user_id: str, channel_id: str, start: datetime, end: datetime
    ) -> list[int]:
        rows = await self._run(
            "get user activity hours",
            self._fetch_all,
            """
            SELECT sent_at FROM messages
            WHERE user_id = ? AND channel_id = ? AND sent_at >= ? AND sent_at < ?
            """,
            (user_id, channel_id, format_timestamp(start), format_timestamp(end)),
        )
        return sorted({parse_timestamp(row["sent_at"]).hour for row in rows})

    async def get_wallet_for_user(self, user_id: str) -> WalletLink | None:
        row = await self._run(
            "get wallet",
            self._fetch_one,
            "SELECT * FROM user_wallets WHERE user_id = ?",
            (user_id,),
        )
        if row is None:
            return None
        return WalletLink(
            user_id=row["user_id"],
            address=row["wallet_address"],
            chain=row["chain"],
            public_key=row["public_key"],
            connected_at=(
                parse_timestamp(row["connected_at"]) if row["connected_at"] else None
            ),
        )

    # === Ledger and reports (append-only) ===

    async def append_reward_outcome(self, outcome: RewardOutcome) -> None:
        """Append one reward attempt to the ledger.

        Raises:
            RepositoryError: On storage errors, including a second outcome for
                the same (run, user, channel)
        """
        await self._run(
            "append reward outcome",
            self._execute,
            """
            INSERT INTO reward_outcomes (
                run_id, user_id, channel_id, succeeded, reward_token_address,
                transaction_reference, failure_reason, reward_rank, metadata_json,
                recorded_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                outcome.run_id,
                outcome.user_id,
                outcome.channel_id,
                1 if outcome.succeeded else 0,
                outcome.reward_token_address,
                outcome.transaction_reference,
                outcome.failure_reason,
                outcome.reward_rank,
                json.dumps(outcome.metadata, default=str),
                format_timestamp(outcome.recorded_at),
            ),
        )
        logger.debug(
            "reward_outcome_appended",
            run_id=outcome.run_id,
            user_id=outcome.user_id,
            channel_id=outcome.channel_id,
            succeeded=outcome.succeeded,
        )

    async def append_weekly_report(self, report: WeeklyReport) -> None:
        await self._run(
            "append weekly report",
            self._execute,
            """
            INSERT INTO weekly_reports (
                run_id, channel_id, report_json, period_start, period_end, generated_at
            ) VALUES (?, ?, ?, ?, ?, ?)
            """,
            (
                report.run_id,
                report.channel_id,
                report.model_dump_json(),
                format_timestamp(report.period_start),
                format_timestamp(report.period_end),
                format_timestamp(report.generated_at),
            ),
        )

    async def get_reward_outcomes(self, run_id: str) -> list[RewardOutcome]:
        rows = await self._run(
            "get reward outcomes",
            self._fetch_all,
            "SELECT * FROM reward_outcomes WHERE run_id = ? ORDER BY id ASC",
            (run_id,),
        )
        return [self._row_to_outcome(row) for row in rows]

    async def get_user_rewards(self, user_id: str) -> list[RewardOutcome]:
        rows = await self._run(
            "get user rewards",
            self._fetch_all,
            """
            SELECT * FROM reward_outcomes
            WHERE user_id = ? AND succeeded = 1
            ORDER BY recorded_at DESC, id DESC
            """,
            (user_id,),
        )
        return [self._row_to_outcome(row) for row in rows]

    async def get_weekly_reports(self, channel_id: str) -> list[WeeklyReport]:
        rows = await self._run(
            "get weekly reports",
            self._fetch_all,
            """
            SELECT report_json FROM weekly_reports
            WHERE channel_id = ?
            ORDER BY generated_at DESC, id DESC
            """,
            (channel_id,),
        )
        return [WeeklyReport.model_validate_json(row["report_json"]) for row in rows]

    # === Writers used by message recording and wallet linking ===

    async def save_message(self, message: Message) -> None:
        """Save a message (idempotent on channel and message id)."""
        await self._run(
            "save message",
            self._execute,
            """
            INSERT OR REPLACE INTO messages (
                message_id, channel_id, user_id, text, sent_at,
                reply_to_message_id, forward_from_channel_id, reactions_count
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                message.message_id,
                message.channel_id,
                message.user_id,
                message.text,
                format_timestamp(message.sent_at),
                message.reply_to_message_id,
                message.forward_from_channel_id,
                message.reactions_count,
            ),
        )

    async def save_user(self, user: ChannelUser) -> None:
        now = format_timestamp(datetime.now(tz=UTC))
        await self._run(
            "save user",
            self._execute,
            """
            INSERT INTO users (
                user_id, username, first_name, last_name, language_code,
                created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(user_id) DO UPDATE SET
                username = excluded.username,
                first_name = excluded.first_name,
                last_name = excluded.last_name,
                language_code = excluded.language_code,
                updated_at = excluded.updated_at
            """,
            (
                user.user_id,
                user.username,
                user.first_name,
                user.last_name,
                user.language_code,
                now,
                now,
            ),
        )

    async def save_channel(self, channel: ChannelInfo) -> None:
        await self._run(
            "save channel",
            self._execute,
            """
            INSERT INTO channels (
                channel_id, title, username, type, member_count, description,
                updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(channel_id) DO UPDATE SET
                title = excluded.title,
                username = excluded.username,
                type = excluded.type,
                member_count = COALESCE(excluded.member_count, channels.member_count),
                description = COALESCE(excluded.description, channels.description),
                updated_at = excluded.updated_at
            """,
            (
                channel.channel_id,
                channel.title,
                channel.username,
                channel.type,
                channel.member_count,
                channel.description,
                format_timestamp(datetime.now(tz=UTC)),
            ),
        )

    async def save_user_wallet(self, wallet: WalletLink) -> None:
        connected_at = wallet.connected_at or datetime.now(tz=UTC)
        await self._run(
            "save user wallet",
            self._execute,
            """
            INSERT OR REPLACE INTO user_wallets (
                user_id, wallet_address, chain, public_key, connected_at
            ) VALUES (?, ?, ?, ?, ?)
            """,
            (
                wallet.user_id,
                wallet.address,
                wallet.chain,
                wallet.public_key,
                format_timestamp(connected_at),
            ),
        )

    # === Row mapping ===

    @staticmethod
    def _row_to_message(row: sqlite3.Row) -> Message:
        return Message(
            message_id=row["message_id"],
            channel_id=row["channel_id"],
            user_id=row["user_id"],
            text=row["text"],
            sent_at=parse_timestamp(row["sent_at"]),
            reply_to_message_id=row["reply_to_message_id"],
            forward_from_channel_id=row["forward_from_channel_id"],
            reactions_count=row["reactions_count"] or 0,
        )

    @staticmethod
    def _row_to_outcome(row: sqlite3.Row) -> RewardOutcome:
        return RewardOutcome(
            run_id=row["run_id"],
            user_id=row["user_id"],
            channel_id=row["channel_id"],
            succeeded=bool(row["succeeded"]),
            reward_token_address=row["reward_token_address"],
            transaction_reference=row["transaction_reference"],
            failure_reason=row["failure_reason"],
            reward_rank=row["reward_rank"],
            metadata=json.loads(row["metadata_json"] or "{}"),
            recorded_at=parse_timestamp(row["recorded_at"]),
        )
