"""Wallet-link sessions.

A user starts a session, then links a wallet before the session expires.
States only move forward: pending -> connected, or pending -> expired. A
connected session persists its wallet through the activity store, which is
where the reward engine reads it back.
"""

from datetime import UTC, datetime, timedelta

from channelsense.config.logging_config import get_logger
from channelsense.domain.exceptions import ValidationError
from channelsense.domain.models import WalletLink, WalletSession, WalletSessionState
from channelsense.domain.protocols import ActivityStoreProtocol

logger = get_logger(__name__)


class WalletSessionStore:
    """In-memory wallet-link sessions with TTL expiry."""

    def __init__(self, store: ActivityStoreProtocol, *, ttl_seconds: int = 300) -> None:
        if ttl_seconds <= 0:
            raise ValidationError("ttl_seconds must be positive")
        self._store = store
        self._ttl = timedelta(seconds=ttl_seconds)
        self._sessions: dict[str, WalletSession] = {}

    def start(self, user_id: str, *, now: datetime | None = None) -> WalletSession:
        """Open a pending session, replacing any earlier one for the user."""
        if not user_id:
            raise ValidationError("user_id must be non-empty")
        created_at = now or datetime.now(tz=UTC)
        session = WalletSession(
            user_id=user_id,
            created_at=created_at,
            expires_at=created_at + self._ttl,
        )
        self._sessions[user_id] = session
        logger.info("wallet_session_started", user_id=user_id)
        return session

    def get(self, user_id: str, *, now: datetime | None = None) -> WalletSession | None:
        """Current session for a user, expiring it first when its TTL passed."""
        session = self._sessions.get(user_id)
        if session is None:
            return None
        return self._expire_if_due(session, now or datetime.now(tz=UTC))

    async def connect(
        self,
        user_id: str,
        address: str,
        *,
        chain: str | None = None,
        public_key: str | None = None,
        now: datetime | None = None,
    ) -> WalletSession:
        """Complete a pending session and persist the wallet.

        Raises:
            ValidationError: If there is no pending session or it expired
            RepositoryError: If the wallet cannot be stored
        """
        if not address:
            raise ValidationError("wallet address must be non-empty")

        moment = now or datetime.now(tz=UTC)
        session = self.get(user_id, now=moment)
        if session is None:
            raise ValidationError(f"No wallet session for user {user_id}")
        if session.state != WalletSessionState.PENDING:
            raise ValidationError(
                f"Wallet session for user {user_id} is {session.state.value}"
            )

        await self._store.save_user_wallet(
            WalletLink(
                user_id=user_id,
                address=address,
                chain=chain,
                public_key=public_key,
                connected_at=moment,
            )
        )
        connected = session.model_copy(
            update={
                "state": WalletSessionState.CONNECTED,
                "address": address,
                "connected_at": moment,
            }
        )
        self._sessions[user_id] = connected
        logger.info("wallet_session_connected", user_id=user_id)
        return connected

    def expire_stale(self, *, now: datetime | None = None) -> int:
        """Expire pending sessions past their TTL and drop finished ones.

        Expired sessions and connected sessions past their TTL are removed;
        a connected wallet stays readable through the activity store.

        Returns:
            Number of pending sessions that expired in this sweep
        """
        moment = now or datetime.now(tz=UTC)
        expired = 0
        for user_id, session in list(self._sessions.items()):
            current = self._expire_if_due(session, moment)
            if current.state != session.state:
                expired += 1
            if current.state == WalletSessionState.EXPIRED or (
                current.state == WalletSessionState.CONNECTED
                and moment >= current.expires_at
            ):
                del self._sessions[user_id]
        if expired:
            logger.info("wallet_sessions_expired", count=expired)
        logger.debug("wallet_sessions_swept", remaining=len(self._sessions))
        return expired

    def __len__(self) -> int:
        return len(self._sessions)

    def _expire_if_due(self, session: WalletSession, now: datetime) -> WalletSession:
        if session.state != WalletSessionState.PENDING or now < session.expires_at:
            return session
        expired = session.model_copy(update={"state": WalletSessionState.EXPIRED})
        self._sessions[session.user_id] = expired
        return expired
