"""HTTP reward issuer adapter.

Implements RewardIssuerProtocol against the reward minting service. Minting
is not idempotent, so requests are never retried here.
"""

from typing import Any, Final

import httpx

from channelsense.config.logging_config import get_logger
from channelsense.config.settings import Settings
from channelsense.domain.exceptions import RewardIssuanceError
from channelsense.domain.models import IssuanceResult, RewardCandidate

logger = get_logger(__name__)

MINT_PATH: Final[str] = "/rewards/mint"


class HttpRewardIssuer:
    """Mints reward tokens through the minting service's HTTP API."""

    def __init__(
        self,
        base_url: str,
        *,
        token: str | None = None,
        timeout: float = 30.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        """Initialize issuer.

        Args:
            base_url: Minting service base URL
            token: Bearer token (optional)
            timeout: Request timeout in seconds
            client: Pre-built HTTP client (tests)
        """
        self.base_url = base_url.rstrip("/")
        headers = {"Authorization": f"Bearer {token}"} if token else {}
        self._client = client or httpx.AsyncClient(
            timeout=httpx.Timeout(timeout), headers=headers
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def issue_reward(
        self,
        candidate: RewardCandidate,
        channel_id: str,
        metadata: dict[str, Any],
    ) -> IssuanceResult:
        """Mint one reward for a candidate's linked wallet.

        Returns:
            IssuanceResult; success=False when the service declines the mint

        Raises:
            RewardIssuanceError: On transport errors or non-2xx responses
        """
        if not candidate.wallet_address:
            raise RewardIssuanceError(
                f"User {candidate.user_id} has no linked wallet address"
            )

        payload = {
            "user_id": candidate.user_id,
            "channel_id": channel_id,
            "wallet_address": candidate.wallet_address,
            "metadata": metadata,
        }
        try:
            response = await self._client.post(
                f"{self.base_url}{MINT_PATH}", json=payload
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            raise RewardIssuanceError(
                f"Minting service returned {e.response.status_code}"
            ) from e
        except httpx.HTTPError as e:
            raise RewardIssuanceError(f"Minting request failed: {e}") from e
        except ValueError as e:
            raise RewardIssuanceError(f"Invalid minting response: {e}") from e

        if not isinstance(data, dict):
            raise RewardIssuanceError("Minting response must be a JSON object")

        result = IssuanceResult(
            success=bool(data.get("success")),
            token_address=data.get("token_address") or data.get("nft_address"),
            tx_ref=data.get("tx_ref") or data.get("transaction_hash"),
            error=data.get("error"),
        )
        logger.info(
            "reward_mint_response",
            user_id=candidate.user_id,
            channel_id=channel_id,
            success=result.success,
            token_address=result.token_address,
        )
        return result


def create_reward_issuer(settings: Settings) -> HttpRewardIssuer:
    token = (
        settings.reward_service_token.get_secret_value()
        if settings.reward_service_token
        else None
    )
    return HttpRewardIssuer(
        settings.reward_service_url,
        token=token,
        timeout=settings.external_call_timeout_seconds,
    )
