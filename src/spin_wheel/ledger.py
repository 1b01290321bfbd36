#!/usr/bin/env python3
"""Multi-token reward ledger.

Reads the balance of every configured reward token for an owner concurrently
and publishes the result as a single snapshot. A refresh either covers every
configured token or fails as a whole; the published snapshot is never a mix of
fresh and stale reads.
"""

import asyncio
import logging
from typing import TYPE_CHECKING

from .config import ValidatedConfig
from .errors import ChainError, PartialReadFailure
from .models import RewardBalance, RewardSnapshot, utcnow

if TYPE_CHECKING:
    from .wheel_client import WheelGameClient

logger = logging.getLogger(__name__)


class RewardLedger:
    """Tracks reward token balances for the connected player.

    This class is responsible for:
    - Reading every configured token balance concurrently
    - Failing atomically when any single read fails
    - Holding the last complete snapshot for the UI
    - Reading pending (unclaimed) rewards from the game contract
    """

    def __init__(self, client: "WheelGameClient") -> None:
        """
        Initialize the RewardLedger.

        Args:
            client: On-chain reader for balances and pending rewards
        """
        self.client = client
        self._snapshot: RewardSnapshot | None = None

        # Metrics tracking
        self.refreshes_succeeded = 0
        self.refreshes_failed = 0

    @property
    def snapshot(self) -> RewardSnapshot | None:
        """Last complete snapshot, or None before the first successful refresh."""
        return self._snapshot

    async def refresh(self, config: ValidatedConfig, owner: str) -> RewardSnapshot:
        """
        Read all configured token balances for owner.

        Args:
            config: Validated contract configuration
            owner: Address whose balances are read

        Returns:
            A snapshot with exactly one entry per configured token, zeros included

        Raises:
            PartialReadFailure: At least one token could not be read
        """
        tokens = config.reward_tokens
        logger.debug(f"Refreshing {len(tokens)} reward balances for {owner}")

        results = await asyncio.gather(
            *(self.client.balance_of(token.address, owner) for token in tokens),
            return_exceptions=True
        )

        observed_at = utcnow()
        balances: list[RewardBalance] = []
        failed: list[str] = []

        for token, result in zip(tokens, results):
            match result:
                case ChainError():
                    logger.warning(f"Balance read for {token.symbol} failed: {result}")
                    failed.append(token.symbol)
                case BaseException():
                    # Cancellation and programming errors are not read failures
                    raise result
                case _:
                    balances.append(RewardBalance(
                        token_symbol=token.symbol,
                        address=token.address,
                        amount=result,
                        observed_at=observed_at
                    ))

        if failed:
            self.refreshes_failed += 1
            raise PartialReadFailure(tuple(failed))

        snapshot = RewardSnapshot(
            owner=owner,
            balances=tuple(balances),
            observed_at=observed_at
        )
        self._snapshot = snapshot
        self.refreshes_succeeded += 1

        logger.info(f"Refreshed balances: {snapshot}")
        return snapshot

    async def read_pending(self, config: ValidatedConfig, owner: str) -> tuple[RewardBalance, ...]:
        """
        Read unclaimed rewards held by the game contract, mapped onto token order.

        Raises:
            PartialReadFailure: The call failed or returned fewer amounts than
                configured tokens
        """
        symbols = tuple(token.symbol for token in config.reward_tokens)

        try:
            amounts = await self.client.pending_rewards(owner)
        except ChainError as e:
            logger.warning(f"Pending rewards read failed: {e}")
            raise PartialReadFailure(symbols) from e

        if len(amounts) < len(config.reward_tokens):
            logger.warning(
                f"Pending rewards returned {len(amounts)} amounts for {len(symbols)} tokens"
            )
            raise PartialReadFailure(symbols[len(amounts):])

        observed_at = utcnow()
        return tuple(
            RewardBalance(
                token_symbol=token.symbol,
                address=token.address,
                amount=amount,
                observed_at=observed_at
            )
            for token, amount in zip(config.reward_tokens, amounts)
        )

    def clear(self) -> None:
        """Forget the published snapshot (session reset)."""
        self._snapshot = None

    def get_metrics(self) -> dict[str, int]:
        return {
            "refreshes_succeeded": self.refreshes_succeeded,
            "refreshes_failed": self.refreshes_failed,
        }
