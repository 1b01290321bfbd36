#!/usr/bin/env python3
"""On-chain access to the wheel game and its reward tokens.

This module submits spin and claim transactions, waits for them to reach the
configured confirmation depth, and reads token balances, pending rewards and
player stats.
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from eth_account.signers.local import LocalAccount
from web3 import Web3
from web3.contract import AsyncContract
from web3.contract.async_contract import AsyncContractFunction
from web3.exceptions import TransactionNotFound
from web3.logs import DISCARD
from web3.types import TxParams, TxReceipt

from .config import ValidatedConfig
from .errors import (
    ChainError,
    ConfirmationTimeout,
    NetworkUnavailable,
    SubmissionRejected,
    TransactionReverted,
)
from .models import PlayerStats, SpinOutcome

if TYPE_CHECKING:
    from .utils.contract_utility import ContractUtility

logger = logging.getLogger(__name__)

SignedListener = Callable[[str], None]


class WheelGameClient:
    """Drives calls into the wheel game contract and the reward token contracts."""

    def __init__(
        self,
        contract_util: "ContractUtility",
        config: ValidatedConfig,
        poll_interval: float = 2.0
    ) -> None:
        """
        Initialize the WheelGameClient.

        Args:
            contract_util: Utility for contract interactions
            config: Validated contract configuration
            poll_interval: Seconds between receipt/block polls while confirming
        """
        self.contract_util: ContractUtility = contract_util
        self.config: ValidatedConfig = config
        self.poll_interval: float = poll_interval

        self.wheel: AsyncContract = self.contract_util.contract(
            config.wheel_game_address, "WheelGame"
        )
        self.tokens: dict[str, AsyncContract] = {
            token.address: self.contract_util.contract(token.address, "ERC20")
            for token in config.reward_tokens
        }

        logger.info(f"WheelGameClient initialized for {config.wheel_game_address} on chain {config.chain_id}")

    async def submit_spin(self, signer: LocalAccount, on_signed: SignedListener | None = None) -> str:
        """
        Sign and broadcast a spin() transaction.

        Args:
            signer: Account that pays for and signs the transaction
            on_signed: Called with the transaction hash after signing and
                before the raw transaction is handed to the node

        Returns:
            Transaction hash (0x-prefixed hex)

        Raises:
            SubmissionRejected: Signing, gas estimation or the node refused it
            NetworkUnavailable: The RPC endpoint could not be reached before sending
            ConfirmationTimeout: The send itself failed in transit; the
                transaction may still land
        """
        return await self._send(signer, self.wheel.functions.spin(), "spin", on_signed)

    async def submit_claim(
        self,
        signer: LocalAccount,
        token_address: str,
        on_signed: SignedListener | None = None
    ) -> str:
        """Sign and broadcast claimRewards(token_address). Same errors as submit_spin."""
        return await self._send(
            signer,
            self.wheel.functions.claimRewards(Web3.to_checksum_address(token_address)),
            "claimRewards",
            on_signed
        )

    async def _send(
        self,
        signer: LocalAccount,
        function: AsyncContractFunction,
        label: str,
        on_signed: SignedListener | None
    ) -> str:
        w3 = self.contract_util.w3

        nonce: int = await self.contract_util.call(
            w3.eth.get_transaction_count(signer.address, "pending"),
            SubmissionRejected
        )

        tx_params: TxParams = {
            'from': signer.address,
            'chainId': self.config.chain_id,
            'nonce': nonce,
        }

        # Gas estimation happens here; a reverting call is rejected before signing
        tx: dict[str, Any] = await self.contract_util.call(
            function.build_transaction(tx_params),
            SubmissionRejected
        )

        try:
            signed = signer.sign_transaction(tx)
        except Exception as e:
            raise SubmissionRejected(f"Signer rejected {label} transaction: {e}") from e

        tx_hash_hex: str = Web3.to_hex(signed.hash)
        if on_signed is not None:
            on_signed(tx_hash_hex)

        # From here on the node may have the transaction even if the call fails
        try:
            await self.contract_util.call(
                w3.eth.send_raw_transaction(signed.raw_transaction),
                SubmissionRejected
            )
        except NetworkUnavailable as e:
            logger.warning(f"Broadcast of {tx_hash_hex} failed in transit, outcome unknown: {e}")
            raise ConfirmationTimeout(
                tx_hash_hex,
                self.contract_util.request_timeout,
                f"Broadcast of {tx_hash_hex} did not complete; it may still be mined"
            ) from e

        logger.info(f"✓ {label} transaction broadcast: {tx_hash_hex} (nonce {nonce})")
        return tx_hash_hex

    async def await_confirmation(
        self,
        tx_hash: str,
        confirmations: int,
        timeout: float
    ) -> TxReceipt:
        """
        Wait until a transaction is mined and buried under enough blocks.

        Connectivity problems while waiting are logged and polling continues;
        the overall wait is bounded by timeout.

        Args:
            tx_hash: Hash of the broadcast transaction
            confirmations: Required depth, 1 meaning "mined"
            timeout: Upper bound in seconds for the whole wait

        Returns:
            The transaction receipt

        Raises:
            ConfirmationTimeout: The depth was not reached in time
            TransactionReverted: The transaction was mined with status 0
        """
        try:
            async with asyncio.timeout(timeout):
                receipt = await self._wait_for_depth(tx_hash, confirmations)
        except TimeoutError:
            logger.warning(f"Transaction {tx_hash} not confirmed within {timeout}s")
            raise ConfirmationTimeout(tx_hash, timeout) from None

        if (status := receipt.get('status', 0)) != 1:
            logger.error(f"✗ Transaction {tx_hash} failed with status={status}")
            raise TransactionReverted(tx_hash, receipt.get('blockNumber'))

        logger.info(f"✓ Transaction {tx_hash} confirmed in block {receipt['blockNumber']}")
        return receipt

    async def _wait_for_depth(self, tx_hash: str, confirmations: int) -> TxReceipt:
        w3 = self.contract_util.w3

        while True:
            try:
                receipt: TxReceipt | None = await self.contract_util.call(
                    w3.eth.get_transaction_receipt(tx_hash)
                )
            except ChainError as e:
                if not isinstance(e.__cause__, TransactionNotFound):
                    logger.debug(f"Receipt lookup for {tx_hash} failed, will retry: {e}")
                receipt = None

            if receipt is not None:
                if receipt.get('status', 0) != 1:
                    return receipt

                try:
                    head: int = await self.contract_util.call(w3.eth.block_number)
                except NetworkUnavailable as e:
                    logger.debug(f"Block number lookup failed, will retry: {e}")
                else:
                    depth = head - receipt['blockNumber'] + 1
                    logger.debug(f"Transaction {tx_hash} at depth {depth}/{confirmations}")
                    if depth >= confirmations:
                        return receipt

            await asyncio.sleep(self.poll_interval)

    def decode_spin_result(self, receipt: TxReceipt, player: str) -> SpinOutcome | None:
        """Extract the SpinResult event for player from a receipt, if present."""
        try:
            events = self.wheel.events.SpinResult().process_receipt(receipt, errors=DISCARD)
        except Exception as e:
            logger.warning(f"Could not decode SpinResult from receipt: {e}")
            return None

        for event in events:
            args = event['args']
            if Web3.to_checksum_address(args['player']) != Web3.to_checksum_address(player):
                continue
            return SpinOutcome(
                segment=args['segment'],
                is_win=bool(args['isWin']),
                token_address=Web3.to_checksum_address(args['tokenAddress']),
                reward_amount=int(args['rewardAmount']),
                random_seed=int(args['randomSeed'])
            )
        return None

    async def balance_of(self, token_address: str, owner: str) -> int:
        """Read an ERC20 balance. Raises ChainError on any failure."""
        contract = self.tokens.get(token_address) or self.contract_util.contract(token_address, "ERC20")
        balance: int = await self.contract_util.call(
            contract.functions.balanceOf(Web3.to_checksum_address(owner)).call()
        )
        return int(balance)

    async def pending_rewards(self, owner: str) -> tuple[int, ...]:
        """Read getPendingRewards(owner). Raises ChainError on any failure."""
        amounts = await self.contract_util.call(
            self.wheel.functions.getPendingRewards(Web3.to_checksum_address(owner)).call()
        )
        return tuple(int(amount) for amount in amounts)

    async def player_stats(self, owner: str) -> PlayerStats:
        """Read getPlayerStats(owner). Raises ChainError on any failure."""
        values = await self.contract_util.call(
            self.wheel.functions.getPlayerStats(Web3.to_checksum_address(owner)).call()
        )
        total_spins, total_wins, last_spin_date, daily_spins, spins_remaining = (int(v) for v in values)
        return PlayerStats(
            total_spins=total_spins,
            total_wins=total_wins,
            last_spin_at=(
                datetime.fromtimestamp(last_spin_date, timezone.utc) if last_spin_date else None
            ),
            daily_spins=daily_spins,
            spins_remaining=spins_remaining
        )
