#!/usr/bin/env python3
"""Composition root for one app session.

Builds each component exactly once from AppConfig and hands them to each
other explicitly; nothing in the package looks up a global instance.
"""

import logging
from typing import Any

import httpx
from eth_account import Account
from eth_account.signers.local import LocalAccount

from .config import AppConfig, ValidatedConfig
from .errors import ErrorKind, WalletConnectionError
from .identity import IdentityResolver
from .ledger import RewardLedger
from .models import IdentityRecord, PlayerStats, RewardBalance, RewardSnapshot, SpinAttempt
from .orchestrator import SpinOrchestrator
from .utils.contract_utility import ContractUtility
from .utils.directory_client import DirectoryClient
from .wallet import WalletSessionProvider
from .wheel_client import WheelGameClient

logger = logging.getLogger(__name__)


class GameSession:
    """Owns the wallet provider, orchestrator, ledger and identity resolver."""

    def __init__(
        self,
        config: AppConfig,
        wallet: WalletSessionProvider | None = None,
        contract_util: ContractUtility | None = None,
        directory_transport: httpx.AsyncBaseTransport | None = None
    ) -> None:
        """
        Wire up the session components.

        :param config: Application configuration
        :param wallet: Wallet provider; a disconnected one is created if omitted
        :param contract_util: RPC access; built from config.network if omitted
        :param directory_transport: Optional httpx transport for the directory
        """
        self.config = config
        self.contract_util = contract_util or ContractUtility(
            config.network.rpc_url,
            request_timeout=config.network.request_timeout
        )
        self.wallet = wallet or WalletSessionProvider(expected_chain_id=config.contract.chain_id)

        self.orchestrator = SpinOrchestrator(
            config.contract,
            self.wallet,
            client_factory=self._build_client,
            timing=config.timing
        )

        directory = None
        if config.directory.enabled:
            directory = DirectoryClient(
                config.directory.base_url,
                timeout=config.timing.directory_timeout,
                transport=directory_transport
            )
        self.identity = IdentityResolver(directory, timeout=config.timing.directory_timeout)

    def _build_client(self, validated: ValidatedConfig) -> WheelGameClient:
        return WheelGameClient(
            self.contract_util,
            validated,
            poll_interval=self.config.timing.poll_interval
        )

    @property
    def ledger(self) -> RewardLedger | None:
        return self.orchestrator.ledger

    async def start(self) -> None:
        """Log the configuration and, in local mode, connect the local key on the RPC's chain."""
        self.config.log_config()

        if self.config.local_mode and self.config.local_private_key:
            logger.debug("Fetching chain ID from RPC...")
            chain_id: int = await self.contract_util.call(self.contract_util.w3.eth.chain_id)
            account: LocalAccount = Account.from_key(self.config.local_private_key)
            self.wallet.connect(account, chain_id)

    def _owner(self) -> str:
        self.orchestrator.require_config()
        if not (owner := self.wallet.current().address):
            raise WalletConnectionError(ErrorKind.NOT_CONNECTED, "Wallet not connected")
        return owner

    async def balances(self) -> RewardSnapshot:
        """Refresh reward balances on demand for the connected wallet."""
        owner = self._owner()
        return await self.ledger.refresh(self.orchestrator.validated, owner)

    async def pending(self) -> tuple[RewardBalance, ...]:
        """Read unclaimed rewards for the connected wallet."""
        owner = self._owner()
        return await self.ledger.read_pending(self.orchestrator.validated, owner)

    async def claim_all(self) -> list[SpinAttempt]:
        """
        Claim every token with a pending reward, one claim at a time.

        Each claim is a separate attempt through the orchestrator. Claiming
        stops at the first attempt that does not succeed.

        Returns:
            The attempts made, in token order; empty when nothing is pending

        Raises:
            ConfigError, WalletConnectionError: Setup is not usable
            PartialReadFailure: Pending rewards could not be read
            AlreadyInProgress: Another attempt is still running
        """
        attempts: list[SpinAttempt] = []

        for balance in await self.pending():
            if balance.amount <= 0:
                continue

            attempt = await self.orchestrator.claim(balance.token_symbol)
            attempts.append(attempt)
            if attempt.error is not None:
                logger.warning(f"Stopping claim-all after {attempt}")
                break

        if not attempts:
            logger.info("No pending rewards to claim")
        return attempts

    async def stats(self) -> PlayerStats:
        """Read the contract's counters for the connected wallet."""
        owner = self._owner()
        return await self.orchestrator.client.player_stats(owner)

    async def resolve_identity(self, context: Any) -> IdentityRecord:
        """Resolve the social identity for a host session context."""
        return await self.identity.resolve(context)

    def reset(self) -> None:
        """Full app reset: identity, balances and attempt history."""
        logger.info("Resetting session state")
        self.identity.reset()
        if self.ledger is not None:
            self.ledger.clear()
        for attempt in self.orchestrator.history:
            self.orchestrator.acknowledge(attempt.id)
