"""Wallet session provider.

Holds the connected account, its chain and the signer capability, and
notifies listeners on connect, disconnect, account switch and chain switch.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from enum import Enum

from eth_account import Account
from eth_account.signers.local import LocalAccount

logger = logging.getLogger(__name__)


class WalletStatus(Enum):
    """Connectivity status relative to the configured chain."""
    DISCONNECTED = "disconnected"
    CONNECTED = "connected"
    WRONG_NETWORK = "wrong_network"


@dataclass(frozen=True, slots=True)
class WalletSession:
    """Immutable snapshot of the wallet connection.

    Attributes:
        address: Connected account address
        chain_id: Chain the wallet is currently on
        connected: Whether a wallet is connected
        signer: Signing capability for the connected account
    """

    address: str | None = None
    chain_id: int | None = None
    connected: bool = False
    signer: LocalAccount | None = field(default=None, repr=False, compare=False)

    def status(self, expected_chain_id: int | None) -> WalletStatus:
        """Classify this snapshot against the chain the contract lives on."""
        if not self.connected or not self.address or self.signer is None:
            return WalletStatus.DISCONNECTED
        if expected_chain_id is not None and self.chain_id != expected_chain_id:
            return WalletStatus.WRONG_NETWORK
        return WalletStatus.CONNECTED


SessionListener = Callable[[WalletSession], None]


class WalletSessionProvider:
    """Single owner of the wallet session; everybody else reads snapshots."""

    def __init__(self, expected_chain_id: int | None = None) -> None:
        """
        Initialize the provider in the disconnected state.

        :param expected_chain_id: Chain the reward contract is deployed on
        """
        self.expected_chain_id = expected_chain_id
        self._session = WalletSession()
        self._listeners: list[SessionListener] = []

    @classmethod
    def from_private_key(
        cls,
        private_key: str,
        chain_id: int,
        expected_chain_id: int | None = None
    ) -> "WalletSessionProvider":
        """Create a provider already connected with a local key (local mode)."""
        provider = cls(expected_chain_id=expected_chain_id)
        account: LocalAccount = Account.from_key(private_key)
        provider.connect(account, chain_id)
        return provider

    def current(self) -> WalletSession:
        """Return the current session snapshot."""
        return self._session

    def status(self) -> WalletStatus:
        return self._session.status(self.expected_chain_id)

    def on_change(self, listener: SessionListener) -> Callable[[], None]:
        """
        Register a listener for session changes.

        :param listener: Called with the new snapshot after every change
        :return: Callable that unregisters the listener
        """
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def connect(self, account: LocalAccount, chain_id: int) -> None:
        logger.info(f"Wallet connected: {account.address} on chain {chain_id}")
        self._update(WalletSession(
            address=account.address,
            chain_id=chain_id,
            connected=True,
            signer=account
        ))

    def disconnect(self) -> None:
        logger.info("Wallet disconnected")
        self._update(WalletSession())

    def switch_account(self, account: LocalAccount) -> None:
        if not self._session.connected:
            raise RuntimeError("Cannot switch account while disconnected")
        logger.info(f"Wallet account switched to {account.address}")
        self._update(replace(self._session, address=account.address, signer=account))

    def switch_chain(self, chain_id: int) -> None:
        if not self._session.connected:
            raise RuntimeError("Cannot switch chain while disconnected")
        logger.info(f"Wallet chain switched to {chain_id}")
        self._update(replace(self._session, chain_id=chain_id))

    def _update(self, session: WalletSession) -> None:
        self._session = session

        if (status := self.status()) is WalletStatus.WRONG_NETWORK:
            logger.warning(
                f"Wallet is on chain {session.chain_id}, expected {self.expected_chain_id}"
            )
        logger.debug(f"Wallet status: {status.value}")

        for listener in list(self._listeners):
            try:
                listener(session)
            except Exception as e:
                logger.error(f"Wallet session listener failed: {e}", exc_info=True)
