"""Shared fixtures for the spin wheel tests."""

from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from web3 import Web3

from spin_wheel.config import ContractConfig, RewardToken, TimingConfig
from spin_wheel.wallet import WalletSessionProvider

GAME_ADDRESS = "0x85bfe05492afc3d04ff3b2ca6771acf6f853d90d"
AIDOGE_ADDRESS = "0x287396e90c5febb4dc1edbc0eef8e5668cdb08d4"
BOOP_ADDRESS = "0xaea5bb4f5b5524dee0e3f931911c8f8df4576e19"
BOBOTRUM_ADDRESS = "0x0e1cd6557d2ba59c61c75850e674c2ad73253952"

CHAIN_ID = 421614
PLAYER_KEY = "0x" + "11" * 32
OTHER_KEY = "0x" + "22" * 32
TX_HASH = "0x" + "ab" * 32


def checksum(address: str) -> str:
    return Web3.to_checksum_address(address)


@pytest.fixture
def contract_config() -> ContractConfig:
    """A well-formed three-token deployment."""
    return ContractConfig(
        wheel_game_address=GAME_ADDRESS,
        reward_tokens=(
            RewardToken("AIDOGE", AIDOGE_ADDRESS),
            RewardToken("BOOP", BOOP_ADDRESS),
            RewardToken("BOBOTRUM", BOBOTRUM_ADDRESS),
        ),
        chain_id=CHAIN_ID
    )


@pytest.fixture
def timing() -> TimingConfig:
    return TimingConfig(confirmations=1, confirmation_timeout=5, poll_interval=0.01, history_limit=3)


@pytest.fixture
def player():
    return Account.from_key(PLAYER_KEY)


@pytest.fixture
def wallet(player) -> WalletSessionProvider:
    """A wallet connected on the contract's chain."""
    provider = WalletSessionProvider(expected_chain_id=CHAIN_ID)
    provider.connect(player, CHAIN_ID)
    return provider


@pytest.fixture
def balances() -> dict[str, int]:
    """Balances returned by the mocked chain, keyed by checksummed token address."""
    return {
        checksum(AIDOGE_ADDRESS): 10,
        checksum(BOOP_ADDRESS): 0,
        checksum(BOBOTRUM_ADDRESS): 5,
    }


@pytest.fixture
def mock_client(balances):
    """A WheelGameClient double whose every call succeeds."""
    client = MagicMock()
    client.submit_spin = AsyncMock(return_value=TX_HASH)
    client.submit_claim = AsyncMock(return_value=TX_HASH)
    client.await_confirmation = AsyncMock(return_value={'status': 1, 'blockNumber': 100, 'logs': []})
    client.decode_spin_result = MagicMock(return_value=None)
    client.pending_rewards = AsyncMock(return_value=(1, 2, 3))

    async def balance_of(token_address, owner):
        return balances[token_address]

    client.balance_of = AsyncMock(side_effect=balance_of)
    return client
