#!/usr/bin/env python3
"""Configuration management for the spin wheel client.

This module provides the contract configuration record, its validator, and
type-safe ambient settings (RPC, timing, directory) loaded from environment
variables with sensible defaults where appropriate.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import ClassVar
from urllib.parse import urlparse

from eth_typing import ChecksumAddress
from web3 import Web3

from .errors import ConfigError, ConfigErrorKind

# Get logger for this module
logger = logging.getLogger(__name__)

PLACEHOLDER_ADDRESS = "0x0000000000000000000000000000000000000000"
ARBITRUM_SEPOLIA_CHAIN_ID = 421614
DEFAULT_RPC_URL = "https://sepolia-rollup.arbitrum.io/rpc"


@dataclass(frozen=True, slots=True)
class RewardToken:
    """A reward token the wheel contract may disburse."""

    symbol: str
    address: str


@dataclass(frozen=True, slots=True)
class ContractConfig:
    """Static contract configuration, exactly as supplied.

    Not self-validating: pass it through validate() to obtain a ValidatedConfig.

    Attributes:
        wheel_game_address: Address of the deployed wheel game contract
        reward_tokens: Ordered reward tokens
        chain_id: Chain the contract is deployed on
    """

    wheel_game_address: str
    reward_tokens: tuple[RewardToken, ...]
    chain_id: int = ARBITRUM_SEPOLIA_CHAIN_ID


_ISSUE_KEY = object()


@dataclass(frozen=True, slots=True)
class ValidatedConfig:
    """Contract configuration that passed validation.

    Only validate() can produce one. Components that talk to the chain take a
    ValidatedConfig, so an unvalidated config never reaches the network.
    """

    wheel_game_address: ChecksumAddress
    reward_tokens: tuple[RewardToken, ...]
    chain_id: int
    _key: object = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self._key is not _ISSUE_KEY:
            raise TypeError("ValidatedConfig can only be created by validate()")

    def token_by_symbol(self, symbol: str) -> RewardToken | None:
        """Look up a reward token by symbol (case-insensitive)."""
        wanted = symbol.upper()
        for token in self.reward_tokens:
            if token.symbol.upper() == wanted:
                return token
        return None


def is_placeholder(address: object) -> bool:
    """Check whether an address is empty or the zero-address sentinel."""
    if not address:
        return True
    if not isinstance(address, str):
        return False
    return address.lower() in ("0x", PLACEHOLDER_ADDRESS)


def _checksum(address: str, label: str) -> ChecksumAddress:
    if is_placeholder(address):
        raise ConfigError(
            ConfigErrorKind.MISSING_ADDRESS,
            f"{label} address is not configured"
        )

    if not isinstance(address, str) or not address.startswith("0x") or not Web3.is_address(address):
        raise ConfigError(
            ConfigErrorKind.MALFORMED_ADDRESS,
            f"Invalid {label} address: {address}"
        )

    return Web3.to_checksum_address(address)


def validate(config: ContractConfig) -> ValidatedConfig:
    """Validate a contract configuration without touching the network.

    Args:
        config: The static configuration to check

    Returns:
        An immutable ValidatedConfig with checksummed addresses

    Raises:
        ConfigError: MISSING_ADDRESS for an empty or placeholder address,
            MALFORMED_ADDRESS for a bad format or checksum, DUPLICATE_TOKEN when
            two tokens share an address or symbol or a token reuses the game address
    """
    game_address = _checksum(config.wheel_game_address, "wheel game")

    if not config.reward_tokens:
        raise ConfigError(ConfigErrorKind.MISSING_ADDRESS, "No reward tokens configured")

    tokens: list[RewardToken] = []
    seen_addresses: set[str] = {game_address}
    seen_symbols: set[str] = set()

    for token in config.reward_tokens:
        address = _checksum(token.address, f"{token.symbol} token")

        if address in seen_addresses:
            raise ConfigError(
                ConfigErrorKind.DUPLICATE_TOKEN,
                f"Token {token.symbol} reuses address {address}"
            )
        if token.symbol.upper() in seen_symbols:
            raise ConfigError(
                ConfigErrorKind.DUPLICATE_TOKEN,
                f"Token symbol {token.symbol} is configured twice"
            )

        seen_addresses.add(address)
        seen_symbols.add(token.symbol.upper())
        tokens.append(RewardToken(symbol=token.symbol, address=address))

    return ValidatedConfig(
        wheel_game_address=game_address,
        reward_tokens=tuple(tokens),
        chain_id=config.chain_id,
        _key=_ISSUE_KEY
    )


def parse_reward_tokens(raw: str) -> tuple[RewardToken, ...]:
    """Parse ``SYMBOL:0xaddr,SYMBOL:0xaddr`` into ordered reward tokens.

    Addresses are not checked here; that is validate()'s job.
    """
    tokens: list[RewardToken] = []
    for entry in raw.split(","):
        entry = entry.strip()
        if not entry:
            continue
        symbol, sep, address = entry.partition(":")
        if not sep or not symbol.strip():
            raise ValueError(f"Invalid REWARD_TOKENS entry: {entry!r}. Expected SYMBOL:0xADDRESS")
        tokens.append(RewardToken(symbol=symbol.strip(), address=address.strip()))
    return tuple(tokens)


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """RPC connection settings."""

    rpc_url: str = DEFAULT_RPC_URL
    request_timeout: int = 30

    def __post_init__(self) -> None:
        """Validate network configuration."""
        if not self.rpc_url:
            raise ValueError("RPC URL is required (RPC_URL)")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.request_timeout <= 0:
            raise ValueError(f"Request timeout must be positive, got {self.request_timeout}")
        if self.request_timeout > 120:
            raise ValueError(f"Request timeout too long (max 120s), got {self.request_timeout}")


@dataclass(frozen=True, slots=True)
class TimingConfig:
    """Confirmation and enrichment bounds."""
    confirmations: int = 1  # blocks required before a receipt counts as final
    confirmation_timeout: float = 120.0  # seconds
    poll_interval: float = 2.0  # seconds between receipt/block polls
    directory_timeout: float = 5.0  # seconds
    history_limit: int = 50  # terminal attempts kept until acknowledged

    def __post_init__(self) -> None:
        """Validate timing configuration."""
        if self.confirmations < 1:
            raise ValueError(f"Confirmations must be at least 1, got {self.confirmations}")
        if self.confirmations > 64:
            raise ValueError(f"Confirmations too high (max 64), got {self.confirmations}")

        if self.confirmation_timeout <= 0:
            raise ValueError(f"Confirmation timeout must be positive, got {self.confirmation_timeout}")
        if self.confirmation_timeout > 900:
            raise ValueError(f"Confirmation timeout too long (max 900s), got {self.confirmation_timeout}")

        if self.poll_interval <= 0:
            raise ValueError(f"Poll interval must be positive, got {self.poll_interval}")

        if self.directory_timeout <= 0:
            raise ValueError(f"Directory timeout must be positive, got {self.directory_timeout}")
        if self.directory_timeout > 60:
            raise ValueError(f"Directory timeout too long (max 60s), got {self.directory_timeout}")

        if self.history_limit < 1:
            raise ValueError(f"History limit must be at least 1, got {self.history_limit}")


@dataclass(frozen=True, slots=True)
class DirectoryConfig:
    """Identity directory settings. An empty base_url disables enrichment."""

    base_url: str = ""

    SUPPORTED_SCHEMES: ClassVar[set[str]] = {'http', 'https'}

    def __post_init__(self) -> None:
        """Validate directory configuration."""
        if not self.base_url:
            return

        parsed = urlparse(self.base_url)
        if parsed.scheme not in self.SUPPORTED_SCHEMES or not parsed.netloc:
            raise ValueError(f"Invalid directory URL: {self.base_url}")

        if self.base_url.endswith("/"):
            object.__setattr__(self, 'base_url', self.base_url.rstrip("/"))

    @property
    def enabled(self) -> bool:
        return bool(self.base_url)


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Main configuration for the spin wheel client.

    Attributes:
        contract: Contract and reward token configuration (validated separately)
        network: RPC connection settings
        timing: Confirmation and enrichment bounds
        directory: Identity directory settings
        local_mode: Whether running with a local private key
        local_private_key: Private key for local mode (optional)
    """

    contract: ContractConfig
    network: NetworkConfig = field(default_factory=NetworkConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    directory: DirectoryConfig = field(default_factory=DirectoryConfig)
    local_mode: bool = False
    local_private_key: str | None = None

    def __post_init__(self) -> None:
        """Validate app configuration."""
        if self.local_mode and not self.local_private_key:
            raise ValueError(
                "Local mode requires LOCAL_PRIVATE_KEY environment variable"
            )

        if self.local_private_key:
            key = self.local_private_key.removeprefix('0x')

            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )

            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    @classmethod
    def from_env(cls, local_mode: bool = False) -> "AppConfig":
        """Load configuration from environment variables.

        A missing WHEEL_GAME_ADDRESS is not an error here: it falls back to the
        placeholder so the app starts and every spin reports NOT_CONFIGURED.

        Args:
            local_mode: Whether to sign with LOCAL_PRIVATE_KEY

        Returns:
            AppConfig instance with loaded values

        Raises:
            ValueError: If an environment variable is present but invalid
        """
        contract_config = ContractConfig(
            wheel_game_address=os.environ.get("WHEEL_GAME_ADDRESS", PLACEHOLDER_ADDRESS),
            reward_tokens=parse_reward_tokens(os.environ.get("REWARD_TOKENS", "")),
            chain_id=int(os.environ.get("CHAIN_ID", str(ARBITRUM_SEPOLIA_CHAIN_ID)))
        )

        network_config = NetworkConfig(
            rpc_url=os.environ.get("RPC_URL", DEFAULT_RPC_URL),
            request_timeout=int(os.environ.get("REQUEST_TIMEOUT", "30"))
        )

        timing_config = TimingConfig(
            confirmations=int(os.environ.get("CONFIRMATIONS", "1")),
            confirmation_timeout=float(os.environ.get("CONFIRMATION_TIMEOUT", "120")),
            poll_interval=float(os.environ.get("POLL_INTERVAL", "2")),
            directory_timeout=float(os.environ.get("DIRECTORY_TIMEOUT", "5")),
            history_limit=int(os.environ.get("HISTORY_LIMIT", "50"))
        )

        directory_config = DirectoryConfig(
            base_url=os.environ.get("DIRECTORY_URL", "")
        )

        local_private_key = os.environ.get("LOCAL_PRIVATE_KEY") if local_mode else None

        return cls(
            contract=contract_config,
            network=network_config,
            timing=timing_config,
            directory=directory_config,
            local_mode=local_mode,
            local_private_key=local_private_key
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format for debugging."""
        logger.info("=" * 60)
        logger.info("Spin Wheel Configuration")
        logger.info("=" * 60)

        logger.info("Contract:")
        logger.info(f"  Wheel Game: {self.contract.wheel_game_address}")
        logger.info(f"  Chain ID: {self.contract.chain_id}")
        for token in self.contract.reward_tokens:
            logger.info(f"  Token {token.symbol}: {token.address}")

        logger.info("Network:")
        logger.info(f"  RPC URL: {self.network.rpc_url}")
        logger.info(f"  Request Timeout: {self.network.request_timeout} seconds")

        logger.info("Timing:")
        logger.info(f"  Confirmations: {self.timing.confirmations}")
        logger.info(f"  Confirmation Timeout: {self.timing.confirmation_timeout} seconds")
        logger.info(f"  Directory Timeout: {self.timing.directory_timeout} seconds")

        logger.info("Directory:")
        logger.info(f"  URL: {self.directory.base_url or '[DISABLED]'}")

        logger.info(f"Mode: {'LOCAL' if self.local_mode else 'READ-ONLY'}")
        if self.local_mode:
            logger.info("  Local Key: [CONFIGURED]")

        logger.info("=" * 60)
