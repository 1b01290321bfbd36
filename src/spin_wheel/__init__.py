"""
Spin wheel client package.

Drives spin and claim transactions against the reward wheel contract,
reconciles multi-token reward balances and resolves the player's social identity.
"""

from .config import AppConfig, ContractConfig, RewardToken, ValidatedConfig, validate
from .errors import ErrorKind, SuggestedAction
from .identity import IdentityResolver
from .ledger import RewardLedger
from .models import IdentityRecord, RewardSnapshot, SpinAttempt, SpinState
from .orchestrator import SpinOrchestrator
from .session import GameSession
from .wallet import WalletSessionProvider, WalletStatus

__all__ = [
    "AppConfig",
    "ContractConfig",
    "ErrorKind",
    "GameSession",
    "IdentityRecord",
    "IdentityResolver",
    "RewardLedger",
    "RewardSnapshot",
    "RewardToken",
    "SpinAttempt",
    "SpinOrchestrator",
    "SpinState",
    "SuggestedAction",
    "ValidatedConfig",
    "WalletSessionProvider",
    "WalletStatus",
    "validate",
]
__version__ = "0.1.0"
