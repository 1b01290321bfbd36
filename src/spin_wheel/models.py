#!/usr/bin/env python3
"""Data models for the spin wheel client.

This module provides the records shared between the orchestrator, the reward
ledger and the identity resolver, plus the boundary mappers that turn loose
external payloads (session context, directory responses) into typed records.
"""

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import ErrorKind


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _clean_str(value: Any) -> str | None:
    """Keep non-empty strings, drop everything else."""
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def _clean_fid(value: Any) -> int | None:
    """Accept positive integers or digit strings as a numeric user id."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value if value > 0 else None
    if isinstance(value, str) and value.strip().isdigit():
        fid = int(value.strip())
        return fid if fid > 0 else None
    return None


def _read(source: Any, key: str) -> Any:
    """Read a key from a mapping or an attribute from an object."""
    if hasattr(source, 'get'):
        return source.get(key)
    return getattr(source, key, None)


@dataclass(frozen=True, slots=True)
class RewardBalance:
    """Balance of one reward token for one owner.

    Attributes:
        token_symbol: Symbol of the reward token
        address: Checksummed token address
        amount: Raw token units (no decimals applied)
        observed_at: When the balance was read
    """

    token_symbol: str
    address: str
    amount: int
    observed_at: datetime

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "token_symbol": self.token_symbol,
            "address": self.address,
            "amount": str(self.amount),
            "observed_at": self.observed_at.isoformat()
        }


@dataclass(frozen=True, slots=True)
class RewardSnapshot:
    """A complete set of balances, one per configured token, in config order.

    A snapshot is only ever built from a refresh in which every read succeeded.
    """

    owner: str
    balances: tuple[RewardBalance, ...]
    observed_at: datetime

    def __len__(self) -> int:
        return len(self.balances)

    def __str__(self) -> str:
        """Human-readable string representation."""
        parts = ", ".join(f"{b.token_symbol}={b.amount}" for b in self.balances)
        return f"RewardSnapshot(owner={self.owner[:8]}..., {parts})"

    @property
    def by_address(self) -> dict[str, RewardBalance]:
        return {balance.address: balance for balance in self.balances}

    def amount_of(self, symbol: str) -> int | None:
        for balance in self.balances:
            if balance.token_symbol == symbol:
                return balance.amount
        return None

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "owner": self.owner,
            "observed_at": self.observed_at.isoformat(),
            "balances": [balance.to_dict() for balance in self.balances]
        }


@dataclass(frozen=True, slots=True)
class RewardGrant:
    """One line of the reward detail reported for a finished attempt."""

    token_symbol: str
    amount: int


@dataclass(frozen=True, slots=True)
class SpinOutcome:
    """Decoded SpinResult event of a confirmed spin transaction."""

    segment: str
    is_win: bool
    token_address: str
    reward_amount: int
    random_seed: int


@dataclass(frozen=True, slots=True)
class PlayerStats:
    """Per-player counters kept by the wheel game contract.

    Attributes:
        total_spins: Spins since the player first played
        total_wins: Spins that granted a reward
        last_spin_at: Block time of the last spin, None if never spun
        daily_spins: Spins used in the current day
        spins_remaining: Spins left before the daily limit
    """

    total_spins: int
    total_wins: int
    last_spin_at: datetime | None
    daily_spins: int
    spins_remaining: int

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "total_spins": self.total_spins,
            "total_wins": self.total_wins,
            "last_spin_at": self.last_spin_at.isoformat() if self.last_spin_at else None,
            "daily_spins": self.daily_spins,
            "spins_remaining": self.spins_remaining
        }


class SpinState(Enum):
    """States of the spin/claim state machine."""
    IDLE = "idle"
    PRECHECK = "precheck"
    SUBMITTING = "submitting"
    PENDING_CONFIRMATION = "pending_confirmation"
    RECONCILING = "reconciling"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (SpinState.SUCCEEDED, SpinState.FAILED)


class SpinAction(Enum):
    """Which contract call an attempt drives."""
    SPIN = "spin"
    CLAIM = "claim"


@dataclass(slots=True)
class SpinAttempt:
    """One user-initiated spin or claim, owned by the orchestrator.

    Attributes:
        action: SPIN or CLAIM
        id: Correlation token
        requested_at: When the attempt was created
        state: Current state machine state
        tx_hash: Broadcast transaction hash, once known
        error: Failure kind when state is FAILED
        error_message: Detail for logs and support
        rewards_granted: Reward detail on success, one entry per configured token
        owner: Address that signed the transaction
        claim_token: Token symbol for CLAIM attempts
        outcome: Decoded SpinResult event, when the receipt carried one
        resumed_from: Id of the attempt this one rechecks, if any
    """

    action: SpinAction = SpinAction.SPIN
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    requested_at: datetime = field(default_factory=utcnow)
    state: SpinState = SpinState.IDLE
    tx_hash: str | None = None
    error: ErrorKind | None = None
    error_message: str | None = None
    rewards_granted: tuple[RewardGrant, ...] = ()
    owner: str | None = None
    claim_token: str | None = None
    outcome: SpinOutcome | None = None
    resumed_from: str | None = None

    def __str__(self) -> str:
        """Human-readable string representation."""
        detail = f", error={self.error.value}" if self.error else ""
        return f"SpinAttempt({self.action.value}, id={self.id[:8]}, state={self.state.value}{detail})"

    @property
    def terminal(self) -> bool:
        return self.state.terminal

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "id": self.id,
            "action": self.action.value,
            "requested_at": self.requested_at.isoformat(),
            "state": self.state.value,
            "tx_hash": self.tx_hash,
            "error": self.error.value if self.error else None,
            "suggested_action": self.error.suggested_action.value if self.error else None,
            "rewards_granted": [
                {"token_symbol": grant.token_symbol, "amount": str(grant.amount)}
                for grant in self.rewards_granted
            ],
            "resumed_from": self.resumed_from
        }


@dataclass(frozen=True, slots=True)
class SessionUser:
    """User block of a live session context."""

    fid: int
    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None


@dataclass(frozen=True, slots=True)
class SessionContext:
    """Live session context supplied by the embedding host."""

    user: SessionUser | None

    @classmethod
    def from_payload(cls, payload: Any) -> "SessionContext | None":
        """Map a loose host payload (mapping or object) to a typed context.

        Returns None when there is no payload at all. A payload whose user block
        is missing or has no usable numeric id maps to a context with user=None.
        """
        if payload is None:
            return None

        raw_user = _read(payload, 'user')
        if raw_user is None:
            return cls(user=None)

        fid = _clean_fid(_read(raw_user, 'fid') or _read(raw_user, 'id'))
        if fid is None:
            return cls(user=None)

        return cls(user=SessionUser(
            fid=fid,
            username=_clean_str(_read(raw_user, 'username')),
            display_name=_clean_str(_read(raw_user, 'displayName')),
            avatar_url=_clean_str(_read(raw_user, 'avatarUrl') or _read(raw_user, 'pfpUrl')),
            bio=_clean_str(_read(raw_user, 'bio'))
        ))


@dataclass(frozen=True, slots=True)
class DirectoryProfile:
    """Profile fields returned by the identity directory."""

    username: str | None = None
    display_name: str | None = None
    avatar_url: str | None = None
    bio: str | None = None

    @classmethod
    def from_payload(cls, payload: Any) -> "DirectoryProfile":
        """Map a directory JSON body to a typed profile.

        Raises:
            ValueError: If the body is not a JSON object
        """
        if not isinstance(payload, dict):
            raise ValueError(f"Directory payload must be an object, got {type(payload).__name__}")

        return cls(
            username=_clean_str(payload.get('username')),
            display_name=_clean_str(payload.get('displayName')),
            avatar_url=_clean_str(payload.get('avatarUrl') or payload.get('pfpUrl')),
            bio=_clean_str(payload.get('bio'))
        )


class IdentitySource(Enum):
    """Where the fields of an IdentityRecord came from."""
    SESSION = "session"
    DIRECTORY = "directory"
    MERGED = "merged"


@dataclass(frozen=True, slots=True)
class IdentityRecord:
    """Resolved social identity of the current session."""

    fid: int
    username: str | None
    display_name: str | None
    avatar_url: str | None
    bio: str | None
    source: IdentitySource
    resolved_at: datetime = field(default_factory=utcnow)

    def __str__(self) -> str:
        """Human-readable string representation."""
        return f"IdentityRecord(fid={self.fid}, username={self.username}, source={self.source.value})"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for serialization."""
        return {
            "fid": self.fid,
            "username": self.username,
            "display_name": self.display_name,
            "avatar_url": self.avatar_url,
            "bio": self.bio,
            "source": self.source.value,
            "resolved_at": self.resolved_at.isoformat()
        }
