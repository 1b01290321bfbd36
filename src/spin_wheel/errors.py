#!/usr/bin/env python3
"""Error taxonomy for the spin wheel client.

Every component raises one of these typed exceptions at its boundary instead
of leaking web3 or httpx exceptions. The orchestrator is the single place that
maps them onto a terminal SpinAttempt.
"""

from enum import Enum


class SuggestedAction(Enum):
    """What the UI should offer the user for a given failure."""
    NONE = "none"
    TRY_AGAIN = "try_again"
    CHECK_STATUS = "check_status"
    FIX_SETUP = "fix_setup"


class ErrorKind(Enum):
    """Terminal failure kinds of a SpinAttempt."""
    NOT_CONFIGURED = "not_configured"
    NOT_CONNECTED = "not_connected"
    WRONG_NETWORK = "wrong_network"
    UNKNOWN_TOKEN = "unknown_token"
    ALREADY_IN_PROGRESS = "already_in_progress"
    SUBMISSION_REJECTED = "submission_rejected"
    NETWORK_UNAVAILABLE = "network_unavailable"
    CONFIRMATION_TIMEOUT = "confirmation_timeout"
    TRANSACTION_REVERTED = "transaction_reverted"
    RECONCILIATION_FAILED = "reconciliation_failed"
    CANCELLED = "cancelled"
    DETACHED = "detached"

    @property
    def suggested_action(self) -> SuggestedAction:
        match self:
            case ErrorKind.NETWORK_UNAVAILABLE:
                return SuggestedAction.TRY_AGAIN
            case ErrorKind.CONFIRMATION_TIMEOUT | ErrorKind.DETACHED | ErrorKind.RECONCILIATION_FAILED:
                return SuggestedAction.CHECK_STATUS
            case ErrorKind.NOT_CONFIGURED | ErrorKind.NOT_CONNECTED | ErrorKind.WRONG_NETWORK:
                return SuggestedAction.FIX_SETUP
            case _:
                return SuggestedAction.NONE

    @property
    def ambiguous(self) -> bool:
        """True when the transaction may still land; never show as a flat failure."""
        return self.suggested_action is SuggestedAction.CHECK_STATUS

    @property
    def retryable(self) -> bool:
        """True when starting a brand new attempt is safe."""
        return self is ErrorKind.NETWORK_UNAVAILABLE


class ConfigErrorKind(Enum):
    """Reasons a ContractConfig is rejected."""
    MISSING_ADDRESS = "missing_address"
    MALFORMED_ADDRESS = "malformed_address"
    DUPLICATE_TOKEN = "duplicate_token"


class SpinWheelError(Exception):
    """Base class for all spin wheel errors."""

    kind: ErrorKind | None = None


class ConfigError(SpinWheelError, ValueError):
    """Contract configuration is unusable; blocks all spin activity."""

    kind = ErrorKind.NOT_CONFIGURED

    def __init__(self, reason: ConfigErrorKind, message: str) -> None:
        super().__init__(message)
        self.reason = reason


class AlreadyInProgress(SpinWheelError):
    """A second request arrived while another attempt is still non-terminal."""

    kind = ErrorKind.ALREADY_IN_PROGRESS

    def __init__(self, active_attempt_id: str) -> None:
        super().__init__(f"Attempt {active_attempt_id} is still in progress")
        self.active_attempt_id = active_attempt_id


class WalletConnectionError(SpinWheelError):
    """Wallet missing or on the wrong chain. Fixed by the user, never retried."""

    def __init__(self, kind: ErrorKind, message: str) -> None:
        super().__init__(message)
        self.kind = kind


class UnknownToken(SpinWheelError):
    """A claim named a token symbol that is not configured."""

    kind = ErrorKind.UNKNOWN_TOKEN


class ChainError(SpinWheelError):
    """Base class for failures at the on-chain boundary."""


class SubmissionRejected(ChainError):
    """The signer or the node refused the transaction. Not retried automatically."""

    kind = ErrorKind.SUBMISSION_REJECTED


class NetworkUnavailable(ChainError):
    """The RPC endpoint could not be reached. Transient."""

    kind = ErrorKind.NETWORK_UNAVAILABLE


class ConfirmationTimeout(ChainError):
    """The transaction was signed but is not known to be confirmed in time.

    Raised both when the confirmation depth is not reached and when the
    broadcast itself fails in transit. Either way it may still land.
    """

    kind = ErrorKind.CONFIRMATION_TIMEOUT

    def __init__(self, tx_hash: str, timeout: float, message: str | None = None) -> None:
        super().__init__(message or f"Transaction {tx_hash} not confirmed within {timeout}s")
        self.tx_hash = tx_hash
        self.timeout = timeout


class TransactionReverted(ChainError):
    """The transaction was mined but its execution reverted."""

    kind = ErrorKind.TRANSACTION_REVERTED

    def __init__(self, tx_hash: str, block_number: int | None = None) -> None:
        super().__init__(f"Transaction {tx_hash} reverted in block {block_number}")
        self.tx_hash = tx_hash
        self.block_number = block_number


class LedgerError(SpinWheelError):
    """Base class for reward ledger failures."""

    kind = ErrorKind.RECONCILIATION_FAILED


class PartialReadFailure(LedgerError):
    """At least one token read failed; the whole refresh is discarded."""

    def __init__(self, failed_tokens: tuple[str, ...]) -> None:
        super().__init__(f"Failed to read balances for: {', '.join(failed_tokens)}")
        self.failed_tokens = failed_tokens


class IdentityError(SpinWheelError):
    """Base class for identity resolution failures."""


class NoSession(IdentityError):
    """No session context, or the context carries no user id. Treated as anonymous."""

    def __init__(self, message: str = "No social session available") -> None:
        super().__init__(message)
