#!/usr/bin/env python3
"""Spin/claim orchestration state machine.

Drives one attempt at a time through

    IDLE -> PRECHECK -> SUBMITTING -> PENDING_CONFIRMATION -> RECONCILING -> SUCCEEDED | FAILED

and is the single place where component errors become a terminal attempt.
Nothing is ever re-broadcast: recovery after an ambiguous outcome re-runs only
the confirmation wait or the balance refresh against the original tx hash.
"""

import asyncio
import logging
from collections import OrderedDict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, TypeVar

from eth_account.signers.local import LocalAccount

from .config import ContractConfig, TimingConfig, ValidatedConfig, validate
from .errors import (
    AlreadyInProgress,
    ConfigError,
    ErrorKind,
    SpinWheelError,
    UnknownToken,
    WalletConnectionError,
)
from .ledger import RewardLedger
from .models import RewardGrant, SpinAction, SpinAttempt, SpinState
from .wallet import WalletSessionProvider, WalletStatus

if TYPE_CHECKING:
    from .wheel_client import WheelGameClient

logger = logging.getLogger(__name__)

T = TypeVar("T")

ALLOWED_TRANSITIONS: dict[SpinState, frozenset[SpinState]] = {
    # Resumed attempts enter directly at PENDING_CONFIRMATION or RECONCILING
    SpinState.IDLE: frozenset({
        SpinState.PRECHECK, SpinState.PENDING_CONFIRMATION, SpinState.RECONCILING
    }),
    SpinState.PRECHECK: frozenset({SpinState.SUBMITTING, SpinState.FAILED}),
    SpinState.SUBMITTING: frozenset({SpinState.PENDING_CONFIRMATION, SpinState.FAILED}),
    SpinState.PENDING_CONFIRMATION: frozenset({SpinState.RECONCILING, SpinState.FAILED}),
    SpinState.RECONCILING: frozenset({SpinState.SUCCEEDED, SpinState.FAILED}),
    SpinState.SUCCEEDED: frozenset(),
    SpinState.FAILED: frozenset(),
}

AttemptListener = Callable[[SpinAttempt], None]


class _Cancelled(Exception):
    """Raised inside the driver when the user cancels the active attempt."""


class SpinOrchestrator:
    """Runs spin and claim attempts for one wallet session.

    At most one attempt is non-terminal at any time; the exclusive slot is
    claimed synchronously before the first suspension point, so concurrent
    requests see it immediately.
    """

    def __init__(
        self,
        config: ContractConfig,
        wallet: WalletSessionProvider,
        client_factory: Callable[[ValidatedConfig], "WheelGameClient"],
        timing: TimingConfig | None = None
    ) -> None:
        """
        Initialize the orchestrator.

        An invalid config does not raise: it is kept as config_error and every
        attempt fails with NOT_CONFIGURED before touching the network.

        Args:
            config: Static contract configuration, validated here once
            wallet: Provider of wallet session snapshots
            client_factory: Builds the on-chain client for a validated config
            timing: Confirmation depth and timeout settings
        """
        self.wallet = wallet
        self.timing = timing or TimingConfig()

        self.validated: ValidatedConfig | None = None
        self.config_error: ConfigError | None = None
        self.client: WheelGameClient | None = None
        self.ledger: RewardLedger | None = None

        try:
            self.validated = validate(config)
        except ConfigError as e:
            self.config_error = e
            logger.warning(f"Contract not configured ({e.reason.value}): {e}. Spins are disabled")
        else:
            self.client = client_factory(self.validated)
            self.ledger = RewardLedger(self.client)

        self._active: SpinAttempt | None = None
        self._cancel_event: asyncio.Event | None = None
        self._history: OrderedDict[str, SpinAttempt] = OrderedDict()
        self._listeners: list[AttemptListener] = []

    @property
    def active(self) -> SpinAttempt | None:
        """The non-terminal attempt, if any."""
        return self._active

    @property
    def history(self) -> list[SpinAttempt]:
        """Terminal attempts not yet acknowledged, oldest first."""
        return list(self._history.values())

    def on_update(self, listener: AttemptListener) -> Callable[[], None]:
        """Register a listener called after every state transition."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    async def spin(self) -> SpinAttempt:
        """
        Run a spin from IDLE to a terminal state.

        Returns:
            The terminal attempt (SUCCEEDED or FAILED with an ErrorKind)

        Raises:
            AlreadyInProgress: Another attempt is still running; no attempt is created
        """
        attempt = self._open(SpinAttempt(action=SpinAction.SPIN))
        return await self._drive(attempt, SpinState.PRECHECK)

    async def claim(self, token_symbol: str) -> SpinAttempt:
        """
        Run a claimRewards(token) attempt. Shares the exclusive slot with spins.

        Raises:
            AlreadyInProgress: Another attempt is still running
        """
        attempt = self._open(SpinAttempt(action=SpinAction.CLAIM, claim_token=token_symbol))
        return await self._drive(attempt, SpinState.PRECHECK)

    async def recheck(self, attempt: SpinAttempt) -> SpinAttempt:
        """
        Wait again for a transaction whose confirmation timed out or was detached.

        The original attempt stays terminal; a new linked attempt starts at
        PENDING_CONFIRMATION against the same tx hash and signer.

        Raises:
            ValueError: The attempt is not in a recheckable state
            AlreadyInProgress: Another attempt is still running
        """
        if attempt.error not in (ErrorKind.CONFIRMATION_TIMEOUT, ErrorKind.DETACHED) or not attempt.tx_hash:
            raise ValueError(f"{attempt} cannot be rechecked")

        resumed = self._open(self._resume(attempt))
        return await self._drive(resumed, SpinState.PENDING_CONFIRMATION)

    async def retry_reconciliation(self, attempt: SpinAttempt) -> SpinAttempt:
        """
        Re-read balances for a confirmed attempt whose reconciliation failed.

        Raises:
            ValueError: The attempt did not fail in reconciliation
            AlreadyInProgress: Another attempt is still running
        """
        if attempt.error is not ErrorKind.RECONCILIATION_FAILED or not attempt.tx_hash:
            raise ValueError(f"{attempt} did not fail reconciliation")

        resumed = self._open(self._resume(attempt))
        resumed.outcome = attempt.outcome
        return await self._drive(resumed, SpinState.RECONCILING)

    def cancel(self) -> bool:
        """
        Cancel the active attempt.

        Before signing the attempt fails with CANCELLED. Once the transaction is
        signed the orchestrator only stops waiting (DETACHED); the transaction
        itself is untouched and can be rechecked later.

        Returns:
            True if there was an active attempt to cancel
        """
        if self._active is None or self._cancel_event is None:
            return False
        logger.info(f"Cancel requested for {self._active}")
        self._cancel_event.set()
        return True

    def require_config(self) -> ValidatedConfig:
        """
        Return the validated config.

        Raises:
            ConfigError: A new error with the reason found at startup
        """
        if self.validated is None:
            # config_error is always set when validation failed
            raise ConfigError(self.config_error.reason, str(self.config_error))
        return self.validated

    def acknowledge(self, attempt_id: str) -> bool:
        """Drop a terminal attempt from history once the UI has shown it."""
        return self._history.pop(attempt_id, None) is not None

    def _resume(self, attempt: SpinAttempt) -> SpinAttempt:
        return SpinAttempt(
            action=attempt.action,
            tx_hash=attempt.tx_hash,
            owner=attempt.owner,
            claim_token=attempt.claim_token,
            resumed_from=attempt.id
        )

    def _open(self, attempt: SpinAttempt) -> SpinAttempt:
        if self._active is not None:
            logger.warning(f"Rejected {attempt.action.value} request: {self._active} still in progress")
            raise AlreadyInProgress(self._active.id)

        self._active = attempt
        self._cancel_event = asyncio.Event()
        logger.debug(f"Opened {attempt}")
        return attempt

    def _release(self, attempt: SpinAttempt) -> None:
        if self._active is attempt:
            self._active = None
            self._cancel_event = None

        if not attempt.terminal:
            logger.error(f"{attempt} released in non-terminal state")
            return

        self._history[attempt.id] = attempt
        while len(self._history) > self.timing.history_limit:
            self._history.popitem(last=False)

    async def _drive(self, attempt: SpinAttempt, start: SpinState) -> SpinAttempt:
        try:
            if start is SpinState.PRECHECK:
                self._transition(attempt, SpinState.PRECHECK)
                signer, token_address = self._precheck(attempt)

                self._transition(attempt, SpinState.SUBMITTING)
                attempt.owner = signer.address
                attempt.tx_hash = await self._until_cancelled(self._submit(attempt, signer, token_address))
                self._transition(attempt, SpinState.PENDING_CONFIRMATION)
            elif start is SpinState.PENDING_CONFIRMATION:
                self._transition(attempt, SpinState.PENDING_CONFIRMATION)

            if attempt.state is SpinState.PENDING_CONFIRMATION:
                await self._confirm(attempt)

            self._transition(attempt, SpinState.RECONCILING)
            await self._reconcile(attempt)

        except _Cancelled:
            if attempt.tx_hash is None:
                self._fail(attempt, ErrorKind.CANCELLED, "Cancelled before signing")
            else:
                self._fail(
                    attempt,
                    ErrorKind.DETACHED,
                    f"Stopped waiting for {attempt.tx_hash}; it may still be confirmed"
                )
        except SpinWheelError as e:
            kind = self._kind_for(attempt, e)
            if kind is ErrorKind.SUBMISSION_REJECTED:
                # The node refused the signed transaction, so the hash names nothing
                attempt.tx_hash = None
            self._fail(attempt, kind, str(e))
        finally:
            self._release(attempt)

        return attempt

    def _precheck(self, attempt: SpinAttempt) -> tuple[LocalAccount, str | None]:
        """Check preconditions without touching the network."""
        validated = self.require_config()

        session = self.wallet.current()
        match session.status(validated.chain_id):
            case WalletStatus.DISCONNECTED:
                raise WalletConnectionError(ErrorKind.NOT_CONNECTED, "Wallet not connected")
            case WalletStatus.WRONG_NETWORK:
                raise WalletConnectionError(
                    ErrorKind.WRONG_NETWORK,
                    f"Wallet is on chain {session.chain_id}, contract is on chain {validated.chain_id}"
                )

        token_address = None
        if attempt.action is SpinAction.CLAIM:
            token = validated.token_by_symbol(attempt.claim_token or "")
            if token is None:
                raise UnknownToken(f"Unknown reward token: {attempt.claim_token}")
            token_address = token.address

        return session.signer, token_address

    async def _submit(self, attempt: SpinAttempt, signer: LocalAccount, token_address: str | None) -> str:
        def on_signed(tx_hash: str) -> None:
            # Bound before the send so a failed or cancelled send stays recheckable
            attempt.tx_hash = tx_hash

        if attempt.action is SpinAction.CLAIM:
            return await self.client.submit_claim(signer, token_address, on_signed=on_signed)
        return await self.client.submit_spin(signer, on_signed=on_signed)

    async def _confirm(self, attempt: SpinAttempt) -> None:
        receipt = await self._until_cancelled(self.client.await_confirmation(
            attempt.tx_hash,
            self.timing.confirmations,
            self.timing.confirmation_timeout
        ))

        if attempt.action is SpinAction.SPIN and attempt.owner:
            attempt.outcome = self.client.decode_spin_result(receipt, attempt.owner)
            if attempt.outcome is not None:
                logger.info(
                    f"Spin landed on {attempt.outcome.segment!r} "
                    f"({'win' if attempt.outcome.is_win else 'no win'})"
                )

    async def _reconcile(self, attempt: SpinAttempt) -> None:
        snapshot = await self._until_cancelled(self.ledger.refresh(self.validated, attempt.owner))
        attempt.rewards_granted = tuple(
            RewardGrant(token_symbol=balance.token_symbol, amount=balance.amount)
            for balance in snapshot.balances
        )
        self._transition(attempt, SpinState.SUCCEEDED)

    async def _until_cancelled(self, awaitable: Awaitable[T]) -> T:
        """Await a step unless cancel() fires first."""
        event = self._cancel_event
        if event is None:
            return await awaitable
        if event.is_set():
            raise _Cancelled()

        step = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(event.wait())
        try:
            done, _ = await asyncio.wait({step, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            step.cancel()
            raise
        finally:
            waiter.cancel()

        if step in done:
            return step.result()

        step.cancel()
        raise _Cancelled()

    def _kind_for(self, attempt: SpinAttempt, error: SpinWheelError) -> ErrorKind:
        # Transient before signing, ambiguous once a signed transaction exists
        if error.kind is not None and error.kind is not ErrorKind.NETWORK_UNAVAILABLE:
            return error.kind
        if attempt.tx_hash is None:
            return ErrorKind.NETWORK_UNAVAILABLE
        return ErrorKind.CONFIRMATION_TIMEOUT

    def _fail(self, attempt: SpinAttempt, kind: ErrorKind, message: str) -> None:
        attempt.error = kind
        attempt.error_message = message
        self._transition(attempt, SpinState.FAILED)
        logger.warning(f"✗ {attempt}: {message} (suggested action: {kind.suggested_action.value})")

    def _transition(self, attempt: SpinAttempt, new_state: SpinState) -> None:
        if new_state not in ALLOWED_TRANSITIONS[attempt.state]:
            raise RuntimeError(f"Illegal transition {attempt.state.name} -> {new_state.name} for {attempt}")

        logger.info(f"attempt {attempt.id[:8]}: {attempt.state.name} -> {new_state.name}")
        attempt.state = new_state

        for listener in list(self._listeners):
            try:
                listener(attempt)
            except Exception as e:
                logger.error(f"Attempt listener failed: {e}", exc_info=True)
