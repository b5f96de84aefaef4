"""
Execution State Machine

Drives one CallPlan to a terminal state through either an atomic batch or a
sequential queue, behind a single ``run()`` contract.

    IDLE -> PLANNING -> BATCH_SUBMITTED    -> SUCCEEDED | FAILED
                     -> SEQUENTIAL_RUNNING -> SUCCEEDED | FAILED
                        (cursor += 1 per confirmed call)

Each step awaits an explicit ``CallOutcome`` from the wallet client, so the
transition table is testable without a live wallet.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Callable, Coroutine, Dict, Optional, Set

from ..recovery.errors import InvalidTransitionError, SwapErrorKind, classify_failure
from ..wallet.models import WalletCapabilities, WalletContext
from .models import (
    CallOutcome,
    CallPlan,
    ExecutionPhase,
    ExecutionReport,
    ExecutionState,
    PlannedCall,
    StateTransition,
    TERMINAL_PHASES,
)

if TYPE_CHECKING:
    from ...providers.wallet import WalletClient


CallConfirmedHook = Callable[[PlannedCall, CallOutcome], None]


class ExecutionStateMachine:
    """
    Owns the mutable execution state of one swap attempt at a time.

    - Only one ``run()`` may be in flight; calling it again meanwhile raises
      ``InvalidTransitionError``.
    - A new ``run()`` from a terminal state starts from a fresh state; no
      cursor or hash from the previous attempt survives.
    - In sequential mode the cursor only moves forward, by exactly one per
      confirmed call, and the next call is submitted without caller action.
    """

    TRANSITIONS: Dict[ExecutionPhase, Set[ExecutionPhase]] = {
        ExecutionPhase.IDLE: {
            ExecutionPhase.PLANNING,
        },
        ExecutionPhase.PLANNING: {
            ExecutionPhase.BATCH_SUBMITTED,
            ExecutionPhase.SEQUENTIAL_RUNNING,
            ExecutionPhase.FAILED,      # Empty plan
        },
        ExecutionPhase.BATCH_SUBMITTED: {
            ExecutionPhase.SUCCEEDED,
            ExecutionPhase.FAILED,
        },
        ExecutionPhase.SEQUENTIAL_RUNNING: {
            ExecutionPhase.SEQUENTIAL_RUNNING,  # Next call
            ExecutionPhase.SUCCEEDED,           # Last call confirmed
            ExecutionPhase.FAILED,
        },
        ExecutionPhase.SUCCEEDED: {
            ExecutionPhase.IDLE,
        },
        ExecutionPhase.FAILED: {
            ExecutionPhase.IDLE,
        },
    }

    def __init__(
        self,
        wallet_client: "WalletClient",
        wallet: WalletContext,
        *,
        settle_delay_seconds: float = 0.5,
        on_call_confirmed: Optional[CallConfirmedHook] = None,
        sleep: Callable[[float], Coroutine[Any, Any, None]] = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ):
        self.wallet_client = wallet_client
        self.wallet = wallet
        self.settle_delay_seconds = settle_delay_seconds
        self.on_call_confirmed = on_call_confirmed
        self.logger = logger or logging.getLogger(__name__)
        self._sleep = sleep
        self._state = ExecutionState()
        self._in_flight = False

    # ------------------------------------------------------------------
    # Introspection
    # ------------------------------------------------------------------

    @property
    def phase(self) -> ExecutionPhase:
        return self._state.phase

    @property
    def cursor(self) -> Optional[int]:
        return self._state.cursor

    @property
    def state(self) -> ExecutionState:
        return self._state

    @property
    def is_terminal(self) -> bool:
        return self._state.phase in TERMINAL_PHASES

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    def can_transition_to(self, to_phase: ExecutionPhase) -> bool:
        return to_phase in self.TRANSITIONS.get(self.phase, set())

    def get_allowed_transitions(self) -> Set[ExecutionPhase]:
        return self.TRANSITIONS.get(self.phase, set())

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def _transition(
        self,
        to_phase: ExecutionPhase,
        *,
        cursor: Optional[int] = None,
        reason: Optional[str] = None,
    ) -> StateTransition:
        from_phase = self.phase
        if not self.can_transition_to(to_phase):
            raise InvalidTransitionError(
                from_state=from_phase,
                to_state=to_phase,
                message=f"Invalid transition from {from_phase.value} to {to_phase.value}. "
                        f"Allowed: {sorted(p.value for p in self.get_allowed_transitions())}",
            )

        if to_phase == ExecutionPhase.SEQUENTIAL_RUNNING:
            previous = self._state.cursor
            expected = 0 if from_phase != ExecutionPhase.SEQUENTIAL_RUNNING else (previous or 0) + 1
            if cursor != expected:
                raise InvalidTransitionError(
                    from_state=from_phase,
                    to_state=to_phase,
                    message=f"Cursor must move from {previous} to {expected}, got {cursor}",
                )
            self._state.cursor = cursor

        transition = StateTransition(
            from_phase=from_phase,
            to_phase=to_phase,
            cursor=self._state.cursor,
            reason=reason,
        )
        self._state.phase = to_phase
        self._state.history.append(transition)

        self.logger.info(
            f"Execution {from_phase.value} -> {to_phase.value}"
            f"{f' [cursor={self._state.cursor}]' if to_phase == ExecutionPhase.SEQUENTIAL_RUNNING else ''}"
            f"{f' ({reason})' if reason else ''}"
        )
        return transition

    def reset(self) -> None:
        """Back to IDLE with a fresh state. Not allowed while a run is in flight."""
        if self._in_flight:
            raise InvalidTransitionError(
                from_state=self.phase,
                to_state=ExecutionPhase.IDLE,
                message="Cannot reset while a run is in flight",
            )
        self._state = ExecutionState()

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def run(
        self,
        plan: CallPlan,
        capabilities: WalletCapabilities,
        *,
        on_call_confirmed: Optional[CallConfirmedHook] = None,
    ) -> ExecutionReport:
        """Execute ``plan`` to a terminal state and report it once.

        ``on_call_confirmed`` applies to this run only and takes precedence
        over the hook given at construction.
        """
        if self._in_flight or self.phase not in (ExecutionPhase.IDLE, *TERMINAL_PHASES):
            raise InvalidTransitionError(
                from_state=self.phase,
                to_state=ExecutionPhase.PLANNING,
                message=f"run() called while execution is {self.phase.value}",
            )

        self._in_flight = True
        try:
            if self.phase != ExecutionPhase.IDLE:
                self._reset_after_terminal()
            self._transition(ExecutionPhase.PLANNING, reason=f"plan {plan.path_id} with {len(plan)} calls")

            if len(plan) == 0:
                return self._fail(SwapErrorKind.EXECUTION_FAILED, "Call plan is empty", path=None)

            hook = on_call_confirmed or self.on_call_confirmed
            if capabilities.atomic_batch_supported and len(plan) > 1:
                return await self._run_batch(plan, hook)
            return await self._run_sequential(plan, hook)
        finally:
            self._in_flight = False

    def _reset_after_terminal(self) -> None:
        self._transition(ExecutionPhase.IDLE, reason="new attempt")
        self._state = ExecutionState()

    async def _run_batch(self, plan: CallPlan, hook: Optional[CallConfirmedHook]) -> ExecutionReport:
        self._transition(ExecutionPhase.BATCH_SUBMITTED, reason="atomic batch")
        outcome = await self._submit(lambda: self.wallet_client.submit_batch(
            plan.calls,
            self.wallet.address,
            self.wallet.chain_id,
        ))

        # Atomic: one status for the whole batch, no partial success
        if not outcome.success:
            return self._fail_from_outcome(outcome, path=ExecutionPhase.BATCH_SUBMITTED)

        if outcome.tx_hash:
            self._state.tx_hashes.append(outcome.tx_hash)
        for call in plan.calls:
            self._notify_confirmed(hook, call, outcome)
        return self._succeed(path=ExecutionPhase.BATCH_SUBMITTED)

    async def _run_sequential(self, plan: CallPlan, hook: Optional[CallConfirmedHook]) -> ExecutionReport:
        self._transition(ExecutionPhase.SEQUENTIAL_RUNNING, cursor=0, reason="sequential queue")
        last_index = len(plan) - 1

        while True:
            index = self._state.cursor
            call = plan[index]
            outcome = await self._submit(lambda: self.wallet_client.submit(
                call,
                self.wallet.address,
                self.wallet.chain_id,
            ))

            if not outcome.success:
                # Remaining queue is discarded; earlier confirmed calls stay valid
                return self._fail_from_outcome(outcome, path=ExecutionPhase.SEQUENTIAL_RUNNING)

            if outcome.tx_hash:
                self._state.tx_hashes.append(outcome.tx_hash)
            self._notify_confirmed(hook, call, outcome)

            if index == last_index:
                return self._succeed(path=ExecutionPhase.SEQUENTIAL_RUNNING)

            if self.settle_delay_seconds:
                await self._sleep(self.settle_delay_seconds)
            self._transition(
                ExecutionPhase.SEQUENTIAL_RUNNING,
                cursor=index + 1,
                reason=f"{call.kind.value} confirmed",
            )

    async def _submit(self, submit: Callable[[], Coroutine[Any, Any, CallOutcome]]) -> CallOutcome:
        try:
            return await submit()
        except Exception as e:
            self.logger.error(f"Wallet submission raised: {e}")
            return CallOutcome.failed(str(e))

    def _notify_confirmed(
        self,
        hook: Optional[CallConfirmedHook],
        call: PlannedCall,
        outcome: CallOutcome,
    ) -> None:
        if hook is None:
            return
        try:
            hook(call, outcome)
        except Exception as e:
            self.logger.error(f"Call confirmed hook error: {e}")

    # ------------------------------------------------------------------
    # Terminal states
    # ------------------------------------------------------------------

    def _succeed(self, path: ExecutionPhase) -> ExecutionReport:
        self._transition(ExecutionPhase.SUCCEEDED, reason=f"{len(self._state.tx_hashes)} tx confirmed")
        return ExecutionReport(
            succeeded=True,
            phase=ExecutionPhase.SUCCEEDED,
            tx_hash=self._state.final_tx_hash,
            tx_hashes=tuple(self._state.tx_hashes),
            path=path,
        )

    def _fail_from_outcome(self, outcome: CallOutcome, path: ExecutionPhase) -> ExecutionReport:
        kind = classify_failure(outcome.error_message, outcome.error_code, outcome.error_data)
        if outcome.tx_hash:
            self._state.tx_hashes.append(outcome.tx_hash)
        return self._fail(kind, outcome.error_message or "Call failed", path=path)

    def _fail(self, kind: SwapErrorKind, detail: str, path: Optional[ExecutionPhase]) -> ExecutionReport:
        self._state.failure_kind = kind
        self._state.failure_detail = detail
        self._transition(ExecutionPhase.FAILED, reason=f"{kind.value}: {detail}")
        return ExecutionReport(
            succeeded=False,
            phase=ExecutionPhase.FAILED,
            tx_hash=self._state.final_tx_hash,
            tx_hashes=tuple(self._state.tx_hashes),
            failure_kind=kind,
            failure_detail=detail,
            path=path,
        )
