"""
Call Execution Layer

Builds and executes the calls of a consolidation swap:
- CallBuilder: approve calls + aggregator swap calls as a CallPlan
- ExecutionStateMachine: atomic batch or sequential queue, one run() contract

Usage:
    from dustswap.core.execution import CallBuilder, ExecutionStateMachine

    plan = CallBuilder().build(quote, approval_statuses)
    machine = ExecutionStateMachine(wallet_client, wallet_context)
    report = await machine.run(plan, capabilities)
"""

from .models import (
    AllowancePolicy,
    CallKind,
    CallOutcome,
    CallPlan,
    ExecutionPhase,
    ExecutionReport,
    ExecutionState,
    PlannedCall,
    StateTransition,
    TERMINAL_PHASES,
)

from .call_builder import (
    CallBuilder,
    encode_approve,
)

from .state_machine import (
    ExecutionStateMachine,
)

__all__ = [
    # Models
    "AllowancePolicy",
    "CallKind",
    "CallOutcome",
    "CallPlan",
    "ExecutionPhase",
    "ExecutionReport",
    "ExecutionState",
    "PlannedCall",
    "StateTransition",
    "TERMINAL_PHASES",
    # Call Builder
    "CallBuilder",
    "encode_approve",
    # State Machine
    "ExecutionStateMachine",
]
