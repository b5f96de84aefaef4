"""
Execution models: the call plan, per-call outcomes, and the state of one
swap attempt.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from ..recovery.errors import SwapErrorKind


class CallKind(str, Enum):
    """Types of calls in a plan."""
    APPROVE = "approve"
    SWAP = "swap"


class AllowancePolicy(str, Enum):
    """How much allowance an approve call grants.

    UNLIMITED avoids repeat approvals on later swaps at the cost of a
    standing max allowance to the spender; if the spender is ever
    compromised every approved token balance is exposed. EXACT grants only
    what this swap pulls and needs a new approval next time.
    """
    UNLIMITED = "unlimited"
    EXACT = "exact"


class ExecutionPhase(str, Enum):
    """Lifecycle of one swap attempt."""
    IDLE = "idle"
    PLANNING = "planning"
    BATCH_SUBMITTED = "batch_submitted"
    SEQUENTIAL_RUNNING = "sequential_running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({ExecutionPhase.SUCCEEDED, ExecutionPhase.FAILED})


@dataclass(frozen=True)
class PlannedCall:
    """One on-chain call: ``{to, data, value}`` plus what it is for."""
    to: str
    data: str
    value: int = 0
    kind: CallKind = CallKind.SWAP
    token_address: Optional[str] = None     # Token being approved (approve calls)
    description: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Wallet call shape (EIP-5792 / eth_sendTransaction)."""
        return {
            "to": self.to,
            "data": self.data,
            "value": hex(self.value),
        }


@dataclass(frozen=True)
class CallPlan:
    """Ordered calls: approvals first, then the swap call(s) verbatim."""
    calls: Tuple[PlannedCall, ...]
    path_id: Optional[str] = None

    def __len__(self) -> int:
        return len(self.calls)

    def __iter__(self):
        return iter(self.calls)

    def __getitem__(self, index: int) -> PlannedCall:
        return self.calls[index]

    @property
    def approvals(self) -> Tuple[PlannedCall, ...]:
        return tuple(c for c in self.calls if c.kind == CallKind.APPROVE)

    @property
    def swaps(self) -> Tuple[PlannedCall, ...]:
        return tuple(c for c in self.calls if c.kind == CallKind.SWAP)

    def to_list(self) -> List[Dict[str, Any]]:
        return [
            {**call.to_dict(), "kind": call.kind.value, "description": call.description}
            for call in self.calls
        ]


@dataclass
class CallOutcome:
    """Result of submitting one call or one atomic batch."""
    success: bool
    tx_hash: Optional[str] = None
    batch_id: Optional[str] = None
    receipts: List[Dict[str, Any]] = field(default_factory=list)

    # Error info
    error_message: Optional[str] = None
    error_code: Optional[int] = None
    error_data: Any = None

    @classmethod
    def confirmed(cls, tx_hash: Optional[str] = None, **kwargs: Any) -> "CallOutcome":
        return cls(success=True, tx_hash=tx_hash, **kwargs)

    @classmethod
    def failed(
        cls,
        message: str,
        code: Optional[int] = None,
        data: Any = None,
        **kwargs: Any,
    ) -> "CallOutcome":
        return cls(success=False, error_message=message, error_code=code, error_data=data, **kwargs)


@dataclass
class StateTransition:
    """Record of a phase change."""
    from_phase: ExecutionPhase
    to_phase: ExecutionPhase
    cursor: Optional[int] = None
    reason: Optional[str] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "from": self.from_phase.value,
            "to": self.to_phase.value,
            "cursor": self.cursor,
            "reason": self.reason,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass
class ExecutionState:
    """Mutable state of one attempt. Owned by the state machine."""
    phase: ExecutionPhase = ExecutionPhase.IDLE
    cursor: Optional[int] = None            # Only set while SEQUENTIAL_RUNNING
    tx_hashes: List[str] = field(default_factory=list)
    failure_kind: Optional[SwapErrorKind] = None
    failure_detail: Optional[str] = None
    history: List[StateTransition] = field(default_factory=list)

    @property
    def is_terminal(self) -> bool:
        return self.phase in TERMINAL_PHASES

    @property
    def final_tx_hash(self) -> Optional[str]:
        return self.tx_hashes[-1] if self.tx_hashes else None


@dataclass
class ExecutionReport:
    """Terminal outcome handed back to the orchestrator."""
    succeeded: bool
    phase: ExecutionPhase
    tx_hash: Optional[str] = None
    tx_hashes: Tuple[str, ...] = ()
    failure_kind: Optional[SwapErrorKind] = None
    failure_detail: Optional[str] = None
    path: Optional[ExecutionPhase] = None   # BATCH_SUBMITTED or SEQUENTIAL_RUNNING
