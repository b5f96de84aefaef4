"""
Error Classification

Defines the failure taxonomy of a consolidation swap and the single place
where wallet/chain failures are classified into it.

Kinds are split into retryable (the caller may re-run the swap, which always
fetches a fresh quote) and terminal (caller bug, provider down, or a problem
the user has to fix before trying again).
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple


class SwapErrorKind(str, Enum):
    """Failure kinds surfaced to callers of the orchestrator."""

    INVALID_INPUT = "invalid_input"                  # Caller bug
    NO_LIQUIDITY = "no_liquidity"                    # Aggregator found no route
    PROVIDER_UNAVAILABLE = "provider_unavailable"    # Aggregator down or hard 4xx
    QUOTE_FAILED = "quote_failed"                    # Umbrella kind for quote errors
    APPROVAL_CHECK_FAILED = "approval_check_failed"  # Allowance read failed
    CAPABILITY_UNKNOWN = "capability_unknown"        # Non-fatal, defaults conservatively
    STALE_QUOTE = "stale_quote"                      # Route no longer valid on-chain
    USER_REJECTED = "user_rejected"                  # Cancelled in the wallet
    EXECUTION_FAILED = "execution_failed"            # Generic revert/gas/balance issue


class QuoteErrorReason(str, Enum):
    NO_LIQUIDITY = "NoLiquidity"
    INVALID_INPUT = "InvalidInput"
    PROVIDER_UNAVAILABLE = "ProviderUnavailable"


RETRYABLE_KINDS = frozenset({SwapErrorKind.STALE_QUOTE, SwapErrorKind.USER_REJECTED})

USER_MESSAGES: Dict[SwapErrorKind, str] = {
    SwapErrorKind.INVALID_INPUT: "This swap request is invalid. Check the selected tokens.",
    SwapErrorKind.NO_LIQUIDITY: "No route is available for one of the selected tokens.",
    SwapErrorKind.PROVIDER_UNAVAILABLE: "The swap provider is unavailable right now. Try again later.",
    SwapErrorKind.QUOTE_FAILED: "Could not get a quote for this swap.",
    SwapErrorKind.APPROVAL_CHECK_FAILED: "Could not verify token approvals. Try again.",
    SwapErrorKind.CAPABILITY_UNKNOWN: "Wallet capabilities are unknown; calls will be sent one by one.",
    SwapErrorKind.STALE_QUOTE: "Route expired, try again.",
    SwapErrorKind.USER_REJECTED: "You cancelled the transaction.",
    SwapErrorKind.EXECUTION_FAILED: "Something went wrong, check balance/gas.",
}


def user_message(kind: SwapErrorKind) -> str:
    """Human-readable reason for a terminal failure kind."""
    return USER_MESSAGES.get(kind, USER_MESSAGES[SwapErrorKind.EXECUTION_FAILED])


@dataclass
class ErrorContext:
    """Additional context about an error."""

    kind: SwapErrorKind = SwapErrorKind.EXECUTION_FAILED
    retryable: bool = False
    provider: Optional[str] = None
    chain_id: Optional[int] = None
    token_address: Optional[str] = None
    status_code: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class SwapError(Exception):
    """Base class for orchestrator errors."""

    kind: SwapErrorKind = SwapErrorKind.EXECUTION_FAILED

    def __init__(
        self,
        message: str,
        kind: Optional[SwapErrorKind] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        if kind is not None:
            self.kind = kind
        self.context = context or ErrorContext(kind=self.kind, retryable=self.kind in RETRYABLE_KINDS)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS


class QuoteError(SwapError):
    """Combined quote could not be produced. No partial quotes are ever returned."""

    KIND_BY_REASON = {
        QuoteErrorReason.NO_LIQUIDITY: SwapErrorKind.NO_LIQUIDITY,
        QuoteErrorReason.INVALID_INPUT: SwapErrorKind.INVALID_INPUT,
        QuoteErrorReason.PROVIDER_UNAVAILABLE: SwapErrorKind.PROVIDER_UNAVAILABLE,
    }

    def __init__(
        self,
        reason: QuoteErrorReason,
        message: str,
        *,
        token_address: Optional[str] = None,
        status_code: Optional[int] = None,
        attempts: int = 0,
    ):
        kind = self.KIND_BY_REASON[reason]
        super().__init__(
            message,
            kind=kind,
            context=ErrorContext(
                kind=kind,
                retryable=False,
                provider="0x",
                token_address=token_address,
                status_code=status_code,
                details={"attempts": attempts} if attempts else {},
            ),
        )
        self.reason = reason


class UpstreamRetryableError(SwapError):
    """Transient aggregator failure (429, 5xx, transport error). Retried per leg."""

    kind = SwapErrorKind.PROVIDER_UNAVAILABLE

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            message,
            context=ErrorContext(
                kind=self.kind,
                retryable=True,
                provider="0x",
                status_code=status_code,
            ),
        )
        self.status_code = status_code


class ChainReadError(SwapError):
    """A read-only JSON-RPC call failed."""

    kind = SwapErrorKind.APPROVAL_CHECK_FAILED

    def __init__(self, message: str, method: Optional[str] = None, rpc_error: Optional[Dict[str, Any]] = None):
        super().__init__(
            message,
            context=ErrorContext(
                kind=self.kind,
                details={"method": method, "rpc_error": rpc_error},
            ),
        )
        self.method = method
        self.rpc_error = rpc_error


class ApprovalCheckFailed(SwapError):
    """At least one allowance read failed; approval state must be treated as unknown."""

    kind = SwapErrorKind.APPROVAL_CHECK_FAILED

    def __init__(self, message: str, token_address: Optional[str] = None):
        super().__init__(
            message,
            context=ErrorContext(kind=self.kind, token_address=token_address),
        )
        self.token_address = token_address


class InvalidTransitionError(Exception):
    """Raised on an execution state transition the table does not allow.

    This is a programming error (e.g. ``run()`` while not idle), not a swap
    failure, so it does not derive from ``SwapError``.
    """

    def __init__(self, from_state: Any, to_state: Any, message: Optional[str] = None):
        super().__init__(message or f"Invalid transition from {from_state} to {to_state}")
        self.from_state = from_state
        self.to_state = to_state


# ---------------------------------------------------------------------------
# Failure classification
# ---------------------------------------------------------------------------

# EIP-1193 "User Rejected Request"
USER_REJECTED_CODES: Tuple[int, ...] = (4001,)

USER_REJECTED_PATTERNS: Tuple[str, ...] = (
    "user rejected",
    "user denied",
    "user cancelled",
    "user canceled",
    "rejected by user",
)

# Structured revert selectors, checked before any text matching.
#   0x97a6f3b9  TooMuchSlippage(address,uint256,uint256)  (0x Settler)
#   0x963b34a5  SignatureExpired(uint256)                 (Permit2)
#   0xcd21db4f  DeadlinePassed(uint256)
STALE_QUOTE_SELECTORS: Tuple[str, ...] = (
    "0x97a6f3b9",
    "0x963b34a5",
    "0xcd21db4f",
)

# Last-resort revert text matching. Lowercase substrings.
STALE_QUOTE_PATTERNS: Tuple[str, ...] = (
    "toomuchslippage",
    "too much slippage",
    "too little received",
    "slippage limit exceeded",
    "insufficient output amount",
    "insufficient_output_amount",
    "transaction too old",
    "deadline passed",
    "deadline exceeded",
    "quote expired",
    "expired quote",
    "signatureexpired",
    "price changed",
)


def _revert_selector(error_data: Any) -> Optional[str]:
    if isinstance(error_data, dict):
        error_data = error_data.get("data")
    if not isinstance(error_data, str) or not error_data.startswith("0x") or len(error_data) < 10:
        return None
    return error_data[:10].lower()


def classify_failure(
    message: Optional[str],
    code: Optional[int] = None,
    data: Any = None,
) -> SwapErrorKind:
    """Map a failed call to USER_REJECTED, STALE_QUOTE or EXECUTION_FAILED.

    Order: rejection code/text, structured revert selector, revert text.
    Anything unmatched is a generic execution failure.
    """
    text = (message or "").lower()

    if code in USER_REJECTED_CODES or any(p in text for p in USER_REJECTED_PATTERNS):
        return SwapErrorKind.USER_REJECTED

    selector = _revert_selector(data)
    if selector and selector in STALE_QUOTE_SELECTORS:
        return SwapErrorKind.STALE_QUOTE

    if any(p in text for p in STALE_QUOTE_PATTERNS):
        return SwapErrorKind.STALE_QUOTE

    return SwapErrorKind.EXECUTION_FAILED
