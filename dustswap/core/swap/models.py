"""Typed models used by the swap subsystem."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from ..recovery.errors import (
    RETRYABLE_KINDS,
    QuoteError,
    QuoteErrorReason,
    SwapErrorKind,
    user_message,
)
from .constants import is_native, normalize_address


@dataclass
class InputLeg:
    """One (token, amount) input line of a multi-token swap."""

    token_address: str
    amount: int                                 # In smallest units
    source_symbol: str = ""

    def __post_init__(self) -> None:
        self.token_address = normalize_address(self.token_address)

    @property
    def is_native(self) -> bool:
        return is_native(self.token_address)


@dataclass(frozen=True)
class RawTransaction:
    """Aggregator-built transaction. Never mutated after parsing."""

    to: str
    data: str
    value: int = 0

    @classmethod
    def from_api(cls, payload: Dict[str, Any]) -> "RawTransaction":
        value = payload.get("value", 0)
        if isinstance(value, str):
            value = int(value, 16) if value.startswith("0x") else int(value or "0")
        return cls(
            to=str(payload.get("to", "")),
            data=str(payload.get("data", "0x")),
            value=int(value),
        )

    def to_dict(self) -> Dict[str, Any]:
        return {"to": self.to, "data": self.data, "value": str(self.value)}


@dataclass
class Quote:
    """Combined quote converting every input leg into one output token.

    ``path_id`` is a client-local aggregate id; only ``raw_transactions`` are
    valid against the upstream provider.
    """

    path_id: str
    chain_id: int
    taker: str
    in_tokens: List[str]
    in_amounts: List[int]
    out_tokens: List[str]
    out_amounts: List[int]
    spender_address: str
    gas_estimate: int
    fee_amount: int
    raw_transactions: List[RawTransaction]
    total_buy_amount: int = 0
    min_buy_amount: int = 0
    slippage_bps: int = 50
    retry_count: int = 0
    issued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    sources: List[str] = field(default_factory=list)
    per_leg: List[Dict[str, Any]] = field(default_factory=list, repr=False)

    @property
    def allowance_target(self) -> str:
        return self.spender_address

    @property
    def output_token(self) -> str:
        return self.out_tokens[0] if self.out_tokens else ""

    def required_amount(self, token_address: str) -> int:
        """Exact amount of ``token_address`` the swap calls will pull."""
        token = normalize_address(token_address)
        return sum(amount for t, amount in zip(self.in_tokens, self.in_amounts) if t == token)

    def distinct_in_tokens(self) -> List[str]:
        """Input tokens in quote order, deduplicated."""
        seen: List[str] = []
        for token in self.in_tokens:
            if token not in seen:
                seen.append(token)
        return seen

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.issued_at).total_seconds()

    def is_expired(self, ttl_seconds: float, now: Optional[datetime] = None) -> bool:
        return self.age_seconds(now) >= ttl_seconds

    def to_dict(self) -> Dict[str, Any]:
        """Wire shape of the combined quote (camelCase, integer amounts as strings)."""
        return {
            "pathId": self.path_id,
            "chainId": self.chain_id,
            "inTokens": list(self.in_tokens),
            "outTokens": list(self.out_tokens),
            "inAmounts": [str(a) for a in self.in_amounts],
            "outAmounts": [str(a) for a in self.out_amounts],
            "gasEstimate": self.gas_estimate,
            "totalBuyAmount": str(self.total_buy_amount),
            "minBuyAmount": str(self.min_buy_amount),
            "totalFeeAmount": str(self.fee_amount),
            "allowanceTarget": self.spender_address,
            "transactions": [tx.to_dict() for tx in self.raw_transactions],
            "sources": list(self.sources),
            "retryCount": self.retry_count,
            "issuedAt": self.issued_at.isoformat(),
        }


@dataclass
class ApprovalStatus:
    """Allowance state of one input token for the quote's spender."""

    token_address: str
    current_allowance: int
    required_amount: int
    is_native: bool = False

    @property
    def needs_approval(self) -> bool:
        if self.is_native:
            return False
        return self.current_allowance < self.required_amount

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenAddress": self.token_address,
            "currentAllowance": str(self.current_allowance),
            "requiredAmount": str(self.required_amount),
            "needsApproval": self.needs_approval,
        }


@dataclass
class SwapResult:
    """Terminal result of one ``run_swap`` call."""

    ok: bool
    tx_hash: Optional[str] = None
    kind: Optional[SwapErrorKind] = None
    detail: Optional[str] = None
    quote_path_id: Optional[str] = None
    quote_reason: Optional[str] = None          # QuoteErrorReason value for quote failures
    call_hashes: Tuple[str, ...] = ()
    warnings: List[str] = field(default_factory=list)

    @classmethod
    def success(cls, tx_hash: Optional[str], **kwargs: Any) -> "SwapResult":
        return cls(ok=True, tx_hash=tx_hash, **kwargs)

    @classmethod
    def failure(cls, kind: SwapErrorKind, detail: Optional[str] = None, **kwargs: Any) -> "SwapResult":
        return cls(ok=False, kind=kind, detail=detail, **kwargs)

    @property
    def retryable(self) -> bool:
        return self.kind in RETRYABLE_KINDS

    @property
    def reason(self) -> Optional[str]:
        """Human-readable failure reason for the user."""
        if self.kind is None:
            return None
        if self.kind == SwapErrorKind.QUOTE_FAILED and self.quote_reason:
            return user_message(QuoteError.KIND_BY_REASON[QuoteErrorReason(self.quote_reason)])
        return user_message(self.kind)

    def to_dict(self) -> Dict[str, Any]:
        if self.ok:
            return {
                "ok": True,
                "txHash": self.tx_hash,
                "pathId": self.quote_path_id,
                "callHashes": list(self.call_hashes),
                "warnings": list(self.warnings),
            }
        return {
            "ok": False,
            "kind": self.kind.value if self.kind else None,
            "reason": self.reason,
            "detail": self.detail,
            "quoteReason": self.quote_reason,
            "retryable": self.retryable,
            "pathId": self.quote_path_id,
            "warnings": list(self.warnings),
        }
