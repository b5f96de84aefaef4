"""
Call builder: turns a quote and its approval statuses into a CallPlan.
"""

from typing import Dict, List, Optional

from ...services.evm import ERC20_APPROVE_SELECTOR, encode_address, encode_uint256
from ..swap.constants import MAX_UINT256, is_native
from ..swap.models import ApprovalStatus, Quote
from .models import AllowancePolicy, CallKind, CallPlan, PlannedCall


def encode_approve(spender_address: str, amount: int) -> str:
    """Calldata for ``approve(address spender, uint256 amount)``."""
    return ERC20_APPROVE_SELECTOR + encode_address(spender_address) + encode_uint256(amount)


class CallBuilder:
    """
    Builds the ordered calls for one execution attempt.

    - One ``approve`` per token that needs approval, in ``quote.in_tokens``
      order, deduplicated.
    - Then every ``quote.raw_transactions`` entry, unchanged and in quote
      order. Aggregator calldata is never modified.

    With ``AllowancePolicy.UNLIMITED`` (the default) approvals grant
    ``MAX_UINT256``. That saves an approve transaction on every later swap of
    the same token but leaves a standing unlimited allowance with the
    spender; a compromised spender could drain those balances.
    ``AllowancePolicy.EXACT`` approves only the amount this swap pulls.

    Pure with respect to chain state; nothing is submitted here.
    """

    def __init__(self, policy: AllowancePolicy = AllowancePolicy.UNLIMITED):
        self.policy = policy

    def approval_amount(self, status: ApprovalStatus) -> int:
        if self.policy == AllowancePolicy.EXACT:
            return status.required_amount
        return MAX_UINT256

    def build_approve(
        self,
        token_address: str,
        spender_address: str,
        amount: int,
        description: str = "",
    ) -> PlannedCall:
        return PlannedCall(
            to=token_address,
            data=encode_approve(spender_address, amount),
            value=0,
            kind=CallKind.APPROVE,
            token_address=token_address,
            description=description or f"Approve {spender_address[:10]}... to spend {token_address[:10]}...",
        )

    def build(
        self,
        quote: Quote,
        approval_statuses: Dict[str, ApprovalStatus],
        policy: Optional[AllowancePolicy] = None,
    ) -> CallPlan:
        """CallPlan for ``quote``; ``policy`` overrides the builder default for this plan."""
        if not quote.raw_transactions:
            raise ValueError("Quote has no transaction data")

        builder = self if policy is None or policy == self.policy else CallBuilder(policy)
        calls: List[PlannedCall] = []

        for token in quote.distinct_in_tokens():
            status = approval_statuses.get(token)
            if status is None:
                if is_native(token):
                    continue
                raise ValueError(f"No approval status for {token}")
            if not status.needs_approval:
                continue
            calls.append(
                builder.build_approve(
                    token_address=token,
                    spender_address=quote.spender_address,
                    amount=builder.approval_amount(status),
                )
            )

        total = len(quote.raw_transactions)
        for index, raw in enumerate(quote.raw_transactions):
            calls.append(
                PlannedCall(
                    to=raw.to,
                    data=raw.data,
                    value=raw.value,
                    kind=CallKind.SWAP,
                    description=f"Swap {index + 1}/{total} via {raw.to[:10]}...",
                )
            )

        return CallPlan(calls=tuple(calls), path_id=quote.path_id)
