"""
Tests for the call builder

Approvals always precede swap calls, and aggregator calldata is untouched.
"""

import pytest

from dustswap.core.execution.call_builder import CallBuilder, encode_approve
from dustswap.core.execution.models import AllowancePolicy, CallKind
from dustswap.core.swap.constants import MAX_UINT256, NATIVE_TOKEN_ADDRESS
from dustswap.core.swap.models import ApprovalStatus, Quote, RawTransaction


USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
TOKEN_A = "0x1111111111111111111111111111111111111111"
TOKEN_B = "0x2222222222222222222222222222222222222222"
TOKEN_C = "0x3333333333333333333333333333333333333333"
SPENDER = "0x0000000000001ff3684f28c67538d4d072c22734"
SETTLER = "0x5c9bdc801a600c006c388fc032dcb27355154cc9"


def make_quote(tokens, amounts):
    return Quote(
        path_id="batch-1-abc",
        chain_id=8453,
        taker="0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
        in_tokens=list(tokens),
        in_amounts=list(amounts),
        out_tokens=[USDC] * len(tokens),
        out_amounts=[1] * len(tokens),
        spender_address=SPENDER,
        gas_estimate=0,
        fee_amount=0,
        raw_transactions=[
            RawTransaction(to=SETTLER, data=f"0xcafe{i:04x}", value=i) for i in range(len(tokens))
        ],
    )


def status(token, current, required, is_native=False):
    return ApprovalStatus(
        token_address=token,
        current_allowance=current,
        required_amount=required,
        is_native=is_native,
    )


# =============================================================================
# Encoding Tests
# =============================================================================

class TestEncodeApprove:

    def test_unlimited_approve_calldata(self):
        data = encode_approve(SPENDER, MAX_UINT256)

        assert data.startswith("0x095ea7b3")
        assert data[10:74] == "0" * 24 + SPENDER[2:]
        assert data[74:] == "f" * 64

    def test_exact_approve_calldata(self):
        assert encode_approve(SPENDER, 1_000)[74:] == format(1_000, "064x")


# =============================================================================
# Plan Ordering Tests
# =============================================================================

class TestCallBuilder:

    def test_approvals_come_first(self):
        """M tokens needing approval produce M leading approve calls."""
        quote = make_quote([TOKEN_A, TOKEN_B, TOKEN_C], [10, 20, 30])
        statuses = {
            TOKEN_A: status(TOKEN_A, 0, 10),
            TOKEN_B: status(TOKEN_B, 100, 20),   # Already approved
            TOKEN_C: status(TOKEN_C, 5, 30),
        }

        plan = CallBuilder().build(quote, statuses)

        assert [c.kind for c in plan] == [
            CallKind.APPROVE,
            CallKind.APPROVE,
            CallKind.SWAP,
            CallKind.SWAP,
            CallKind.SWAP,
        ]
        assert [c.to for c in plan.approvals] == [TOKEN_A, TOKEN_C]
        assert [c.token_address for c in plan.approvals] == [TOKEN_A, TOKEN_C]
        assert plan.path_id == "batch-1-abc"

    def test_swap_calls_are_verbatim(self):
        quote = make_quote([TOKEN_A, TOKEN_B], [10, 20])
        statuses = {TOKEN_A: status(TOKEN_A, 0, 10), TOKEN_B: status(TOKEN_B, 0, 20)}

        plan = CallBuilder().build(quote, statuses)

        assert [(c.to, c.data, c.value) for c in plan.swaps] == [
            (tx.to, tx.data, tx.value) for tx in quote.raw_transactions
        ]

    def test_no_approvals_needed(self):
        quote = make_quote([TOKEN_A], [10])
        plan = CallBuilder().build(quote, {TOKEN_A: status(TOKEN_A, MAX_UINT256, 10)})

        assert len(plan) == 1
        assert plan[0].kind == CallKind.SWAP

    def test_native_token_never_approved(self):
        quote = make_quote([NATIVE_TOKEN_ADDRESS, TOKEN_A], [10**18, 10])

        plan = CallBuilder().build(quote, {TOKEN_A: status(TOKEN_A, 0, 10)})

        assert [c.to for c in plan.approvals] == [TOKEN_A]

    def test_missing_status_is_an_error(self):
        quote = make_quote([TOKEN_A], [10])

        with pytest.raises(ValueError):
            CallBuilder().build(quote, {})

    def test_quote_without_transactions_is_an_error(self):
        quote = make_quote([TOKEN_A], [10])
        quote.raw_transactions = []

        with pytest.raises(ValueError):
            CallBuilder().build(quote, {TOKEN_A: status(TOKEN_A, 0, 10)})


# =============================================================================
# Allowance Policy Tests
# =============================================================================

class TestAllowancePolicy:

    def test_unlimited_by_default(self):
        quote = make_quote([TOKEN_A], [10])
        plan = CallBuilder().build(quote, {TOKEN_A: status(TOKEN_A, 0, 10)})

        assert plan[0].data == encode_approve(SPENDER, MAX_UINT256)

    def test_exact_policy_approves_required_amount(self):
        quote = make_quote([TOKEN_A], [10])
        plan = CallBuilder(AllowancePolicy.EXACT).build(quote, {TOKEN_A: status(TOKEN_A, 3, 10)})

        assert plan[0].data == encode_approve(SPENDER, 10)

    def test_policy_override_per_plan(self):
        quote = make_quote([TOKEN_A], [10])
        builder = CallBuilder(AllowancePolicy.UNLIMITED)

        plan = builder.build(quote, {TOKEN_A: status(TOKEN_A, 0, 10)}, policy=AllowancePolicy.EXACT)

        assert plan[0].data == encode_approve(SPENDER, 10)
        assert builder.policy == AllowancePolicy.UNLIMITED
