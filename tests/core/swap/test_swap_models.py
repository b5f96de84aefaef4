"""
Tests for swap models
"""

from datetime import datetime, timedelta, timezone

from dustswap.core.recovery.errors import SwapErrorKind
from dustswap.core.swap.models import InputLeg, Quote, RawTransaction, SwapResult


USDC = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
TOKEN_A = "0x1111111111111111111111111111111111111111"


def make_quote(**overrides):
    fields = dict(
        path_id="batch-1-abc",
        chain_id=8453,
        taker="0xabcdefabcdefabcdefabcdefabcdefabcdefabcd",
        in_tokens=[TOKEN_A],
        in_amounts=[1_000],
        out_tokens=[USDC],
        out_amounts=[990],
        spender_address="0x0000000000001ff3684f28c67538d4d072c22734",
        gas_estimate=150_000,
        fee_amount=10,
        raw_transactions=[RawTransaction(to="0xsettler", data="0xabc", value=0)],
        total_buy_amount=990,
    )
    fields.update(overrides)
    return Quote(**fields)


class TestModels:

    def test_input_leg_normalizes_address(self):
        leg = InputLeg("  0xAbC0000000000000000000000000000000000001 ", 5)
        assert leg.token_address == "0xabc0000000000000000000000000000000000001"
        assert leg.is_native is False
        assert InputLeg("0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE", 1).is_native is True

    def test_raw_transaction_parses_hex_value(self):
        tx = RawTransaction.from_api({"to": "0x1", "data": "0x2", "value": "0x10"})
        assert tx.value == 16
        assert RawTransaction.from_api({"to": "0x1", "data": "0x2", "value": "25"}).value == 25
        assert tx.to_dict() == {"to": "0x1", "data": "0x2", "value": "16"}

    def test_quote_expiry(self):
        issued = datetime(2025, 1, 1, tzinfo=timezone.utc)
        quote = make_quote(issued_at=issued)

        assert quote.is_expired(60, now=issued + timedelta(seconds=30)) is False
        assert quote.is_expired(60, now=issued + timedelta(seconds=60)) is True

    def test_quote_wire_shape(self):
        payload = make_quote().to_dict()

        assert payload["pathId"] == "batch-1-abc"
        assert payload["inAmounts"] == ["1000"]
        assert payload["totalBuyAmount"] == "990"
        assert payload["totalFeeAmount"] == "10"
        assert payload["transactions"] == [{"to": "0xsettler", "data": "0xabc", "value": "0"}]

    def test_required_amount_sums_matching_legs(self):
        quote = make_quote(in_tokens=[TOKEN_A, TOKEN_A], in_amounts=[1, 2])
        assert quote.required_amount(TOKEN_A.upper().replace("0X", "0x")) == 3
        assert quote.distinct_in_tokens() == [TOKEN_A]


class TestSwapResult:

    def test_failure_reasons_are_distinct(self):
        rejected = SwapResult.failure(SwapErrorKind.USER_REJECTED)
        stale = SwapResult.failure(SwapErrorKind.STALE_QUOTE)
        failed = SwapResult.failure(SwapErrorKind.EXECUTION_FAILED)

        assert rejected.reason == "You cancelled the transaction."
        assert stale.reason == "Route expired, try again."
        assert failed.reason == "Something went wrong, check balance/gas."
        assert rejected.retryable and stale.retryable
        assert not failed.retryable

    def test_quote_failure_reason_follows_quote_reason(self):
        result = SwapResult.failure(SwapErrorKind.QUOTE_FAILED, "no route", quote_reason="NoLiquidity")

        assert "No route" in result.reason
        assert result.to_dict()["quoteReason"] == "NoLiquidity"
        assert result.to_dict()["ok"] is False

    def test_success_shape(self):
        result = SwapResult.success("0xhash", quote_path_id="batch-1", call_hashes=("0xa", "0xhash"))

        assert result.reason is None
        assert result.to_dict() == {
            "ok": True,
            "txHash": "0xhash",
            "pathId": "batch-1",
            "callHashes": ["0xa", "0xhash"],
            "warnings": [],
        }
