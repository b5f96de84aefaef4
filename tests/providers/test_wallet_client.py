"""
Tests for the JSON-RPC wallet client (EIP-1193 / EIP-5792)
"""

import json

import httpx
import pytest
from unittest.mock import AsyncMock

from dustswap.core.execution.models import CallKind, PlannedCall
from dustswap.core.recovery.errors import ChainReadError, SwapErrorKind, classify_failure
from dustswap.providers.wallet import RpcWalletClient, _batch_outcome


WALLET_URL = "https://wallet.test"
SENDER = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
APPROVE = PlannedCall(to="0x1111111111111111111111111111111111111111", data="0x095ea7b3", kind=CallKind.APPROVE)
SWAP = PlannedCall(to="0x5c9bdc801a600c006c388fc032dcb27355154cc9", data="0xcafe", value=5)
SLIPPAGE_REVERT = {
    "code": 3,
    "message": "execution reverted",
    "data": "0x97a6f3b9" + "00" * 96,
}


def make_client(handler, receipt=None, replay_error=None):
    chain_reader = AsyncMock()
    chain_reader.wait_for_receipt = AsyncMock(return_value=receipt)
    chain_reader.replay_call = AsyncMock(return_value=replay_error)
    client = RpcWalletClient(
        WALLET_URL,
        chain_reader=chain_reader,
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
        status_poll_interval=0.001,
        status_timeout=5,
    )
    return client, chain_reader


def respond(request, result=None, error=None):
    body = json.loads(request.content)
    payload = {"jsonrpc": "2.0", "id": body["id"]}
    if error is not None:
        payload["error"] = error
    else:
        payload["result"] = result
    return httpx.Response(200, json=payload)


# =============================================================================
# Capability Tests
# =============================================================================

class TestCapabilities:

    @pytest.mark.asyncio
    async def test_get_capabilities_scoped_to_chain(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return respond(request, {"0x2105": {"atomic": {"status": "supported"}}})

        client, _ = make_client(handler)
        result = await client.get_capabilities(SENDER, 8453)

        assert result == {"0x2105": {"atomic": {"status": "supported"}}}
        assert seen[0]["method"] == "wallet_getCapabilities"
        assert seen[0]["params"] == [SENDER, ["0x2105"]]


# =============================================================================
# Single Call Tests
# =============================================================================

class TestSubmit:

    @pytest.mark.asyncio
    async def test_confirmed_transaction(self):
        seen = []

        def handler(request):
            seen.append(json.loads(request.content))
            return respond(request, "0xhash")

        client, chain_reader = make_client(handler, receipt={"status": "0x1"})
        outcome = await client.submit(SWAP, SENDER, 8453)

        assert outcome.success is True
        assert outcome.tx_hash == "0xhash"
        tx = seen[0]["params"][0]
        assert seen[0]["method"] == "eth_sendTransaction"
        assert tx["from"] == SENDER
        assert tx["value"] == "0x5"
        chain_reader.wait_for_receipt.assert_awaited_once_with("0xhash")

    @pytest.mark.asyncio
    async def test_reverted_transaction(self):
        client, _ = make_client(lambda request: respond(request, "0xhash"), receipt={"status": "0x0"})

        outcome = await client.submit(SWAP, SENDER, 8453)

        assert outcome.success is False
        assert outcome.tx_hash == "0xhash"

    @pytest.mark.asyncio
    async def test_reverted_transaction_carries_replayed_revert_data(self):
        receipt = {"status": "0x0", "blockNumber": "0x10"}
        client, chain_reader = make_client(
            lambda request: respond(request, "0xhash"),
            receipt=receipt,
            replay_error=SLIPPAGE_REVERT,
        )

        outcome = await client.submit(SWAP, SENDER, 8453)

        assert outcome.success is False
        assert outcome.error_data == SLIPPAGE_REVERT["data"]
        assert outcome.error_message == "Transaction reverted: execution reverted"
        assert outcome.error_code is None
        kind = classify_failure(outcome.error_message, outcome.error_code, outcome.error_data)
        assert kind == SwapErrorKind.STALE_QUOTE
        tx, block = chain_reader.replay_call.await_args.args
        assert block == "0x10"
        assert tx == {"from": SENDER, "to": SWAP.to, "data": SWAP.data, "value": "0x5"}

    @pytest.mark.asyncio
    async def test_failed_replay_keeps_plain_revert(self):
        client, chain_reader = make_client(
            lambda request: respond(request, "0xhash"),
            receipt={"status": "0x0", "blockNumber": "0x10"},
        )
        chain_reader.replay_call = AsyncMock(side_effect=ChainReadError("RPC eth_call failed", method="eth_call"))

        outcome = await client.submit(SWAP, SENDER, 8453)

        assert outcome.success is False
        assert outcome.error_message == "Transaction reverted"
        assert outcome.error_data is None

    @pytest.mark.asyncio
    async def test_user_rejection_keeps_code(self):
        def handler(request):
            return respond(request, error={"code": 4001, "message": "User rejected the request."})

        client, chain_reader = make_client(handler)
        outcome = await client.submit(APPROVE, SENDER, 8453)

        assert outcome.success is False
        assert outcome.error_code == 4001
        chain_reader.wait_for_receipt.assert_not_awaited()


# =============================================================================
# Batch Tests
# =============================================================================

class TestSubmitBatch:

    @pytest.mark.asyncio
    async def test_batch_polls_until_confirmed(self):
        seen = []
        statuses = [
            {"status": 100},
            {"status": 200, "receipts": [{"status": "0x1", "transactionHash": "0xbatchtx"}]},
        ]

        def handler(request):
            body = json.loads(request.content)
            seen.append(body)
            if body["method"] == "wallet_sendCalls":
                return respond(request, {"id": "batch-1"})
            return respond(request, statuses.pop(0))

        client, _ = make_client(handler)
        outcome = await client.submit_batch([APPROVE, SWAP], SENDER, 8453)

        assert outcome.success is True
        assert outcome.tx_hash == "0xbatchtx"
        assert outcome.batch_id == "batch-1"

        request = seen[0]["params"][0]
        assert request["version"] == "2.0.0"
        assert request["atomicRequired"] is True
        assert request["chainId"] == "0x2105"
        assert [c["to"] for c in request["calls"]] == [APPROVE.to, SWAP.to]
        assert [b["method"] for b in seen[1:]] == ["wallet_getCallsStatus", "wallet_getCallsStatus"]

    @pytest.mark.asyncio
    async def test_batch_rejected(self):
        def handler(request):
            return respond(request, error={"code": 4001, "message": "User rejected"})

        client, _ = make_client(handler)
        outcome = await client.submit_batch([APPROVE, SWAP], SENDER, 8453)

        assert outcome.success is False
        assert outcome.error_code == 4001

    @pytest.mark.asyncio
    async def test_reverted_batch_replays_swap_calls(self):
        statuses = [{"status": 500, "receipts": [{"status": "0x0", "transactionHash": "0xbatchtx", "blockNumber": "0x20"}]}]

        def handler(request):
            body = json.loads(request.content)
            if body["method"] == "wallet_sendCalls":
                return respond(request, {"id": "batch-1"})
            return respond(request, statuses.pop(0))

        client, chain_reader = make_client(handler, replay_error=SLIPPAGE_REVERT)
        outcome = await client.submit_batch([APPROVE, SWAP], SENDER, 8453)

        assert outcome.success is False
        assert outcome.error_code is None
        assert outcome.tx_hash == "0xbatchtx"
        assert classify_failure(outcome.error_message, outcome.error_code, outcome.error_data) == SwapErrorKind.STALE_QUOTE
        chain_reader.replay_call.assert_awaited_once()
        tx, block = chain_reader.replay_call.await_args.args
        assert tx["to"] == SWAP.to
        assert block == "0x20"

    @pytest.mark.asyncio
    async def test_offchain_failure_is_not_replayed(self):
        def handler(request):
            body = json.loads(request.content)
            if body["method"] == "wallet_sendCalls":
                return respond(request, {"id": "batch-1"})
            return respond(request, {"status": 400})

        client, chain_reader = make_client(handler)
        outcome = await client.submit_batch([APPROVE, SWAP], SENDER, 8453)

        assert outcome.error_message == "Batch failed before inclusion"
        chain_reader.replay_call.assert_not_awaited()

    def test_status_codes(self):
        assert _batch_outcome("b", {"status": 100}) is None
        reverted = _batch_outcome("b", {"status": 500})
        assert reverted.success is False
        assert reverted.error_code is None
        assert _batch_outcome("b", {"status": 600}).error_message == "Batch partially reverted"
        assert _batch_outcome("b", {"status": "PENDING"}) is None

    def test_legacy_confirmed_checks_receipts(self):
        ok = _batch_outcome("b", {"status": "CONFIRMED", "receipts": [{"status": "0x1", "transactionHash": "0x1"}]})
        reverted = _batch_outcome("b", {"status": "CONFIRMED", "receipts": [{"status": "0x0"}]})

        assert ok.success is True
        assert reverted.success is False
