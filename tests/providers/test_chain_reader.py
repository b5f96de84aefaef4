"""
Tests for the JSON-RPC chain reader
"""

import json

import httpx
import pytest

from dustswap.core.recovery.errors import ChainReadError
from dustswap.providers.rpc import ChainReader, receipt_succeeded


RPC_URL = "https://rpc.test"
TOKEN = "0x1111111111111111111111111111111111111111"
OWNER = "0xabcdefabcdefabcdefabcdefabcdefabcdefabcd"
SPENDER = "0x0000000000001ff3684f28c67538d4d072c22734"


def make_reader(handler):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return ChainReader(RPC_URL, client=client)


def rpc_result(request, result):
    body = json.loads(request.content)
    return httpx.Response(200, json={"jsonrpc": "2.0", "id": body["id"], "result": result})


class TestChainReader:

    @pytest.mark.asyncio
    async def test_get_allowance_encodes_call(self):
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            return rpc_result(request, "0x" + format(1234, "064x"))

        reader = make_reader(handler)
        allowance = await reader.get_allowance(TOKEN, OWNER, SPENDER)

        assert allowance == 1234
        call = calls[0]
        assert call["method"] == "eth_call"
        tx, block = call["params"]
        assert block == "latest"
        assert tx["to"] == TOKEN
        assert tx["data"] == "0xdd62ed3e" + "0" * 24 + OWNER[2:] + "0" * 24 + SPENDER[2:]
        await reader.close()

    @pytest.mark.asyncio
    async def test_rpc_error_object_raises(self):
        def handler(request):
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": {"code": -32000, "message": "header not found"}})

        with pytest.raises(ChainReadError) as exc_info:
            await make_reader(handler).get_allowance(TOKEN, OWNER, SPENDER)

        assert exc_info.value.method == "eth_call"
        assert exc_info.value.rpc_error["code"] == -32000

    @pytest.mark.asyncio
    async def test_http_failure_raises(self):
        def handler(request):
            return httpx.Response(502, text="bad gateway")

        with pytest.raises(ChainReadError):
            await make_reader(handler).get_code(OWNER)

    @pytest.mark.asyncio
    async def test_replay_call_returns_revert_error(self):
        revert = {"code": 3, "message": "execution reverted", "data": "0x97a6f3b9" + "00" * 96}
        calls = []

        def handler(request):
            calls.append(json.loads(request.content))
            return httpx.Response(200, json={"jsonrpc": "2.0", "id": 1, "error": revert})

        tx = {"from": OWNER, "to": SPENDER, "data": "0xcafe", "value": "0x0"}
        error = await make_reader(handler).replay_call(tx, "0x10")

        assert error == revert
        assert calls[0]["method"] == "eth_call"
        assert calls[0]["params"] == [tx, "0x10"]

    @pytest.mark.asyncio
    async def test_replay_call_that_succeeds_returns_none(self):
        reader = make_reader(lambda request: rpc_result(request, "0x"))

        assert await reader.replay_call({"to": SPENDER, "data": "0xcafe"}) is None

    @pytest.mark.asyncio
    async def test_replay_call_transport_failure_raises(self):
        reader = make_reader(lambda request: httpx.Response(502, text="bad gateway"))

        with pytest.raises(ChainReadError):
            await reader.replay_call({"to": SPENDER, "data": "0xcafe"})

    @pytest.mark.asyncio
    async def test_get_code_and_balances(self):
        def handler(request):
            method = json.loads(request.content)["method"]
            if method == "eth_getCode":
                return rpc_result(request, None)
            if method == "eth_getBalance":
                return rpc_result(request, "0xde0b6b3a7640000")
            return rpc_result(request, "0x" + format(6, "064x"))

        reader = make_reader(handler)

        assert await reader.get_code(OWNER) == "0x"
        assert await reader.get_native_balance(OWNER) == 10**18
        assert await reader.get_decimals(TOKEN) == 6
        assert await reader.get_token_balance(TOKEN, OWNER) == 6

    @pytest.mark.asyncio
    async def test_wait_for_receipt_polls_until_mined(self):
        responses = [None, {"status": "0x1", "transactionHash": "0xabc"}]

        def handler(request):
            return rpc_result(request, responses.pop(0))

        receipt = await make_reader(handler).wait_for_receipt("0xabc", timeout_seconds=5, poll_interval=0)

        assert receipt["transactionHash"] == "0xabc"

    @pytest.mark.asyncio
    async def test_wait_for_receipt_times_out(self):
        def handler(request):
            return rpc_result(request, None)

        receipt = await make_reader(handler).wait_for_receipt("0xabc", timeout_seconds=0, poll_interval=0)

        assert receipt is None

    def test_receipt_status(self):
        assert receipt_succeeded({"status": "0x1"}) is True
        assert receipt_succeeded({"status": "0x0"}) is False
        assert receipt_succeeded({"status": 1}) is True
