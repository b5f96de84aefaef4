"""
Wallet submission seam.

``WalletClient`` is what the execution state machine awaits: one
``CallOutcome`` per submitted call or atomic batch. ``RpcWalletClient``
implements it against a wallet JSON-RPC endpoint that speaks EIP-1193 and
EIP-5792 (``wallet_getCapabilities`` / ``wallet_sendCalls`` /
``wallet_getCallsStatus``).
"""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol, Sequence

import httpx

from ..config import settings
from ..core.execution.models import CallKind, CallOutcome, PlannedCall
from ..core.recovery.errors import ChainReadError
from ..services.evm import to_hex_chain_id
from .rpc import ChainReader, receipt_succeeded


logger = logging.getLogger(__name__)

# wallet_getCallsStatus status codes (EIP-5792 v2)
CALLS_STATUS_PENDING = 100
CALLS_STATUS_CONFIRMED = 200
CALLS_STATUS_OFFCHAIN_FAILURE = 400
CALLS_STATUS_REVERTED = 500
CALLS_STATUS_PARTIALLY_REVERTED = 600


class WalletClient(Protocol):
    """Submission interface the state machine depends on."""

    async def get_capabilities(self, address: str, chain_id: int) -> Dict[str, Any]:
        ...

    async def submit(self, call: PlannedCall, sender: str, chain_id: int) -> CallOutcome:
        ...

    async def submit_batch(
        self,
        calls: Sequence[PlannedCall],
        sender: str,
        chain_id: int,
    ) -> CallOutcome:
        ...


class WalletRpcError(Exception):
    """JSON-RPC error object returned by the wallet."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


class RpcWalletClient:
    """
    Submits calls through a wallet JSON-RPC endpoint.

    Errors from the wallet (including user rejection, code 4001) come back as
    failed ``CallOutcome`` objects; classification is left to the caller.
    """

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        *,
        chain_reader: Optional[ChainReader] = None,
        client: Optional[httpx.AsyncClient] = None,
        status_poll_interval: Optional[float] = None,
        status_timeout: Optional[float] = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.wallet_rpc_url
        self.chain_reader = chain_reader or ChainReader()
        self._client = client or httpx.AsyncClient(timeout=settings.request_timeout_seconds)
        self.status_poll_interval = (
            status_poll_interval
            if status_poll_interval is not None
            else settings.batch_status_poll_interval_seconds
        )
        self.status_timeout = (
            status_timeout if status_timeout is not None else settings.batch_status_timeout_seconds
        )
        self._ids = itertools.count(1)

    async def _rpc(self, method: str, params: List[Any]) -> Any:
        if not self.rpc_url:
            raise WalletRpcError("No wallet RPC URL configured")

        payload = {"jsonrpc": "2.0", "method": method, "params": params, "id": next(self._ids)}
        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise WalletRpcError(f"Wallet {method} failed: {e}") from e

        error = body.get("error")
        if error:
            raise WalletRpcError(
                str(error.get("message") or error),
                code=error.get("code"),
                data=error.get("data"),
            )
        return body.get("result")

    async def get_capabilities(self, address: str, chain_id: int) -> Dict[str, Any]:
        result = await self._rpc("wallet_getCapabilities", [address, [to_hex_chain_id(chain_id)]])
        return result or {}

    async def submit(self, call: PlannedCall, sender: str, chain_id: int) -> CallOutcome:
        tx = {**call.to_dict(), "from": sender, "chainId": to_hex_chain_id(chain_id)}
        try:
            tx_hash = await self._rpc("eth_sendTransaction", [tx])
        except WalletRpcError as e:
            return CallOutcome.failed(e.message, code=e.code, data=e.data)

        logger.info(f"Transaction submitted: {tx_hash}")
        receipt = await self.chain_reader.wait_for_receipt(tx_hash)
        if receipt is None:
            return CallOutcome.failed(
                f"Confirmation timeout for {tx_hash}",
                tx_hash=tx_hash,
            )
        if not receipt_succeeded(receipt):
            return await self._with_revert_reason(
                CallOutcome.failed("Transaction reverted", tx_hash=tx_hash, receipts=[receipt]),
                [call],
                sender,
            )
        return CallOutcome.confirmed(tx_hash, receipts=[receipt])

    async def submit_batch(
        self,
        calls: Sequence[PlannedCall],
        sender: str,
        chain_id: int,
    ) -> CallOutcome:
        request = {
            "version": "2.0.0",
            "chainId": to_hex_chain_id(chain_id),
            "from": sender,
            "atomicRequired": True,
            "calls": [call.to_dict() for call in calls],
        }
        try:
            result = await self._rpc("wallet_sendCalls", [request])
        except WalletRpcError as e:
            return CallOutcome.failed(e.message, code=e.code, data=e.data)

        batch_id = result.get("id") if isinstance(result, dict) else result
        logger.info(f"Batch submitted: {batch_id} ({len(calls)} calls)")
        outcome = await self._wait_for_batch(str(batch_id))
        # Receipts on a failure mean the batch was mined and reverted
        if not outcome.success and outcome.receipts:
            swaps = [call for call in calls if call.kind == CallKind.SWAP]
            outcome = await self._with_revert_reason(outcome, swaps, sender)
        return outcome

    async def _wait_for_batch(self, batch_id: str) -> CallOutcome:
        deadline = time.monotonic() + self.status_timeout

        while True:
            try:
                status = await self._rpc("wallet_getCallsStatus", [batch_id])
            except WalletRpcError as e:
                logger.warning(f"Error checking batch status for {batch_id}: {e}")
                status = None

            if status:
                outcome = _batch_outcome(batch_id, status)
                if outcome is not None:
                    return outcome

            if time.monotonic() >= deadline:
                return CallOutcome.failed(
                    f"Batch confirmation timeout after {self.status_timeout}s",
                    batch_id=batch_id,
                )
            await asyncio.sleep(self.status_poll_interval)

    async def _with_revert_reason(
        self,
        outcome: CallOutcome,
        calls: Sequence[PlannedCall],
        sender: str,
    ) -> CallOutcome:
        """Attach the revert data of a mined failure by replaying its calls.

        Calls are replayed one by one at the block of the last receipt; the
        first one that reverts supplies the error. A replay that cannot be
        made leaves the outcome as it was.
        """
        block = outcome.receipts[-1].get("blockNumber") if outcome.receipts else None
        for call in calls:
            tx = {"from": sender, "to": call.to, "data": call.data, "value": hex(call.value)}
            try:
                error = await self.chain_reader.replay_call(tx, block or "latest")
            except ChainReadError as e:
                logger.warning(f"Could not replay reverted call to {call.to}: {e}")
                return outcome
            if error:
                message = error.get("message")
                return replace(
                    outcome,
                    error_message=f"{outcome.error_message}: {message}" if message else outcome.error_message,
                    error_data=error.get("data"),
                )
        return outcome

    async def close(self) -> None:
        await self._client.aclose()


def _batch_outcome(batch_id: str, status: Dict[str, Any]) -> Optional[CallOutcome]:
    """Terminal outcome for a getCallsStatus payload, or None while pending."""
    code = status.get("status")
    receipts = list(status.get("receipts") or [])
    tx_hash = receipts[-1].get("transactionHash") if receipts else None

    # Pre-v2 wallets report string states
    if code == "PENDING":
        return None
    if code == "CONFIRMED":
        if receipts and all(receipt_succeeded(r) for r in receipts):
            return CallOutcome.confirmed(tx_hash, batch_id=batch_id, receipts=receipts)
        return CallOutcome.failed("Batch reverted", batch_id=batch_id, tx_hash=tx_hash, receipts=receipts)

    if code is None or int(code) < CALLS_STATUS_CONFIRMED:
        return None
    code = int(code)
    if code == CALLS_STATUS_CONFIRMED:
        return CallOutcome.confirmed(tx_hash, batch_id=batch_id, receipts=receipts)
    if code == CALLS_STATUS_OFFCHAIN_FAILURE:
        message = "Batch failed before inclusion"
    elif code == CALLS_STATUS_PARTIALLY_REVERTED:
        message = "Batch partially reverted"
    else:
        message = "Batch reverted"
    # Batch status codes are not wallet error codes
    logger.info(f"Batch {batch_id} finished with status {code}")
    return CallOutcome.failed(message, batch_id=batch_id, tx_hash=tx_hash, receipts=receipts)
