"""Read-only JSON-RPC access to the chain."""

from __future__ import annotations

import asyncio
import itertools
import logging
import time
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings
from ..core.recovery.errors import ChainReadError
from ..services.evm import (
    ERC20_ALLOWANCE_SELECTOR,
    ERC20_BALANCE_OF_SELECTOR,
    ERC20_DECIMALS_SELECTOR,
    decode_uint256,
    encode_address,
    encode_call,
)
from .base import ChainProvider


logger = logging.getLogger(__name__)


class ChainReader(ChainProvider):
    """
    Balances, allowances, decimals, bytecode and receipts over JSON-RPC.

    Every failure (transport, HTTP status, JSON-RPC error object) is raised as
    ``ChainReadError`` so callers never mistake a failed read for a zero value.
    """

    name = "rpc"

    def __init__(
        self,
        rpc_url: Optional[str] = None,
        *,
        timeout_s: Optional[int] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.rpc_url = rpc_url or settings.resolved_rpc_url
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._client = client or httpx.AsyncClient(timeout=self.timeout_s)
        self._ids = itertools.count(1)

    async def call(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC call and return its ``result``."""
        if not self.rpc_url:
            raise ChainReadError("No RPC URL configured", method=method)

        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": next(self._ids),
        }

        try:
            response = await self._client.post(self.rpc_url, json=payload)
            response.raise_for_status()
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ChainReadError(f"RPC {method} failed: {e}", method=method) from e

        if body.get("error"):
            raise ChainReadError(
                f"RPC error in {method}: {body['error']}",
                method=method,
                rpc_error=body["error"],
            )

        return body.get("result")

    async def eth_call(self, to: str, data: str, block: str = "latest") -> str:
        return await self.call("eth_call", [{"to": to, "data": data}, block])

    async def replay_call(self, tx: Dict[str, Any], block: Any = "latest") -> Optional[Dict[str, Any]]:
        """Re-run a transaction with ``eth_call`` at ``block``.

        Receipts carry no revert data; the node returns it as the JSON-RPC
        error of a replayed call. Returns that error object, or None when the
        replay succeeds.

        Raises:
            ChainReadError: the replay itself could not be made
        """
        try:
            await self.call("eth_call", [tx, block])
        except ChainReadError as e:
            if not e.rpc_error:
                raise
            return e.rpc_error
        return None

    async def get_native_balance(self, address: str) -> int:
        result = await self.call("eth_getBalance", [address, "latest"])
        return int(result or "0x0", 16)

    async def get_token_balance(self, token_address: str, owner: str) -> int:
        data = encode_call(ERC20_BALANCE_OF_SELECTOR, encode_address(owner))
        return decode_uint256(await self.eth_call(token_address, data))

    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        data = encode_call(
            ERC20_ALLOWANCE_SELECTOR,
            encode_address(owner),
            encode_address(spender),
        )
        return decode_uint256(await self.eth_call(token_address, data))

    async def get_decimals(self, token_address: str) -> int:
        return decode_uint256(await self.eth_call(token_address, ERC20_DECIMALS_SELECTOR))

    async def get_code(self, address: str) -> str:
        return await self.call("eth_getCode", [address, "latest"]) or "0x"

    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        return await self.call("eth_getTransactionReceipt", [tx_hash])

    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        return await self.call("eth_getLogs", [log_filter]) or []

    async def wait_for_receipt(
        self,
        tx_hash: str,
        *,
        timeout_seconds: Optional[float] = None,
        poll_interval: Optional[float] = None,
    ) -> Optional[Dict[str, Any]]:
        """Poll until the receipt exists. Returns None on timeout."""
        timeout = timeout_seconds if timeout_seconds is not None else settings.receipt_timeout_seconds
        interval = poll_interval if poll_interval is not None else settings.receipt_poll_interval_seconds
        deadline = time.monotonic() + timeout

        while True:
            try:
                receipt = await self.get_transaction_receipt(tx_hash)
            except ChainReadError as e:
                logger.warning(f"Error checking receipt for {tx_hash}: {e}")
                receipt = None

            if receipt:
                return receipt
            if time.monotonic() >= deadline:
                return None
            await asyncio.sleep(interval)

    async def ready(self) -> bool:
        return bool(self.rpc_url)

    async def health_check(self) -> Dict[str, Any]:
        if not self.rpc_url:
            return {"status": "unavailable", "reason": "RPC URL not configured"}
        try:
            block = await self.call("eth_blockNumber", [])
            return {"status": "healthy", "block": int(block, 16)}
        except ChainReadError as e:
            return {"status": "unhealthy", "error": str(e)}

    async def close(self) -> None:
        """Close HTTP client."""
        await self._client.aclose()


def receipt_succeeded(receipt: Dict[str, Any]) -> bool:
    """Receipt status 0x1 = success, 0x0 = revert."""
    status = receipt.get("status", "0x1")
    if isinstance(status, str):
        return int(status, 16) == 1
    return int(status) == 1
