"""Async client for the 0x Swap API (v2, AllowanceHolder)."""

from __future__ import annotations

import logging
from typing import Any, Dict, Optional

import httpx

from ..config import settings
from .base import SwapQuoteProvider


logger = logging.getLogger(__name__)


class ZeroExProvider(SwapQuoteProvider):
    """Thin wrapper around https://api.0x.org swap endpoints.

    0x has no multi-input endpoint; callers issue one request per input token.
    HTTP errors surface as ``httpx.HTTPStatusError`` so the caller can decide
    what is retryable.
    """

    name = "0x"

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        chain_id: Optional[int] = None,
        fee_bps: Optional[int] = None,
        fee_recipient: Optional[str] = None,
        timeout_s: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.zeroex_base_url).rstrip("/")
        self.api_key = api_key if api_key is not None else settings.zeroex_api_key
        self.chain_id = chain_id or settings.chain_id
        self.fee_bps = settings.swap_fee_bps if fee_bps is None else fee_bps
        self.fee_recipient = settings.swap_fee_recipient if fee_recipient is None else fee_recipient
        self.timeout_s = timeout_s or settings.request_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json",
            "0x-api-key": self.api_key,
            "0x-version": "v2",
            "user-agent": "DustSwapQuoteClient/2025-10",
        }

    def _params(
        self,
        *,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        slippage_bps: int,
        chain_id: Optional[int],
    ) -> Dict[str, str]:
        params = {
            "chainId": str(chain_id or self.chain_id),
            "sellToken": sell_token,
            "buyToken": buy_token,
            "sellAmount": str(sell_amount),
            "taker": taker,
            "slippageBps": str(slippage_bps),
        }
        if self.fee_recipient:
            # Fee is collected in the output token
            params["swapFeeBps"] = str(self.fee_bps)
            params["swapFeeRecipient"] = self.fee_recipient
            params["swapFeeToken"] = buy_token
        return params

    async def _get(self, path: str, params: Dict[str, str]) -> Dict[str, Any]:
        async with httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout_s,
            transport=self._transport,
        ) as client:
            response = await client.get(path, params=params, headers=self._headers())
            if response.is_error:
                logger.warning(
                    "0x %s failed (%s) for %s: %s",
                    path,
                    response.status_code,
                    params.get("sellToken"),
                    response.text[:300],
                )
            response.raise_for_status()
            return response.json()

    async def get_quote(
        self,
        *,
        sell_token: str,
        buy_token: str,
        sell_amount: int,
        taker: str,
        slippage_bps: int,
        chain_id: Optional[int] = None,
    ) -> Dict[str, Any]:
        """Firm quote including ``transaction`` and ``allowanceTarget``."""

        params = self._params(
            sell_token=sell_token,
            buy_token=buy_token,
            sell_amount=sell_amount,
            taker=taker,
            slippage_bps=slippage_bps,
            chain_id=chain_id,
        )
        return await self._get("/swap/allowance-holder/quote", params)

    async def ready(self) -> bool:
        return bool(self.api_key)

    async def health_check(self) -> Dict[str, Any]:
        if not self.api_key:
            return {"status": "unavailable", "reason": "0x API key not configured"}
        return {"status": "healthy", "base_url": self.base_url, "chain_id": self.chain_id}
