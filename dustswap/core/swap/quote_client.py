"""
Combined multi-input quotes.

The aggregator only quotes one sell token at a time, so a consolidation
quote is built from one upstream request per leg and merged. Either every
leg is quoted or the whole quote fails; no partial quotes are returned.
"""

from __future__ import annotations

import logging
import secrets
import time
from datetime import datetime, timezone
from typing import Any, Callable, Coroutine, Dict, List, Optional, Sequence

import httpx

from ...config import settings
from ...providers.base import SwapQuoteProvider
from ..recovery.errors import (
    QuoteError,
    QuoteErrorReason,
    UpstreamRetryableError,
)
from ..recovery.strategies import RetryConfig, RetryStrategy
from .constants import normalize_address
from .models import InputLeg, Quote, RawTransaction


logger = logging.getLogger(__name__)


def generate_path_id() -> str:
    """Client-local aggregate id. Not valid against the upstream provider."""
    return f"batch-{int(time.time() * 1000)}-{secrets.token_hex(5)}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _as_int(value: Any, default: int = 0) -> int:
    if value is None or value == "":
        return default
    if isinstance(value, str) and value.startswith("0x"):
        return int(value, 16)
    return int(value)


def _integrator_fee(payload: Dict[str, Any]) -> int:
    fees = payload.get("fees") or {}
    integrator = fees.get("integratorFee") or {}
    return _as_int(integrator.get("amount"))


class QuoteClient:
    """
    Obtains one combined ``Quote`` for N input legs and one output token.

    Retry policy per leg: up to ``max_attempts`` attempts, waiting
    ``base_delay * attempt`` between them. 429 and 5xx (and transport errors)
    are retried; any other 4xx aborts immediately.
    """

    def __init__(
        self,
        provider: SwapQuoteProvider,
        *,
        max_attempts: Optional[int] = None,
        base_delay_seconds: Optional[float] = None,
        sleep: Optional[Callable[[float], Coroutine[Any, Any, None]]] = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.provider = provider
        self._clock = clock
        retry_config = RetryConfig(
            max_attempts=settings.quote_max_attempts if max_attempts is None else max_attempts,
            base_delay_seconds=(
                settings.quote_retry_base_delay_seconds
                if base_delay_seconds is None
                else base_delay_seconds
            ),
        )
        strategy_kwargs: Dict[str, Any] = {"config": retry_config, "logger": logger}
        if sleep is not None:
            strategy_kwargs["sleep"] = sleep
        self.retry = RetryStrategy(**strategy_kwargs)

    @staticmethod
    def validate(legs: Sequence[InputLeg], output_token: str) -> None:
        """Fail fast on caller bugs, before any network call."""
        if not legs:
            raise QuoteError(QuoteErrorReason.INVALID_INPUT, "At least one input leg is required")

        output = normalize_address(output_token)
        if not output:
            raise QuoteError(QuoteErrorReason.INVALID_INPUT, "Output token is required")

        seen = set()
        for leg in legs:
            if leg.token_address == output:
                raise QuoteError(
                    QuoteErrorReason.INVALID_INPUT,
                    f"Input token {leg.token_address} is the output token",
                    token_address=leg.token_address,
                )
            if leg.amount <= 0:
                raise QuoteError(
                    QuoteErrorReason.INVALID_INPUT,
                    f"Amount for {leg.token_address} must be positive",
                    token_address=leg.token_address,
                )
            if leg.token_address in seen:
                raise QuoteError(
                    QuoteErrorReason.INVALID_INPUT,
                    f"Duplicate leg for {leg.token_address}; merge legs before quoting",
                    token_address=leg.token_address,
                )
            seen.add(leg.token_address)

    async def get_quote(
        self,
        legs: Sequence[InputLeg],
        output_token: str,
        slippage_bps: int,
        taker: str,
        chain_id: Optional[int] = None,
    ) -> Quote:
        """Combined quote for ``legs`` -> ``output_token``.

        Raises:
            QuoteError: InvalidInput, NoLiquidity or ProviderUnavailable
        """
        self.validate(legs, output_token)
        output = normalize_address(output_token)
        chain = chain_id or settings.chain_id

        payloads: List[Dict[str, Any]] = []
        total_retries = 0
        issued_at: Optional[datetime] = None

        # One leg at a time; the upstream rate-limits bursts per API key
        for leg in legs:
            try:
                outcome = await self.retry.execute(
                    lambda leg=leg: self._fetch_leg(leg, output, slippage_bps, taker, chain),
                    label=f"quote {leg.source_symbol or leg.token_address}",
                )
            except UpstreamRetryableError as e:
                raise QuoteError(
                    QuoteErrorReason.PROVIDER_UNAVAILABLE,
                    f"Quote for {leg.token_address} failed after {self.retry.config.max_attempts} attempts: {e}",
                    token_address=leg.token_address,
                    status_code=e.status_code,
                    attempts=self.retry.config.max_attempts,
                ) from e
            # The quote is as old as its oldest raw transaction
            if issued_at is None:
                issued_at = self._clock()
            payloads.append(outcome.value)
            total_retries += outcome.retries

        quote = self._merge(legs, payloads, output, slippage_bps, taker, chain, total_retries, issued_at)
        logger.info(
            "Combined quote %s: %d legs -> %s, buy=%s fee=%s gas=%s retries=%d",
            quote.path_id,
            len(legs),
            output,
            quote.total_buy_amount,
            quote.fee_amount,
            quote.gas_estimate,
            quote.retry_count,
        )
        return quote

    async def _fetch_leg(
        self,
        leg: InputLeg,
        output_token: str,
        slippage_bps: int,
        taker: str,
        chain_id: int,
    ) -> Dict[str, Any]:
        try:
            payload = await self.provider.get_quote(
                sell_token=leg.token_address,
                buy_token=output_token,
                sell_amount=leg.amount,
                taker=taker,
                slippage_bps=slippage_bps,
                chain_id=chain_id,
            )
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            if status == 429 or status >= 500:
                raise UpstreamRetryableError(
                    f"Quote for {leg.token_address} failed ({status})",
                    status_code=status,
                ) from e
            raise QuoteError(
                QuoteErrorReason.PROVIDER_UNAVAILABLE,
                f"Quote for {leg.token_address} rejected ({status}): {e.response.text[:200]}",
                token_address=leg.token_address,
                status_code=status,
            ) from e
        except httpx.RequestError as e:
            raise UpstreamRetryableError(f"Quote request for {leg.token_address} failed: {e}") from e

        if payload.get("liquidityAvailable") is False or not payload.get("transaction"):
            raise QuoteError(
                QuoteErrorReason.NO_LIQUIDITY,
                f"No liquidity for {leg.source_symbol or leg.token_address}",
                token_address=leg.token_address,
            )
        return payload

    def _merge(
        self,
        legs: Sequence[InputLeg],
        payloads: List[Dict[str, Any]],
        output_token: str,
        slippage_bps: int,
        taker: str,
        chain_id: int,
        retries: int,
        issued_at: datetime,
    ) -> Quote:
        spender = self._resolve_spender(legs, payloads)

        sources: List[str] = []
        for payload in payloads:
            for fill in (payload.get("route") or {}).get("fills") or []:
                source = fill.get("source")
                if source and source not in sources:
                    sources.append(source)

        return Quote(
            path_id=generate_path_id(),
            chain_id=chain_id,
            taker=normalize_address(taker),
            in_tokens=[
                normalize_address(p.get("sellToken") or leg.token_address)
                for leg, p in zip(legs, payloads)
            ],
            in_amounts=[_as_int(p.get("sellAmount"), leg.amount) for leg, p in zip(legs, payloads)],
            out_tokens=[normalize_address(p.get("buyToken", output_token)) for p in payloads],
            out_amounts=[_as_int(p.get("buyAmount")) for p in payloads],
            spender_address=spender,
            gas_estimate=sum(_as_int(p.get("gas") or (p.get("transaction") or {}).get("gas")) for p in payloads),
            fee_amount=sum(_integrator_fee(p) for p in payloads),
            raw_transactions=[RawTransaction.from_api(p["transaction"]) for p in payloads],
            total_buy_amount=sum(_as_int(p.get("buyAmount")) for p in payloads),
            min_buy_amount=sum(_as_int(p.get("minBuyAmount")) for p in payloads),
            slippage_bps=slippage_bps,
            retry_count=retries,
            issued_at=issued_at,
            sources=sources,
            per_leg=payloads,
        )

    @staticmethod
    def _resolve_spender(legs: Sequence[InputLeg], payloads: List[Dict[str, Any]]) -> str:
        """The one allowance target shared by every ERC-20 leg.

        Native legs need no allowance and 0x reports ``allowanceTarget: null``
        for them. An all-native quote has no spender.

        Raises:
            QuoteError: an ERC-20 leg has no target, or two legs disagree
        """
        spender = ""
        for leg, payload in zip(legs, payloads):
            if leg.is_native:
                continue
            target = normalize_address(payload.get("allowanceTarget") or "")
            if not target:
                raise QuoteError(
                    QuoteErrorReason.PROVIDER_UNAVAILABLE,
                    f"Quote for {leg.token_address} has no allowance target",
                    token_address=leg.token_address,
                )
            if spender and target != spender:
                raise QuoteError(
                    QuoteErrorReason.PROVIDER_UNAVAILABLE,
                    f"Legs report different allowance targets: {spender} vs {target}",
                    token_address=leg.token_address,
                )
            spender = target
        return spender
