from typing import Any, Dict, List, Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field, field_validator

from ..config import settings
from ..core.recovery.errors import ApprovalCheckFailed, QuoteError, QuoteErrorReason
from ..core.swap.models import InputLeg
from ..core.swap.orchestrator import SwapOrchestrator, create_swap_orchestrator
from ..core.swap.quote_client import QuoteClient
from ..core.wallet.models import WalletContext
from ..providers.zeroex import ZeroExProvider


router = APIRouter(prefix="/swap")

STATUS_BY_REASON = {
    QuoteErrorReason.INVALID_INPUT: 400,
    QuoteErrorReason.NO_LIQUIDITY: 422,
    QuoteErrorReason.PROVIDER_UNAVAILABLE: 502,
}


class InputTokenModel(BaseModel):
    tokenAddress: str = Field(..., description="ERC-20 address, or the 0xeeee... sentinel for native")
    amount: str = Field(..., description="Amount in smallest units")
    symbol: Optional[str] = Field(default=None, description="Display symbol, used in logs only")

    @field_validator("amount")
    @classmethod
    def _integer_amount(cls, value: str) -> str:
        if not value.strip().isdigit():
            raise ValueError("amount must be a non-negative integer string")
        return value.strip()


class SwapQuoteRequest(BaseModel):
    inputTokens: List[InputTokenModel] = Field(default_factory=list)
    outputTokenAddress: str = Field(..., description="Token every input is converted into")
    userAddr: str = Field(..., description="Taker address")
    slippageBps: Optional[int] = Field(default=None, ge=0, le=5000, description="Allowed slippage in basis points")
    chainId: Optional[int] = Field(default=None, description="Defaults to the configured chain")

    def legs(self) -> List[InputLeg]:
        return [
            InputLeg(token_address=t.tokenAddress, amount=int(t.amount), source_symbol=t.symbol or "")
            for t in self.inputTokens
        ]

    def wallet(self) -> WalletContext:
        return WalletContext(address=self.userAddr, chain_id=self.chainId or settings.chain_id)

    @property
    def slippage(self) -> int:
        return settings.default_slippage_bps if self.slippageBps is None else self.slippageBps


_quote_client: Optional[QuoteClient] = None
_orchestrator: Optional[SwapOrchestrator] = None


def get_quote_client() -> QuoteClient:
    """Get or create the shared quote client."""
    global _quote_client
    if _quote_client is None:
        _quote_client = QuoteClient(ZeroExProvider())
    return _quote_client


def get_orchestrator() -> SwapOrchestrator:
    """Get or create the shared orchestrator."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = create_swap_orchestrator()
    return _orchestrator


def _quote_http_error(exc: QuoteError) -> HTTPException:
    return HTTPException(
        status_code=STATUS_BY_REASON.get(exc.reason, 502),
        detail={"reason": exc.reason.value, "message": exc.message},
    )


@router.post("/quote")
async def post_swap_quote(
    req: SwapQuoteRequest,
    quote_client: QuoteClient = Depends(get_quote_client),
) -> Dict[str, Any]:
    wallet = req.wallet()
    try:
        quote = await quote_client.get_quote(
            req.legs(),
            req.outputTokenAddress,
            req.slippage,
            taker=wallet.address,
            chain_id=wallet.chain_id,
        )
    except QuoteError as exc:
        raise _quote_http_error(exc)
    return quote.to_dict()


@router.post("/plan")
async def post_swap_plan(
    req: SwapQuoteRequest,
    orchestrator: SwapOrchestrator = Depends(get_orchestrator),
) -> Dict[str, Any]:
    try:
        swap_plan = await orchestrator.plan_swap(
            req.legs(),
            req.outputTokenAddress,
            req.slippage,
            req.wallet(),
        )
    except QuoteError as exc:
        raise _quote_http_error(exc)
    except ApprovalCheckFailed as exc:
        raise HTTPException(
            status_code=502,
            detail={"reason": "ApprovalCheckFailed", "message": exc.message},
        )
    return swap_plan.to_dict()
