"""
Swap orchestrator.

Single entry point that takes N input legs to one output token:

    quote -> approvals -> capabilities -> call plan -> execution

Every step depends on the previous one, so the pipeline is sequential; the
only fan-out is the allowance reads inside ``ApprovalResolver``. Terminal
results are returned as ``SwapResult`` values, never raised.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...config import settings
from ...logging_config import bind_quote_context, bind_swap_context, clear_swap_context
from ...providers.base import ChainProvider
from ...providers.notifications import WebhookNotifier
from ...providers.rpc import ChainReader
from ...providers.wallet import RpcWalletClient, WalletClient
from ...providers.zeroex import ZeroExProvider
from ...services.collaborators import (
    HistoryStore,
    NotificationPayload,
    NotificationTemplates,
    Notifier,
    PriceFeed,
    SwapRecord,
)
from ..execution.call_builder import CallBuilder
from ..execution.models import AllowancePolicy, CallKind, CallOutcome, CallPlan, PlannedCall
from ..execution.state_machine import ExecutionStateMachine
from ..recovery.errors import (
    ApprovalCheckFailed,
    ChainReadError,
    InvalidTransitionError,
    QuoteError,
    SwapErrorKind,
)
from ..wallet.capabilities import CapabilityDetector
from ..wallet.models import SessionContext, WalletCapabilities, WalletContext
from .approvals import ApprovalResolver, mark_approved
from .constants import output_token_decimals, output_token_symbol
from .models import ApprovalStatus, InputLeg, Quote, SwapResult
from .quote_client import QuoteClient


logger = logging.getLogger(__name__)


@dataclass
class SwapPlan:
    """Everything needed to execute a swap, resolved but not yet submitted."""

    quote: Quote
    approvals: Dict[str, ApprovalStatus]
    capabilities: WalletCapabilities
    plan: CallPlan

    def to_dict(self) -> Dict[str, Any]:
        return {
            "quote": self.quote.to_dict(),
            "approvals": [status.to_dict() for status in self.approvals.values()],
            "capabilities": self.capabilities.to_dict(),
            "calls": self.plan.to_list(),
        }


class SwapOrchestrator:
    """
    Runs consolidation swaps for one wallet session at a time.

    The session context (capability cache) and the execution state machine
    belong to the current (address, chain). Switching either rebuilds both.
    """

    def __init__(
        self,
        quote_client: QuoteClient,
        approval_resolver: ApprovalResolver,
        capability_detector: CapabilityDetector,
        call_builder: CallBuilder,
        wallet_client: WalletClient,
        *,
        chain_reader: Optional[ChainProvider] = None,
        price_feed: Optional[PriceFeed] = None,
        history_store: Optional[HistoryStore] = None,
        notifier: Optional[Notifier] = None,
        quote_ttl_seconds: Optional[float] = None,
        settle_delay_seconds: Optional[float] = None,
    ):
        self.quote_client = quote_client
        self.approval_resolver = approval_resolver
        self.capability_detector = capability_detector
        self.call_builder = call_builder
        self.wallet_client = wallet_client
        self.chain_reader = chain_reader
        self.price_feed = price_feed
        self.history_store = history_store
        self.notifier = notifier
        self.quote_ttl_seconds = (
            settings.quote_ttl_seconds if quote_ttl_seconds is None else quote_ttl_seconds
        )
        self.settle_delay_seconds = (
            settings.sequential_settle_delay_seconds
            if settle_delay_seconds is None
            else settle_delay_seconds
        )

        self._session: Optional[SessionContext] = None
        self._machine: Optional[ExecutionStateMachine] = None
        self._attempt_in_flight = False

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    @property
    def session(self) -> Optional[SessionContext]:
        return self._session

    @property
    def machine(self) -> Optional[ExecutionStateMachine]:
        return self._machine

    @property
    def attempt_in_flight(self) -> bool:
        """A run_swap is between claiming the session and its terminal result."""
        return self._attempt_in_flight or (self._machine is not None and self._machine.in_flight)

    def session_for(self, wallet: WalletContext) -> SessionContext:
        """Session for ``wallet``; a different address or chain starts a new one."""
        if self._session is not None and self._session.matches(wallet):
            return self._session.for_wallet(wallet)

        if self.attempt_in_flight:
            raise InvalidTransitionError(
                from_state=self._machine.phase,
                to_state="session_switch",
                message="Cannot switch wallet while a swap is in flight",
            )

        if self._session is not None:
            logger.info(
                "Wallet changed from %s/%s to %s/%s; rebuilding session",
                self._session.wallet.address,
                self._session.wallet.chain_id,
                wallet.address,
                wallet.chain_id,
            )
        self._session = SessionContext(wallet=wallet)
        self._machine = ExecutionStateMachine(
            self.wallet_client,
            self._session.wallet,
            settle_delay_seconds=self.settle_delay_seconds,
        )
        return self._session

    # ------------------------------------------------------------------
    # Pipeline
    # ------------------------------------------------------------------

    async def plan_swap(
        self,
        legs: Sequence[InputLeg],
        output_token: str,
        slippage_bps: Optional[int],
        wallet: WalletContext,
    ) -> SwapPlan:
        """Quote, approvals, capabilities and the call plan, without executing.

        Raises:
            QuoteError: the combined quote could not be produced
            ApprovalCheckFailed: an allowance read failed
        """
        session = self.session_for(wallet)
        slippage = settings.default_slippage_bps if slippage_bps is None else slippage_bps

        quote = await self.quote_client.get_quote(
            legs,
            output_token,
            slippage,
            taker=wallet.address,
            chain_id=wallet.chain_id,
        )
        bind_quote_context(quote.path_id)

        approvals = await self.approval_resolver.resolve(quote, wallet.address)
        capabilities = await self.capability_detector.detect(session)
        plan = self.call_builder.build(quote, approvals)

        logger.info(
            "Planned %s: %d calls (%d approvals), atomic=%s",
            quote.path_id,
            len(plan),
            len(plan.approvals),
            capabilities.atomic_batch_supported,
        )
        return SwapPlan(quote=quote, approvals=approvals, capabilities=capabilities, plan=plan)

    async def run_swap(
        self,
        legs: Sequence[InputLeg],
        output_token: str,
        slippage_bps: Optional[int],
        wallet: WalletContext,
    ) -> SwapResult:
        """Run one swap attempt to a terminal ``SwapResult``.

        Each call fetches a fresh quote; retrying after ``stale_quote`` or
        ``user_rejected`` means calling this again.

        Raises:
            InvalidTransitionError: a swap is already in flight for this session
        """
        bind_swap_context(
            wallet_address=wallet.address,
            chain_id=wallet.chain_id,
            attempt_id=uuid.uuid4().hex[:12],
        )
        try:
            return await self._run_swap(legs, output_token, slippage_bps, wallet)
        finally:
            clear_swap_context()

    async def _run_swap(
        self,
        legs: Sequence[InputLeg],
        output_token: str,
        slippage_bps: Optional[int],
        wallet: WalletContext,
    ) -> SwapResult:
        self.session_for(wallet)
        if self.attempt_in_flight:
            raise InvalidTransitionError(
                from_state=self._machine.phase,
                to_state="planning",
                message="A swap is already in flight for this wallet",
            )

        # Claimed before the first await so a concurrent run_swap cannot plan
        self._attempt_in_flight = True
        try:
            return await self._attempt(self._machine, legs, output_token, slippage_bps, wallet)
        finally:
            self._attempt_in_flight = False

    async def _attempt(
        self,
        machine: ExecutionStateMachine,
        legs: Sequence[InputLeg],
        output_token: str,
        slippage_bps: Optional[int],
        wallet: WalletContext,
    ) -> SwapResult:
        try:
            swap_plan = await self.plan_swap(legs, output_token, slippage_bps, wallet)
        except QuoteError as e:
            logger.warning(f"Quote failed ({e.reason.value}): {e.message}")
            return SwapResult.failure(
                SwapErrorKind.QUOTE_FAILED,
                e.message,
                quote_reason=e.reason.value,
            )
        except ApprovalCheckFailed as e:
            logger.warning(f"Approval check failed: {e.message}")
            return SwapResult.failure(SwapErrorKind.APPROVAL_CHECK_FAILED, e.message)

        quote = swap_plan.quote
        if quote.is_expired(self.quote_ttl_seconds):
            age = quote.age_seconds()
            logger.warning(f"Quote {quote.path_id} expired before submission ({age:.1f}s old)")
            return SwapResult.failure(
                SwapErrorKind.STALE_QUOTE,
                f"Quote expired after {age:.0f}s",
                quote_path_id=quote.path_id,
            )

        approvals = swap_plan.approvals

        def on_call_confirmed(call: PlannedCall, outcome: CallOutcome) -> None:
            if call.kind != CallKind.APPROVE or not call.token_address:
                return
            status = approvals.get(call.token_address)
            if status is not None:
                mark_approved(approvals, call.token_address, self.call_builder.approval_amount(status))

        report = await machine.run(
            swap_plan.plan,
            swap_plan.capabilities,
            on_call_confirmed=on_call_confirmed,
        )

        if report.succeeded:
            result = SwapResult.success(
                report.tx_hash,
                quote_path_id=quote.path_id,
                call_hashes=report.tx_hashes,
            )
            await self._record_history(quote, wallet, report.tx_hash, result.warnings)
            await self._notify(
                wallet,
                NotificationTemplates.swap_success(
                    len(quote.in_tokens),
                    output_token_symbol(quote.chain_id, quote.output_token),
                ),
                result.warnings,
            )
            logger.info(f"Swap {quote.path_id} succeeded: {report.tx_hash}")
            return result

        result = SwapResult.failure(
            report.failure_kind or SwapErrorKind.EXECUTION_FAILED,
            report.failure_detail,
            quote_path_id=quote.path_id,
            call_hashes=report.tx_hashes,
        )
        await self._notify(wallet, NotificationTemplates.swap_failed(result.reason), result.warnings)
        logger.warning(f"Swap {quote.path_id} failed: {result.kind.value} ({result.detail})")
        return result

    # ------------------------------------------------------------------
    # Collaborators
    # ------------------------------------------------------------------

    async def _record_history(
        self,
        quote: Quote,
        wallet: WalletContext,
        tx_hash: Optional[str],
        warnings: List[str],
    ) -> None:
        if self.history_store is None:
            return

        total_usd, fees_usd = await self._usd_values(quote)
        record = SwapRecord(
            user_address=wallet.address,
            input_tokens=list(quote.in_tokens),
            output_token=quote.output_token,
            amounts=[str(amount) for amount in quote.in_amounts],
            tx_hash=tx_hash,
            total_amount_usd=total_usd,
            fees_usd=fees_usd,
        )
        try:
            saved = await self.history_store.record_swap(record)
        except Exception as e:
            logger.error(f"Swap history write raised: {e}")
            warnings.append(f"Swap history was not saved: {e}")
            return
        if not saved:
            logger.error("Swap history write failed")
            warnings.append("Swap history was not saved")

    async def _usd_values(self, quote: Quote) -> Tuple[Optional[Decimal], Optional[Decimal]]:
        """(total, fees) in USD, or None where the price or decimals are unknown."""
        if self.price_feed is None:
            return None, None

        token = quote.output_token
        try:
            prices = await self.price_feed.get_prices([token])
        except Exception as e:
            logger.warning(f"Price lookup for {token} failed: {e}")
            return None, None

        price = prices.get(token)
        if price is None:
            return None, None

        decimals = await self._output_decimals(quote)
        if decimals is None:
            return None, None

        scale = Decimal(10) ** decimals
        price = Decimal(price)
        return (
            Decimal(quote.total_buy_amount) / scale * price,
            Decimal(quote.fee_amount) / scale * price,
        )

    async def _output_decimals(self, quote: Quote) -> Optional[int]:
        known = output_token_decimals(quote.chain_id, quote.output_token)
        if known is not None or self.chain_reader is None:
            return known
        try:
            return await self.chain_reader.get_decimals(quote.output_token)
        except ChainReadError as e:
            logger.warning(f"decimals() lookup for {quote.output_token} failed: {e}")
            return None

    async def _notify(
        self,
        wallet: WalletContext,
        payload: NotificationPayload,
        warnings: List[str],
    ) -> None:
        if self.notifier is None or not wallet.user_id:
            return
        try:
            delivered = await self.notifier.notify(wallet.user_id, payload)
        except Exception as e:
            logger.error(f"Notification dispatch raised: {e}")
            warnings.append(f"Notification was not sent: {e}")
            return
        if not delivered:
            logger.debug("Notification dropped")


def create_swap_orchestrator(
    *,
    price_feed: Optional[PriceFeed] = None,
    history_store: Optional[HistoryStore] = None,
    notifier: Optional[Notifier] = None,
) -> SwapOrchestrator:
    """Orchestrator wired to 0x, the configured RPC and wallet endpoints."""
    chain_reader = ChainReader()
    wallet_client = RpcWalletClient(chain_reader=chain_reader)
    return SwapOrchestrator(
        quote_client=QuoteClient(ZeroExProvider()),
        approval_resolver=ApprovalResolver(chain_reader),
        capability_detector=CapabilityDetector(wallet_client, chain_reader),
        call_builder=CallBuilder(AllowancePolicy(settings.approval_policy)),
        wallet_client=wallet_client,
        chain_reader=chain_reader,
        price_feed=price_feed,
        history_store=history_store,
        notifier=notifier if notifier is not None else WebhookNotifier(),
    )
