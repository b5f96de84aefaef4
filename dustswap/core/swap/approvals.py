"""Allowance checks for the input tokens of a quote."""

from __future__ import annotations

import asyncio
import logging
from typing import Dict, Optional

from ...providers.base import ChainProvider
from ..recovery.errors import ApprovalCheckFailed, ChainReadError
from .constants import is_native, normalize_address
from .models import ApprovalStatus, Quote


logger = logging.getLogger(__name__)


class ApprovalResolver:
    """
    Classifies every input token of a quote as approved / needs-approval.

    Compares the live allowance for ``quote.spender_address`` against the
    exact amount this swap pulls, so an earlier unlimited approval counts as
    approved. Statuses are recomputed per quote, never patched across quotes.
    """

    def __init__(self, chain_reader: ChainProvider):
        self.chain_reader = chain_reader

    async def resolve(self, quote: Quote, owner: str) -> Dict[str, ApprovalStatus]:
        """Allowance status per distinct input token, in quote order.

        All reads run concurrently. If any read fails the whole resolution
        fails; approval state is then unknown and must not be assumed.

        Raises:
            ApprovalCheckFailed: an allowance read failed
        """
        owner = normalize_address(owner)
        spender = quote.spender_address
        tokens = quote.distinct_in_tokens()

        async def check(token: str) -> ApprovalStatus:
            required = quote.required_amount(token)
            if is_native(token):
                return ApprovalStatus(
                    token_address=token,
                    current_allowance=required,
                    required_amount=required,
                    is_native=True,
                )
            if not spender:
                raise ApprovalCheckFailed(
                    f"Quote {quote.path_id} has no spender for {token}",
                    token_address=token,
                )
            try:
                allowance = await self.chain_reader.get_allowance(token, owner, spender)
            except ChainReadError as e:
                raise ApprovalCheckFailed(
                    f"Allowance read failed for {token}: {e}",
                    token_address=token,
                ) from e
            return ApprovalStatus(
                token_address=token,
                current_allowance=allowance,
                required_amount=required,
            )

        tasks = [asyncio.ensure_future(check(token)) for token in tokens]
        try:
            results = await asyncio.gather(*tasks)
        except ApprovalCheckFailed:
            for task in tasks:
                task.cancel()
            raise

        statuses = {status.token_address: status for status in results}
        pending = [t for t, s in statuses.items() if s.needs_approval]
        logger.info(
            "Approval check for %s: %d tokens, %d need approval",
            quote.path_id,
            len(statuses),
            len(pending),
        )
        return statuses


def mark_approved(
    statuses: Dict[str, ApprovalStatus],
    token_address: str,
    allowance: Optional[int] = None,
) -> None:
    """Update one status in place after its approve call confirmed on-chain."""
    token = normalize_address(token_address)
    status = statuses.get(token)
    if status is None:
        return
    status.current_allowance = allowance if allowance is not None else max(
        status.current_allowance, status.required_amount
    )
