"""
Capability detection for the connected wallet.

Two independent probes:
- ``wallet_getCapabilities`` scoped to the active chain tells whether the
  wallet can submit an atomic batch of calls.
- Bytecode presence at the address tells whether the account is a smart
  contract account or a plain key-pair account.

Detection never raises. Anything unknown resolves to the conservative
default, because assuming batch support when it is absent would hand the
wallet a request it silently drops.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Any, Dict, Optional

from ..recovery.errors import SwapErrorKind
from .models import AccountKind, SessionContext, WalletCapabilities, WalletContext

if TYPE_CHECKING:
    from ...providers.base import ChainProvider
    from ...providers.wallet import WalletClient


logger = logging.getLogger(__name__)

ATOMIC_SUPPORTED_STATUSES = frozenset({"supported", "ready"})


def parse_atomic_support(capabilities: Dict[str, Any], chain_id: int) -> bool:
    """Read batch support for ``chain_id`` out of a getCapabilities payload.

    Accepts the EIP-5792 v2 ``atomic.status`` field and the older
    ``atomicBatch.supported`` flag. Payloads are keyed by hex chain id; some
    wallets key by decimal string or return an unkeyed map.
    """
    if not isinstance(capabilities, dict):
        return False

    scoped = (
        capabilities.get(hex(chain_id))
        or capabilities.get(str(chain_id))
        or capabilities.get(chain_id)
    )
    if scoped is None:
        if any(k in capabilities for k in ("atomic", "atomicBatch")):
            scoped = capabilities
        else:
            return False
    if not isinstance(scoped, dict):
        return False

    atomic = scoped.get("atomic")
    if isinstance(atomic, dict) and atomic.get("status") in ATOMIC_SUPPORTED_STATUSES:
        return True

    legacy = scoped.get("atomicBatch")
    if isinstance(legacy, dict) and legacy.get("supported") is True:
        return True

    return False


def account_kind_from_code(code: Optional[str]) -> AccountKind:
    if code is None:
        return AccountKind.UNKNOWN
    body = code[2:] if code.startswith("0x") else code
    return AccountKind.CONTRACT if body else AccountKind.PLAIN


class CapabilityDetector:
    """Detects ``WalletCapabilities`` and caches them on the session."""

    def __init__(
        self,
        wallet_client: "WalletClient",
        chain_reader: "ChainProvider",
    ):
        self.wallet_client = wallet_client
        self.chain_reader = chain_reader

    async def detect(self, session: SessionContext) -> WalletCapabilities:
        """Cached capabilities for the session's wallet, detecting on first use."""
        cached = session.cached_capabilities
        if cached is not None:
            return cached

        capabilities = await self.detect_uncached(session.wallet)
        session.remember(capabilities)
        return capabilities

    async def detect_uncached(self, wallet: WalletContext) -> WalletCapabilities:
        atomic, kind = await asyncio.gather(
            self._detect_atomic(wallet),
            self._detect_account_kind(wallet),
        )
        capabilities = WalletCapabilities(atomic_batch_supported=atomic, account_kind=kind)
        logger.info(
            "Wallet capabilities for %s on chain %s: atomic=%s kind=%s",
            wallet.address,
            wallet.chain_id,
            capabilities.atomic_batch_supported,
            capabilities.account_kind.value,
        )
        return capabilities

    async def _detect_atomic(self, wallet: WalletContext) -> bool:
        try:
            payload = await self.wallet_client.get_capabilities(wallet.address, wallet.chain_id)
        except Exception as e:
            logger.warning(f"{SwapErrorKind.CAPABILITY_UNKNOWN.value}: capability query failed: {e}")
            return False
        return parse_atomic_support(payload, wallet.chain_id)

    async def _detect_account_kind(self, wallet: WalletContext) -> AccountKind:
        try:
            code = await self.chain_reader.get_code(wallet.address)
        except Exception as e:
            logger.warning(f"{SwapErrorKind.CAPABILITY_UNKNOWN.value}: bytecode lookup failed: {e}")
            return AccountKind.UNKNOWN
        return account_kind_from_code(code)
