"""
Wallet Module

Connected-wallet context and capability detection:
- WalletContext: address + chain a swap runs for
- SessionContext: session-scoped capability cache, rebuilt on address/chain change
- CapabilityDetector: atomic batch support and account kind

Usage:
    from dustswap.core.wallet import CapabilityDetector, SessionContext, WalletContext

    session = SessionContext(wallet=WalletContext(address="0x...", chain_id=8453))
    capabilities = await detector.detect(session)
"""

from .capabilities import (
    CapabilityDetector,
    account_kind_from_code,
    parse_atomic_support,
)
from .models import (
    AccountKind,
    SessionContext,
    WalletCapabilities,
    WalletContext,
)

__all__ = [
    "AccountKind",
    "CapabilityDetector",
    "SessionContext",
    "WalletCapabilities",
    "WalletContext",
    "account_kind_from_code",
    "parse_atomic_support",
]
