"""
Wallet models: capabilities of the connected account and the per-session
context they are cached in.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Optional, Tuple

from ..swap.constants import normalize_address


class AccountKind(str, Enum):
    """How the connected account is implemented on-chain."""
    CONTRACT = "contract"   # Smart-contract account (bytecode deployed)
    PLAIN = "plain"         # Key-pair account (no bytecode)
    UNKNOWN = "unknown"     # Detection failed


@dataclass(frozen=True)
class WalletCapabilities:
    """What the wallet can do for the active chain."""
    atomic_batch_supported: bool = False
    account_kind: AccountKind = AccountKind.UNKNOWN

    @classmethod
    def conservative(cls) -> "WalletCapabilities":
        """Default when detection fails: never assume batch support."""
        return cls(atomic_batch_supported=False, account_kind=AccountKind.UNKNOWN)

    def to_dict(self) -> Dict[str, object]:
        return {
            "atomicBatchSupported": self.atomic_batch_supported,
            "accountKind": self.account_kind.value,
        }


@dataclass
class WalletContext:
    """The connected wallet a swap runs for."""
    address: str
    chain_id: int
    user_id: Optional[str] = None   # Notification recipient (e.g. Farcaster fid)

    def __post_init__(self) -> None:
        self.address = normalize_address(self.address)

    @property
    def key(self) -> Tuple[str, int]:
        return (self.address, self.chain_id)


@dataclass
class SessionContext:
    """
    Session-scoped mutable state, passed explicitly into each component.

    Holds the capability cache for exactly one (address, chain). Switching
    address or chain rebuilds the context instead of patching it.
    """
    wallet: WalletContext
    _capabilities: Optional[WalletCapabilities] = field(default=None, repr=False)

    @property
    def cached_capabilities(self) -> Optional[WalletCapabilities]:
        return self._capabilities

    def remember(self, capabilities: WalletCapabilities) -> None:
        self._capabilities = capabilities

    def matches(self, wallet: WalletContext) -> bool:
        return self.wallet.key == wallet.key

    def for_wallet(self, wallet: WalletContext) -> "SessionContext":
        """Same context when the wallet is unchanged, a fresh one otherwise."""
        if self.matches(wallet):
            if wallet.user_id and wallet.user_id != self.wallet.user_id:
                self.wallet.user_id = wallet.user_id
            return self
        return SessionContext(wallet=wallet)
