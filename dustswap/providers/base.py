from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional


class Provider(ABC):
    """Base provider interface"""

    name: str
    timeout_s: int = 10

    @abstractmethod
    async def ready(self) -> bool:
        """Check if provider is ready to serve requests"""
        pass

    @abstractmethod
    async def health_check(self) -> Dict[str, Any]:
        """Return provider health status"""
        pass


class SwapQuoteProvider(Provider):
    """Aggregator that quotes a single sell-token -> buy-token swap"""

    @abstractmethod
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
        """Firm quote including the transaction to execute"""
        pass


class ChainProvider(Provider):
    """Read-only blockchain accessor"""

    @abstractmethod
    async def get_allowance(self, token_address: str, owner: str, spender: str) -> int:
        """ERC-20 allowance of ``spender`` over ``owner``'s tokens"""
        pass

    @abstractmethod
    async def get_code(self, address: str) -> str:
        """Deployed bytecode at ``address`` ("0x" when none)"""
        pass

    @abstractmethod
    async def get_transaction_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Receipt for ``tx_hash`` or None while pending"""
        pass

    @abstractmethod
    async def get_logs(self, log_filter: Dict[str, Any]) -> List[Dict[str, Any]]:
        """Logs matching an eth_getLogs filter"""
        pass

    @abstractmethod
    async def get_decimals(self, token_address: str) -> int:
        """ERC-20 ``decimals()``"""
        pass
