"""
Narrow interfaces of the collaborators the swap orchestrator consumes.

Balances/prices, swap history and notification delivery live outside the
orchestrator; it only depends on the contracts below.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional, Protocol
from urllib.parse import urlparse


class PriceFeed(Protocol):
    """Balances and USD prices. A missing price means unknown, never zero."""

    async def get_balances(self, address: str) -> Dict[str, int]:
        ...

    async def get_prices(self, tokens: List[str]) -> Dict[str, Optional[Decimal]]:
        ...


@dataclass
class SwapRecord:
    """Row written to swap history after a confirmed swap."""

    user_address: str
    input_tokens: List[str]
    output_token: str
    amounts: List[str]
    tx_hash: Optional[str]
    total_amount_usd: Optional[Decimal] = None
    fees_usd: Optional[Decimal] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        payload = asdict(self)
        payload["timestamp"] = self.timestamp.isoformat()
        for key in ("total_amount_usd", "fees_usd"):
            if payload[key] is not None:
                payload[key] = str(payload[key])
        return payload


class HistoryStore(Protocol):
    """Persists confirmed swaps. Failures never roll back the on-chain swap."""

    async def record_swap(self, record: SwapRecord) -> bool:
        ...


MAX_TITLE_LENGTH = 32
MAX_BODY_LENGTH = 128
MAX_TARGET_URL_LENGTH = 1024


class NotificationValidationError(ValueError):
    pass


@dataclass(frozen=True)
class NotificationPayload:
    title: str
    body: str
    target_url: str

    def validate(self, app_origin: str = "") -> "NotificationPayload":
        """Enforce the mini-app notification limits.

        The target must be relative or on ``app_origin``.
        """
        if len(self.title) > MAX_TITLE_LENGTH:
            raise NotificationValidationError(f"Title exceeds {MAX_TITLE_LENGTH} characters")
        if len(self.body) > MAX_BODY_LENGTH:
            raise NotificationValidationError(f"Body exceeds {MAX_BODY_LENGTH} characters")
        if len(self.target_url) > MAX_TARGET_URL_LENGTH:
            raise NotificationValidationError(f"targetURL exceeds {MAX_TARGET_URL_LENGTH} characters")

        parsed = urlparse(self.target_url)
        if parsed.scheme or parsed.netloc:
            origin = f"{parsed.scheme}://{parsed.netloc}"
            if not app_origin or origin != app_origin.rstrip("/"):
                raise NotificationValidationError(f"targetURL must stay on {app_origin or 'the app origin'}")
        return self

    def to_dict(self) -> Dict[str, str]:
        return {"title": self.title, "body": self.body, "targetURL": self.target_url}


class Notifier(Protocol):
    """Delivers a notification. Rate limited externally; drops are silent."""

    async def notify(self, user_id: str, payload: NotificationPayload) -> bool:
        ...


class NotificationTemplates:
    """Notification copy for terminal swap states."""

    @staticmethod
    def swap_success(token_count: int, output_symbol: str) -> NotificationPayload:
        plural = "s" if token_count > 1 else ""
        return NotificationPayload(
            title="Swap Completed",
            body=f"Successfully swapped {token_count} token{plural} to {output_symbol}"[:MAX_BODY_LENGTH],
            target_url="/",
        )

    @staticmethod
    def swap_failed(reason: Optional[str] = None) -> NotificationPayload:
        body = f"Your swap failed. {reason}" if reason else "Your swap transaction failed. Tap to try again."
        return NotificationPayload(
            title="Swap Failed",
            body=body[:MAX_BODY_LENGTH],
            target_url="/",
        )
