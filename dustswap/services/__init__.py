"""Service layer helpers"""

from .collaborators import (
    HistoryStore,
    NotificationPayload,
    NotificationTemplates,
    NotificationValidationError,
    Notifier,
    PriceFeed,
    SwapRecord,
)

__all__ = [
    "HistoryStore",
    "NotificationPayload",
    "NotificationTemplates",
    "NotificationValidationError",
    "Notifier",
    "PriceFeed",
    "SwapRecord",
]
