"""Webhook-backed notifier."""

from __future__ import annotations

import logging
import time
from typing import Dict, Optional

import httpx

from ..config import settings
from ..services.collaborators import NotificationPayload, NotificationValidationError


logger = logging.getLogger(__name__)


class WebhookNotifier:
    """
    Posts ``{fid, title, body, targetURL}`` to the notification webhook.

    Keeps a per-user minimum interval as a local guard; the delivery service
    enforces its own limits. Never raises: drops and errors return False.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        *,
        min_interval_seconds: Optional[int] = None,
        app_origin: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.notification_webhook_url
        self.min_interval_seconds = (
            settings.notification_min_interval_seconds
            if min_interval_seconds is None
            else min_interval_seconds
        )
        self.app_origin = settings.app_origin if app_origin is None else app_origin
        self._transport = transport
        self._last_sent: Dict[str, float] = {}

    async def notify(self, user_id: str, payload: NotificationPayload) -> bool:
        if not self.webhook_url:
            logger.debug("Notification webhook not configured; dropping notification")
            return False

        try:
            payload.validate(self.app_origin)
        except NotificationValidationError as e:
            logger.error(f"Invalid notification: {e}")
            return False

        now = time.monotonic()
        last = self._last_sent.get(user_id)
        if last is not None and now - last < self.min_interval_seconds:
            logger.warning("Notification rate limit: too soon after last notification")
            return False

        try:
            async with httpx.AsyncClient(timeout=settings.request_timeout_seconds, transport=self._transport) as client:
                response = await client.post(self.webhook_url, json={"fid": user_id, **payload.to_dict()})
        except httpx.HTTPError as e:
            logger.warning(f"Error sending notification: {e}")
            return False

        if response.is_error:
            logger.warning(f"Failed to send notification ({response.status_code}): {response.text[:200]}")
            return False

        self._last_sent[user_id] = now
        return True
