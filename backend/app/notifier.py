from __future__ import annotations

import asyncio
import logging
from typing import Optional, Set

import httpx

from .db import Settings, get_settings
from .errors import NotificationDeliveryFailure

logger = logging.getLogger(__name__)

NO_WINNER = "Unknown"
WEBHOOK_PATH = "/generic-webhook-trigger/invoke"


class WinnerNotifier:
    """One-shot outbound call to the automation webhook when a quiz ends."""

    def __init__(self, config: Optional[Settings] = None, transport: Optional[httpx.AsyncBaseTransport] = None):
        self._config = config or get_settings()
        self._transport = transport
        self._pending: Set[asyncio.Task] = set()

    @property
    def enabled(self) -> bool:
        return bool(self._config.WEBHOOK_URL)

    def _url(self) -> str:
        return f"{self._config.WEBHOOK_URL.rstrip('/')}{WEBHOOK_PATH}"

    async def notify(self, session_id: str, winner_name: str | None) -> None:
        """Deliver the winner; raises ``NotificationDeliveryFailure`` on any transport or HTTP error."""

        if not self.enabled:
            logger.info("Webhook not configured; skipping winner notification for session %s", session_id)
            return

        params = {"token": self._config.WEBHOOK_TOKEN} if self._config.WEBHOOK_TOKEN else None
        body = {"name": winner_name or NO_WINNER, "session_id": session_id}
        try:
            async with httpx.AsyncClient(
                timeout=self._config.WEBHOOK_TIMEOUT_SEC, transport=self._transport
            ) as client:
                response = await client.post(self._url(), params=params, json=body)
                response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise NotificationDeliveryFailure(
                f"Webhook answered {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise NotificationDeliveryFailure(f"Webhook request failed: {exc}") from exc

        logger.info("Winner notification delivered for session %s (%s)", session_id, body["name"])

    async def _deliver(self, session_id: str, winner_name: str | None) -> None:
        try:
            await self.notify(session_id, winner_name)
        except NotificationDeliveryFailure as exc:
            logger.warning("Error while triggering winner webhook for session %s: %s", session_id, exc)

    def fire_and_forget(self, session_id: str, winner_name: str | None) -> asyncio.Task:
        task = asyncio.create_task(self._deliver(session_id, winner_name), name=f"winner-webhook:{session_id}")
        # keep a reference until done so the task is not garbage collected
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task


notifier = WinnerNotifier()
