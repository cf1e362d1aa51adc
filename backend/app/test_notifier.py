from __future__ import annotations

import json
from unittest import IsolatedAsyncioTestCase

import httpx

from . import notifier as notifier_module
from .db import Settings
from .errors import NotificationDeliveryFailure
from .notifier import WinnerNotifier


class _RecordingHandler:
    def __init__(self, status_code: int = 200, exc: Exception | None = None):
        self.status_code = status_code
        self.exc = exc
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.exc is not None:
            raise self.exc
        return httpx.Response(self.status_code, text="nope" if self.status_code >= 400 else "ok")


def _notifier(handler: _RecordingHandler, **overrides) -> WinnerNotifier:
    values = {"WEBHOOK_URL": "https://ci.example.com/", "WEBHOOK_TOKEN": "secret"}
    values.update(overrides)
    return WinnerNotifier(Settings(_env_file=None, **values), transport=httpx.MockTransport(handler))


class WinnerNotifierTests(IsolatedAsyncioTestCase):
    async def test_posts_winner_to_webhook(self):
        handler = _RecordingHandler()

        await _notifier(handler).notify("session-1", "Ada")

        self.assertEqual(len(handler.requests), 1)
        request = handler.requests[0]
        self.assertEqual(request.method, "POST")
        self.assertEqual(request.url.path, "/generic-webhook-trigger/invoke")
        self.assertEqual(request.url.params["token"], "secret")
        self.assertEqual(json.loads(request.content), {"name": "Ada", "session_id": "session-1"})

    async def test_missing_winner_uses_sentinel(self):
        handler = _RecordingHandler()

        await _notifier(handler).notify("session-1", None)

        self.assertEqual(json.loads(handler.requests[0].content)["name"], notifier_module.NO_WINNER)

    async def test_http_error_status_raises_delivery_failure(self):
        handler = _RecordingHandler(status_code=500)

        with self.assertRaises(NotificationDeliveryFailure):
            await _notifier(handler).notify("session-1", "Ada")

    async def test_transport_error_raises_delivery_failure(self):
        handler = _RecordingHandler(exc=httpx.ConnectError("refused"))

        with self.assertRaises(NotificationDeliveryFailure):
            await _notifier(handler).notify("session-1", "Ada")

    async def test_unconfigured_webhook_is_skipped(self):
        handler = _RecordingHandler()

        await _notifier(handler, WEBHOOK_URL=None).notify("session-1", "Ada")

        self.assertEqual(handler.requests, [])

    async def test_fire_and_forget_logs_failures(self):
        handler = _RecordingHandler(status_code=502)
        winner_notifier = _notifier(handler)

        with self.assertLogs(notifier_module.logger, level="WARNING") as logs:
            task = winner_notifier.fire_and_forget("session-1", "Ada")
            await task

        self.assertIsNone(task.exception())
        self.assertEqual(len(handler.requests), 1)
        self.assertIn("session-1", logs.output[0])
