import json
import logging
import unittest
from unittest.mock import AsyncMock, Mock

import respx
from httpx import ConnectError, Response

from alarm_scheduler_engine import errors
from alarm_scheduler_engine.notifier import NotifierGateway, WebhookNotifier


class TestWebhookNotifier(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.webhook_url = "https://example.org/api/notify"
        self.mock_logger = Mock(logging.Logger)
        self.notifier = WebhookNotifier(self.webhook_url, logger=self.mock_logger)

    async def test_display_success(self):
        with respx.mock as respx_mock:
            route = respx_mock.post(self.webhook_url).mock(return_value=Response(200, json={"message": "success"}))

            await self.notifier.display("Wake up", "Alarm")

            self.assertTrue(route.called)
            payload = json.loads(route.calls.last.request.content)
            self.assertEqual(payload["title"], "Wake up")
            self.assertEqual(payload["body"], "Alarm")
            self.assertIn("sent_at", payload)

    async def test_display_http_error(self):
        with respx.mock as respx_mock:
            respx_mock.post(self.webhook_url).mock(return_value=Response(500, json={"error": "internal server error"}))

            with self.assertRaises(errors.DeliveryError) as ctx:
                await self.notifier.display("Wake up", "Alarm")

            self.assertIn("500", str(ctx.exception))

    async def test_display_transport_error(self):
        with respx.mock as respx_mock:
            respx_mock.post(self.webhook_url).mock(side_effect=ConnectError("connection refused"))

            with self.assertRaises(errors.DeliveryError):
                await self.notifier.display("Wake up", "Alarm")

    async def test_permission_follows_configuration(self):
        self.assertTrue(await self.notifier.is_granted())
        self.assertTrue(await self.notifier.request())

        unconfigured = WebhookNotifier(None, logger=self.mock_logger)
        self.assertFalse(await unconfigured.is_granted())
        self.assertFalse(await unconfigured.request())
        with self.assertRaises(errors.DeliveryError):
            await unconfigured.display("Wake up", "Alarm")


class TestNotifierGateway(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.mock_notifier = AsyncMock()
        self.mock_logger = Mock(logging.Logger)
        self.gateway = NotifierGateway(self.mock_notifier, logger=self.mock_logger)

    async def test_deliver_passes_through(self):
        await self.gateway.deliver("Wake up", "Alarm")

        self.mock_notifier.display.assert_awaited_once_with("Wake up", "Alarm")

    async def test_deliver_keeps_delivery_error(self):
        self.mock_notifier.display.side_effect = errors.DeliveryError("busy")

        with self.assertRaises(errors.DeliveryError) as ctx:
            await self.gateway.deliver("Wake up", "Alarm")

        self.assertEqual(str(ctx.exception), "busy")

    async def test_deliver_wraps_unexpected_errors(self):
        self.mock_notifier.display.side_effect = OSError("display unavailable")

        with self.assertRaises(errors.DeliveryError) as ctx:
            await self.gateway.deliver("Wake up", "Alarm")

        self.assertIsInstance(ctx.exception.__cause__, OSError)

    async def test_ensure_permission_granted(self):
        self.mock_notifier.is_granted.return_value = True

        await self.gateway.ensure_permission()

        self.mock_notifier.request.assert_not_awaited()

    async def test_ensure_permission_requests(self):
        self.mock_notifier.is_granted.return_value = False
        self.mock_notifier.request.return_value = True

        await self.gateway.ensure_permission()

        self.mock_notifier.request.assert_awaited_once()

    async def test_ensure_permission_denied(self):
        self.mock_notifier.is_granted.return_value = False
        self.mock_notifier.request.return_value = False

        with self.assertRaises(errors.PermissionDenied):
            await self.gateway.ensure_permission()
