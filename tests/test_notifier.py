"""
Tests for the blocking and beacon notifiers.
"""

import threading
from unittest.mock import patch

import httpx
import pytest

from widget_runtime.services.notifier import BeaconNotifier, BlockingNotifier

URL = "http://widget.test/api/chat/conversations/conv-1/end"


class TestBlockingNotifier:

    @pytest.mark.asyncio
    async def test_delivered(self, fake_api):
        fake_api.reply("POST", "/api/chat/conversations/conv-1/end", payload={})
        notifier = BlockingNotifier(timeout=1.0, transport=httpx.MockTransport(fake_api))

        assert await notifier.notify(URL, {}) is True
        assert fake_api.requests[0].method == "POST"

    @pytest.mark.asyncio
    async def test_error_status(self, fake_api):
        fake_api.reply("POST", "/api/chat/conversations/conv-1/end", status_code=500)
        notifier = BlockingNotifier(timeout=1.0, transport=httpx.MockTransport(fake_api))

        assert await notifier.notify(URL, {}) is False

    @pytest.mark.asyncio
    async def test_transport_error(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = BlockingNotifier(timeout=1.0, transport=httpx.MockTransport(refuse))

        assert await notifier.notify(URL, {}) is False


class TestBeaconNotifier:

    def test_send_returns_before_delivery(self, fake_api):
        fake_api.reply("POST", "/api/chat/conversations/conv-1/end", payload={})
        notifier = BeaconNotifier(timeout=1.0, transport=httpx.MockTransport(fake_api))

        assert notifier.send(URL, {}) is True
        notifier.flush(timeout=2.0)

        assert len(fake_api.requests) == 1
        assert fake_api.bodies("/api/chat/conversations/conv-1/end") == [{}]

    def test_delivers_inline_when_threads_unavailable(self, fake_api):
        fake_api.reply("POST", "/api/chat/conversations/conv-1/end", payload={})
        notifier = BeaconNotifier(timeout=1.0, transport=httpx.MockTransport(fake_api))

        with patch.object(threading.Thread, "start", side_effect=RuntimeError("can't create new thread at interpreter shutdown")):
            assert notifier.send(URL, {}) is True

        assert len(fake_api.requests) == 1
        assert notifier._threads == []

    def test_delivery_failure_is_not_raised(self):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        notifier = BeaconNotifier(timeout=1.0, transport=httpx.MockTransport(refuse))

        assert notifier.send(URL, {}) is True
        notifier.flush(timeout=2.0)

    @pytest.mark.asyncio
    async def test_notify_queues(self, fake_api):
        notifier = BeaconNotifier(timeout=1.0, transport=httpx.MockTransport(fake_api))

        assert await notifier.notify(URL, {}) is True
        notifier.flush(timeout=2.0)
