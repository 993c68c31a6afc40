"""
Tests for the platform collaborators: event dispatcher and file store.

These tests verify:
- Synchronous acknowledgement from listeners and the webhook
- Fire-and-forget notifications never failing the caller
- Local file storage and path safety
"""

import io
import json

import httpx
import pytest

from drive_broker.environments.base import ArgumentError
from drive_broker.services.events import USER_CONNECTED, USER_DISCONNECTED, EventDispatcher


WEBHOOK = "https://platform.test/events"


class TestEventDispatcher:
    """Tests for EventDispatcher."""

    @pytest.mark.asyncio
    async def test_unhandled_sync_event_is_acknowledged(self):
        dispatcher = EventDispatcher(webhook_url="")

        assert await dispatcher.send_sync(USER_DISCONNECTED, None, "f-1", "user-1") == {"status": "ok"}

    @pytest.mark.asyncio
    async def test_unhandled_sync_event_without_auto_ack(self):
        dispatcher = EventDispatcher(webhook_url="", ack_when_unhandled=False)

        assert await dispatcher.send_sync(USER_DISCONNECTED, None, "f-1", "user-1") is None

    @pytest.mark.asyncio
    async def test_listener_answer_is_the_ack(self):
        dispatcher = EventDispatcher(webhook_url="")
        received = []

        async def listener(event):
            received.append(event)
            return None

        dispatcher.register(USER_DISCONNECTED, listener)

        ack = await dispatcher.send_sync(USER_DISCONNECTED, None, "f-1", "user-1")

        assert ack is None
        assert received == [{"event": USER_DISCONNECTED, "data": None, "functionId": "f-1", "userId": "user-1"}]

    @pytest.mark.asyncio
    async def test_webhook_ack(self):
        posted = []

        def handler(request):
            posted.append(json.loads(request.content))
            return httpx.Response(200, json={"removed": True})

        dispatcher = EventDispatcher(webhook_url=WEBHOOK, transport=httpx.MockTransport(handler))

        ack = await dispatcher.send_sync(USER_DISCONNECTED, None, "f-1", "user-1")

        assert ack == {"removed": True}
        assert posted[0]["userId"] == "user-1"

    @pytest.mark.asyncio
    async def test_webhook_failure_is_no_ack(self):
        dispatcher = EventDispatcher(
            webhook_url=WEBHOOK,
            transport=httpx.MockTransport(lambda request: httpx.Response(503)),
        )

        assert await dispatcher.send_sync(USER_DISCONNECTED, None, "f-1", "user-1") is None

    @pytest.mark.asyncio
    async def test_notification_survives_failing_listener(self):
        dispatcher = EventDispatcher(webhook_url="")

        async def broken(event):
            raise RuntimeError("boom")

        dispatcher.register(USER_CONNECTED, broken)

        await dispatcher.send_user_connected_event("f-1", "user-1", {"userId": "user-1"})

    @pytest.mark.asyncio
    async def test_unregister(self):
        dispatcher = EventDispatcher(webhook_url="", ack_when_unhandled=False)

        async def listener(event):
            return {"ok": True}

        dispatcher.register(USER_DISCONNECTED, listener)
        dispatcher.unregister(USER_DISCONNECTED, listener)

        assert await dispatcher.send_sync(USER_DISCONNECTED, None, None, "user-1") is None


class TestLocalFileStore:
    """Tests for LocalFileStore."""

    def test_upload_then_download(self, files):
        stored = files.upload("notes.txt", io.BytesIO(b"hello"), "text/plain")

        assert stored["fileName"] == "notes.txt"
        assert stored["contentType"] == "text/plain"
        assert files.download(stored["fileId"]).read_bytes() == b"hello"
        assert files.metadata(stored["fileId"]) == stored

    def test_missing_file(self, files):
        with pytest.raises(ArgumentError):
            files.download("0123456789abcdef")

    def test_path_traversal_is_rejected(self, files):
        with pytest.raises(ArgumentError):
            files.download("../secrets")

    def test_dotted_ids_keep_separate_metadata(self, files):
        files.root.mkdir(parents=True, exist_ok=True)
        (files.root / "report.v1.json").write_text(json.dumps({"fileId": "report.v1"}))
        (files.root / "report.v2.json").write_text(json.dumps({"fileId": "report.v2"}))

        assert files.metadata("report.v1") == {"fileId": "report.v1"}
        assert files.metadata("report.v2") == {"fileId": "report.v2"}
