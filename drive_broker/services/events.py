"""
Event Emitter - user lifecycle notifications to the owning platform.

Three operations:
- send_sync(event_name, data, function_id, user_id): ask listeners and wait
  for an answer; None means nobody acknowledged
- send_user_connected_event(function_id, user_id, event)
- send_user_disconnected_event(function_id, user_id)

The default EventDispatcher delivers to in-process listeners and, when
EVENTS_WEBHOOK_URL is set, POSTs every event to the platform webhook.

Usage:
    from drive_broker.services.events import EventDispatcher, USER_DISCONNECTED

    dispatcher = EventDispatcher()

    async def on_disconnecting(event):
        await cleanup(event["userId"])
        return {"ok": True}

    dispatcher.register(USER_DISCONNECTED, on_disconnecting)
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from drive_broker.core.config import settings


logger = logging.getLogger("drive_broker.services.events")

USER_CONNECTED = "userConnected"
USER_DISCONNECTED = "userDisconnected"

Listener = Callable[[Dict[str, Any]], Awaitable[Any]]


class EventEmitter(ABC):
    """Abstract base class for platform event delivery."""

    @abstractmethod
    async def send_sync(
        self,
        event_name: str,
        data: Optional[Dict[str, Any]],
        function_id: Optional[str],
        user_id: Optional[str],
    ) -> Optional[Any]:
        """Deliver an event and return the listener's acknowledgement (or None)."""
        pass

    @abstractmethod
    async def send_user_connected_event(
        self,
        function_id: Optional[str],
        user_id: str,
        event: Dict[str, Any],
    ) -> None:
        pass

    @abstractmethod
    async def send_user_disconnected_event(
        self,
        function_id: Optional[str],
        user_id: Optional[str],
    ) -> None:
        pass


class EventDispatcher(EventEmitter):
    """
    Default emitter: in-process listeners plus an optional webhook.

    With no listener and no webhook configured a synchronous event is
    acknowledged automatically (ack_when_unhandled), otherwise a broker
    without a platform behind it could never delete a credential.
    """

    def __init__(
        self,
        webhook_url: Optional[str] = None,
        ack_when_unhandled: bool = True,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.webhook_url = webhook_url if webhook_url is not None else settings.EVENTS_WEBHOOK_URL
        self.ack_when_unhandled = ack_when_unhandled
        self._transport = transport
        self._listeners: Dict[str, List[Listener]] = {}

    def register(self, event_name: str, listener: Listener) -> None:
        self._listeners.setdefault(event_name, []).append(listener)

    def unregister(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name, [])
        if listener in listeners:
            listeners.remove(listener)

    async def send_sync(self, event_name, data, function_id, user_id):
        payload = self._payload(event_name, data, function_id, user_id)

        ack = None
        for listener in self._listeners.get(event_name, []):
            response = await listener(payload)
            if response is not None and ack is None:
                ack = response

        if self.webhook_url:
            response = await self._post(payload, wait=True)
            if response is not None and ack is None:
                ack = response
        elif ack is None and not self._listeners.get(event_name) and self.ack_when_unhandled:
            ack = {"status": "ok"}

        return ack

    async def send_user_connected_event(self, function_id, user_id, event):
        await self._send_async(USER_CONNECTED, event, function_id, user_id)

    async def send_user_disconnected_event(self, function_id, user_id):
        await self._send_async(USER_DISCONNECTED, None, function_id, user_id)

    async def _send_async(self, event_name, data, function_id, user_id) -> None:
        payload = self._payload(event_name, data, function_id, user_id)
        logger.info(f"Event [{event_name}] for user [{user_id}]")

        for listener in self._listeners.get(event_name, []):
            try:
                await listener(payload)
            except Exception as e:
                logger.warning(f"Listener for [{event_name}] failed: {e}")

        if self.webhook_url:
            await self._post(payload, wait=False)

    async def _post(self, payload: Dict[str, Any], wait: bool) -> Optional[Any]:
        try:
            async with httpx.AsyncClient(
                transport=self._transport,
                timeout=settings.HTTP_TIMEOUT_SECONDS,
            ) as client:
                response = await client.post(
                    self.webhook_url,
                    json=payload,
                    params={"sync": "true"} if wait else None,
                )
        except httpx.HTTPError as e:
            logger.warning(f"Event delivery to webhook failed: {e}")
            return None

        if response.is_error:
            logger.warning(f"Webhook answered {response.status_code} for [{payload['event']}]")
            return None
        if not wait:
            return None
        try:
            return response.json() if response.content else None
        except ValueError:
            return response.text or None

    @staticmethod
    def _payload(event_name, data, function_id, user_id) -> Dict[str, Any]:
        return {
            "event": event_name,
            "data": data,
            "functionId": function_id,
            "userId": user_id,
        }
