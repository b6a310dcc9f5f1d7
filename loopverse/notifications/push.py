"""
Push notification services: token registration and listener dispatch.

Intent:
    Implement `NotificationServiceProtocol` for two setups:
    - `NullPushService` when no registration endpoint is configured (dev/tests)
    - `HttpPushService` which registers the device with a push backend over HTTP

Behavior:
    Both services keep two listener registries ("received" and "tapped").
    `deliver()` and `tap()` dispatch an incoming notification payload of the
    shape `{"title", "body", "data"}` to the registered listeners.
"""
from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional
import logging

import httpx

from loopverse.identity_access.ports import NotificationError, NotificationListener


_log = logging.getLogger("loopverse.notifications")


class _ListenerSubscription:
    def __init__(self, remove: Callable[[], None]):
        self._remove = remove
        self._active = True

    def unsubscribe(self) -> None:
        if self._active:
            self._active = False
            self._remove()


class ListenerRegistry:
    """Ordered set of listeners; a failing listener does not stop dispatch."""

    def __init__(self, name: str):
        self._name = name
        self._listeners: List[NotificationListener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def add(self, listener: NotificationListener) -> _ListenerSubscription:
        self._listeners.append(listener)

        def _remove() -> None:
            try:
                self._listeners.remove(listener)
            except ValueError:
                pass

        return _ListenerSubscription(_remove)

    def emit(self, payload: Dict[str, Any]) -> int:
        delivered = 0
        for listener in list(self._listeners):
            try:
                listener(payload)
                delivered += 1
            except Exception as exc:
                _log.warning("%s listener failed: %s", self._name, type(exc).__name__)
        return delivered


class _ListenerMixin:
    def _init_registries(self) -> None:
        self.received = ListenerRegistry("received")
        self.responses = ListenerRegistry("response")

    def add_notification_received_listener(self, listener: NotificationListener) -> _ListenerSubscription:
        return self.received.add(listener)

    def add_notification_response_received_listener(self, listener: NotificationListener) -> _ListenerSubscription:
        return self.responses.add(listener)

    def deliver(self, notification: Dict[str, Any]) -> int:
        """Dispatch a notification that arrived while the app is open."""
        return self.received.emit(notification)

    def tap(self, response: Dict[str, Any]) -> int:
        """Dispatch a notification the user tapped."""
        return self.responses.emit(response)


class NullPushService(_ListenerMixin):
    """No registration backend: never yields a token, listeners still work."""

    def __init__(self) -> None:
        self._init_registries()

    async def register_for_push_notifications(self) -> Optional[str]:
        return None


class HttpPushService(_ListenerMixin):
    """Register this device with a push backend and return its token.

    Parameters:
        registration_url: Endpoint accepting `POST {"device_id", "platform"}`
            and answering `{"token": "..."}`.
        device_id: Stable identifier of this installation.
        timeout: Request timeout in seconds.
        transport: Optional httpx transport (tests use `httpx.MockTransport`).
    """

    def __init__(
        self,
        registration_url: str,
        device_id: str,
        *,
        platform: str = "web",
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._url = registration_url
        self._device_id = device_id
        self._platform = platform
        self._timeout = timeout
        self._transport = transport
        self._init_registries()

    async def register_for_push_notifications(self) -> Optional[str]:
        async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
            resp = await client.post(self._url, json={"device_id": self._device_id, "platform": self._platform})
        if resp.status_code >= 300:
            raise NotificationError(f"push registration failed: status={resp.status_code}")
        try:
            data = resp.json()
        except ValueError:
            data = {}
        token = data.get("token") if isinstance(data, dict) else None
        return str(token) if token else None


__all__ = ["ListenerRegistry", "NullPushService", "HttpPushService"]
