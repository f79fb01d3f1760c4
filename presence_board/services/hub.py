from __future__ import annotations

import asyncio
import json
import logging
import uuid
from dataclasses import dataclass, field
from typing import Any, Literal

from starlette.websockets import WebSocket, WebSocketState

STATUS_UPDATE = "STATUS_UPDATE"
ATTENDANCE_UPDATE = "ATTENDANCE_UPDATE"


def status_update_event(employee_id: int, status: dict[str, Any]) -> dict[str, Any]:
    return {"type": STATUS_UPDATE, "data": {"employeeId": employee_id, "status": status}}


def attendance_update_event(kind: Literal["clock-in", "clock-out"], attendance: dict[str, Any]) -> dict[str, Any]:
    return {"type": ATTENDANCE_UPDATE, "data": {"type": kind, "attendance": attendance}}


@dataclass(eq=False)
class Subscriber:
    websocket: WebSocket
    id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def is_open(self) -> bool:
        return (
            self.websocket.client_state == WebSocketState.CONNECTED
            and self.websocket.application_state == WebSocketState.CONNECTED
        )


class BroadcastHub:
    """In-process fan-out of change events to connected WebSocket clients.

    Delivery is best-effort: no replay, no acknowledgement. A client that was
    not connected when an event went out has to re-fetch full state.
    """

    def __init__(self, send_timeout: float = 5.0) -> None:
        self.send_timeout = send_timeout
        self._subscribers: set[Subscriber] = set()
        self._lock = asyncio.Lock()
        self._publish_lock = asyncio.Lock()
        self._log = logging.getLogger("uvicorn.error")

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    async def subscribe(self, websocket: WebSocket) -> Subscriber:
        subscriber = Subscriber(websocket)
        # registered before the handshake completes; publish skips it until open
        async with self._lock:
            self._subscribers.add(subscriber)
        try:
            await websocket.accept()
        except Exception:
            await self.unsubscribe(subscriber)
            raise
        self._log.info("Subscriber %s connected (%d open)", subscriber.id, len(self._subscribers))
        return subscriber

    async def unsubscribe(self, subscriber: Subscriber) -> None:
        async with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.discard(subscriber)
        self._log.info("Subscriber %s disconnected (%d open)", subscriber.id, len(self._subscribers))

    async def publish(self, event: dict[str, Any]) -> int:
        """Send event to every open subscriber; returns the number of deliveries."""
        message = json.dumps(event, ensure_ascii=False)
        delivered = 0
        async with self._publish_lock:
            async with self._lock:
                targets = list(self._subscribers)
            for subscriber in targets:
                if not subscriber.is_open:
                    continue
                try:
                    await asyncio.wait_for(subscriber.websocket.send_text(message), self.send_timeout)
                except asyncio.TimeoutError:
                    self._log.warning(
                        "Skipped %s for subscriber %s: send blocked > %.1fs", event.get("type"), subscriber.id, self.send_timeout
                    )
                    continue
                except Exception:  # noqa: BLE001
                    # removal happens on the subscriber's own disconnect
                    self._log.warning("Dropped %s for subscriber %s", event.get("type"), subscriber.id, exc_info=True)
                    continue
                delivered += 1
        self._log.debug("Published %s to %d/%d subscribers", event.get("type"), delivered, len(targets))
        return delivered

    async def close(self) -> None:
        async with self._lock:
            targets = list(self._subscribers)
            self._subscribers.clear()
        for subscriber in targets:
            if not subscriber.is_open:
                continue
            try:
                await subscriber.websocket.close(code=1001)
            except Exception:  # noqa: BLE001
                self._log.debug("Subscriber %s already gone at shutdown", subscriber.id)
        if targets:
            self._log.info("Broadcast hub closed %d subscribers", len(targets))
