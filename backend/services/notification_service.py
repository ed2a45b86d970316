"""
Real-time notification dispatch.

ConnectionRegistry: the addressed-channel transport. Tracks live delivery
targets (any object with an async send_json(dict), typically a Starlette
WebSocket) per user, the dispatcher pool, and per-order subscriber sets.
One registry is created per application and kept on app.state.

NotificationDispatcher: routes typed events to their audiences (see
domain.events.DISPATCH_TABLE). Sends are fire-and-forget background tasks:
a missing recipient means the event is dropped, a failed send is logged and
swallowed. Nothing here can fail or delay a committed transition.
"""

import asyncio
import logging
from collections import defaultdict
from typing import Any, Iterable, Protocol

from config import settings
from domain.events import Audience, OrderEvent

logger = logging.getLogger(__name__)


class DeliveryTarget(Protocol):
    async def send_json(self, data: Any) -> None: ...


class RealtimeTransport(Protocol):
    async def send_to_user(self, user_id: str, event_name: str, payload: dict) -> int: ...

    async def broadcast_to_dispatchers(self, event_name: str, payload: dict) -> int: ...

    async def send_to_order_channel(self, order_id: str, event_name: str, payload: dict) -> int: ...


class ConnectionRegistry:
    """Maps user ids, the dispatcher pool and order channels to live targets."""

    def __init__(self, send_timeout: float | None = None):
        self._send_timeout = send_timeout or settings.notification_send_timeout_seconds
        self._users: dict[str, set[DeliveryTarget]] = defaultdict(set)
        self._dispatchers: set[DeliveryTarget] = set()
        self._orders: dict[str, set[DeliveryTarget]] = defaultdict(set)

    # ── Connection bookkeeping ──────────────────────────────────────

    def connect(self, user_id: str, target: DeliveryTarget, *, dispatcher: bool = False) -> None:
        self._users[user_id].add(target)
        if dispatcher:
            self._dispatchers.add(target)
        logger.debug(f"Realtime target connected for user {user_id} (dispatcher={dispatcher})")

    def disconnect(self, target: DeliveryTarget) -> None:
        """Forget a target everywhere it was registered."""
        self._dispatchers.discard(target)
        for channels in (self._users, self._orders):
            for key in [k for k, targets in channels.items() if target in targets]:
                channels[key].discard(target)
                if not channels[key]:
                    del channels[key]

    def join_order(self, order_id: str, target: DeliveryTarget) -> None:
        self._orders[order_id].add(target)

    def leave_order(self, order_id: str, target: DeliveryTarget) -> None:
        targets = self._orders.get(order_id)
        if targets is None:
            return
        targets.discard(target)
        if not targets:
            del self._orders[order_id]

    def is_connected(self, user_id: str) -> bool:
        return bool(self._users.get(user_id))

    @property
    def dispatcher_count(self) -> int:
        return len(self._dispatchers)

    # ── Transport interface ─────────────────────────────────────────

    async def send_to_user(self, user_id: str, event_name: str, payload: dict) -> int:
        return await self._deliver(self._users.get(user_id, ()), event_name, payload)

    async def broadcast_to_dispatchers(self, event_name: str, payload: dict) -> int:
        return await self._deliver(self._dispatchers, event_name, payload)

    async def send_to_order_channel(self, order_id: str, event_name: str, payload: dict) -> int:
        return await self._deliver(self._orders.get(order_id, ()), event_name, payload)

    async def _deliver(self, targets: Iterable[DeliveryTarget], event_name: str, payload: dict) -> int:
        """Send to every target; returns how many sends succeeded."""
        message = {"event": event_name, "data": payload}
        delivered = 0
        # Snapshot: disconnect() may mutate the sets while we await.
        for target in list(targets):
            try:
                await asyncio.wait_for(target.send_json(message), timeout=self._send_timeout)
                delivered += 1
            except Exception as e:
                logger.warning(f"Realtime send of {event_name} failed, dropping target: {e!r}")
                self.disconnect(target)
        return delivered


class NotificationDispatcher:
    """Routes events to audiences over a RealtimeTransport, in the background."""

    def __init__(self, transport: RealtimeTransport):
        self._transport = transport
        self._tasks: set[asyncio.Task] = set()

    def publish(self, events: Iterable[OrderEvent]) -> None:
        """Schedule delivery and return immediately. Call only after the transition is committed."""
        for event in events:
            task = asyncio.create_task(self.dispatch(event))
            self._tasks.add(task)
            task.add_done_callback(self._tasks.discard)

    async def dispatch(self, event: OrderEvent) -> None:
        payload = event.payload()
        for audience in event.audiences:
            try:
                if audience == Audience.USER:
                    if not event.recipient_id:
                        logger.debug(f"{event.name} for order {event.order_id} has no recipient; dropped")
                        continue
                    sent = await self._transport.send_to_user(event.recipient_id, event.name, payload)
                elif audience == Audience.DISPATCHERS:
                    sent = await self._transport.broadcast_to_dispatchers(event.name, payload)
                else:
                    sent = await self._transport.send_to_order_channel(event.order_id, event.name, payload)
            except Exception as e:
                logger.warning(f"Notification {event.name} to {audience.value} failed: {e!r}")
                continue
            if not sent:
                logger.debug(f"{event.name} for order {event.order_id}: no {audience.value} listener connected")

    async def drain(self) -> None:
        """Wait for every scheduled send (tests, shutdown)."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)
