"""
Ride event fan-out.

The dispatch core only talks to a ``DispatchNotifier``. The default
implementation publishes onto an in-process ``NotificationRegistry`` whose
lifetime is the application's; transports (SSE, websockets, push) subscribe
to its channels. Delivery is best-effort and at-most-once: a subscriber
whose queue is full misses the event, and no ordering is promised.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Set

logger = logging.getLogger(__name__)


@dataclass
class DispatchEvent:
    """One ride event as delivered to drivers and riders."""
    type: str
    ride_id: str
    status: Optional[str] = None
    message: str = ""
    data: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        payload = {"type": self.type, "ride_id": self.ride_id, "status": self.status, **self.data}
        if self.message:
            payload["message"] = self.message
        return payload


class DispatchNotifier(Protocol):
    async def notify_driver(self, driver_id: str, event: DispatchEvent) -> None: ...

    async def notify_rider(self, rider_id: str, event: DispatchEvent) -> None: ...


def driver_channel(driver_id: str) -> str:
    return f"driver_{driver_id}"


def rider_channel(rider_id: str) -> str:
    return f"rider_{rider_id}"


class Subscription:
    def __init__(self, channel: str, max_queue_size: int):
        self.channel = channel
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue_size)
        self.dropped = 0

    async def get(self, timeout: Optional[float] = None) -> Dict[str, Any]:
        return await asyncio.wait_for(self.queue.get(), timeout)


class NotificationRegistry:
    """Channel name -> live subscriptions. Created once per application."""

    def __init__(self, max_queue_size: int = 100):
        self.max_queue_size = max_queue_size
        self._channels: Dict[str, Set[Subscription]] = {}

    def subscribe(self, channel: str) -> Subscription:
        subscription = Subscription(channel, self.max_queue_size)
        self._channels.setdefault(channel, set()).add(subscription)
        logger.debug("Subscribed to %s (%d listeners)", channel, len(self._channels[channel]))
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        listeners = self._channels.get(subscription.channel)
        if not listeners:
            return
        listeners.discard(subscription)
        if not listeners:
            del self._channels[subscription.channel]

    @asynccontextmanager
    async def listen(self, channel: str) -> AsyncIterator[Subscription]:
        """Subscribe for the duration of a connection; always cleans up."""
        subscription = self.subscribe(channel)
        try:
            yield subscription
        finally:
            self.unsubscribe(subscription)

    def publish(self, channel: str, payload: Dict[str, Any]) -> int:
        """Enqueue ``payload`` for every listener; returns how many received it."""
        delivered = 0
        for subscription in list(self._channels.get(channel, ())):
            try:
                subscription.queue.put_nowait(payload)
                delivered += 1
            except asyncio.QueueFull:
                subscription.dropped += 1
                logger.warning("Dropped %s event on %s: listener queue full", payload.get("type"), channel)
        return delivered

    def subscriber_count(self, channel: str) -> int:
        return len(self._channels.get(channel, ()))

    def channels(self) -> List[str]:
        return list(self._channels)

    def close(self) -> None:
        self._channels.clear()


class RegistryNotifier:
    """DispatchNotifier backed by a NotificationRegistry."""

    def __init__(self, registry: NotificationRegistry):
        self.registry = registry

    async def notify_driver(self, driver_id: str, event: DispatchEvent) -> None:
        payload = {**event.to_dict(), "driver_id": driver_id}
        delivered = self.registry.publish(driver_channel(driver_id), payload)
        logger.debug("-> driver_%s: %s (%d listeners)", driver_id, event.type, delivered)

    async def notify_rider(self, rider_id: str, event: DispatchEvent) -> None:
        delivered = self.registry.publish(rider_channel(rider_id), event.to_dict())
        logger.debug("-> rider_%s: %s (%d listeners)", rider_id, event.type, delivered)
