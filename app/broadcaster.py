"""
Live fan-out of ingested messages to stream subscribers.

One Broadcaster is created at application startup and passed to whoever
needs it (the ingestion route and the /stream route). Every subscriber gets
its own bounded asyncio.Queue:

  publish() -> put_nowait() into each subscriber queue -> SSE generator drains it

Publishing never waits on a subscriber. A full queue drops that event for
that subscriber only, so delivered events keep publish order.
publish() and the stream generators run on the application's event loop.
"""

import asyncio
import itertools
import json
import logging
import threading
from typing import AsyncGenerator, Dict, List, Optional

from app.metrics import record_dropped_delivery, set_subscriber_count
from app.schemas import StoredMessage

logger = logging.getLogger(__name__)

CONNECTED_EVENT = {"type": "connected"}


def message_event(message: StoredMessage) -> dict:
    """Build the stream event announcing a stored message."""
    return {"type": "message", "data": message.model_dump(mode="json", by_alias=True)}


def format_sse(event: dict) -> Dict[str, str]:
    """Frame an event for sse-starlette as an unnamed ``data:`` event."""
    return {"data": json.dumps(event)}


class Subscription:
    """Handle for one live subscriber, held open for the connection's lifetime."""

    def __init__(self, subscription_id: int, max_queue_size: int):
        self.id = subscription_id
        self.closed = False
        self._queue: "asyncio.Queue[dict]" = asyncio.Queue(maxsize=max_queue_size)

    def deliver(self, event: dict) -> bool:
        """Queue an event without waiting. Returns False if it was dropped."""
        if self.closed:
            return False
        try:
            self._queue.put_nowait(event)
        except asyncio.QueueFull:
            return False
        return True

    async def next_event(self) -> dict:
        return await self._queue.get()

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        self.closed = True

    def __repr__(self) -> str:
        return f"<Subscription id={self.id} closed={self.closed}>"


class Broadcaster:
    """
    Registry of live subscribers plus best-effort fan-out.

    Registration and removal take a short lock; publish iterates over a
    snapshot of the registry so subscribers may come and go meanwhile.
    """

    def __init__(self, max_queue_size: int = 256):
        self.max_queue_size = max_queue_size
        self._subscribers: Dict[int, Subscription] = {}
        self._lock = threading.Lock()
        self._ids = itertools.count(1)

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self) -> Subscription:
        """
        Register a new subscriber.

        The connected acknowledgment is queued before the subscriber
        becomes visible to publish(), so it is always the first event.
        """
        subscription = Subscription(next(self._ids), self.max_queue_size)
        subscription.deliver(CONNECTED_EVENT)

        with self._lock:
            self._subscribers[subscription.id] = subscription
            count = len(self._subscribers)

        set_subscriber_count(count)
        logger.info(f"Subscriber connected: id={subscription.id}, total={count}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        """Remove a subscriber. Calling it again for the same handle is a no-op."""
        subscription.close()
        with self._lock:
            removed = self._subscribers.pop(subscription.id, None)
            count = len(self._subscribers)

        if removed is not None:
            set_subscriber_count(count)
            logger.info(f"Subscriber disconnected: id={subscription.id}, total={count}")

    def publish(self, message: StoredMessage) -> int:
        """
        Push a stored message to every registered subscriber.

        Returns:
            Number of subscribers the event was queued for
        """
        event = message_event(message)
        with self._lock:
            targets: List[Subscription] = list(self._subscribers.values())

        delivered = 0
        for subscription in targets:
            try:
                queued = subscription.deliver(event)
            except Exception as e:
                logger.warning(f"Delivery to subscriber {subscription.id} failed: {e}")
                queued = False
            if queued:
                delivered += 1
            else:
                record_dropped_delivery()
                logger.warning(
                    f"Dropped message {message.id} for subscriber {subscription.id}"
                )

        logger.debug(f"Published message {message.id} to {delivered}/{len(targets)} subscribers")
        return delivered


async def stream_events(
    broadcaster: Broadcaster,
    subscription: Optional[Subscription] = None,
) -> AsyncGenerator[Dict[str, str], None]:
    """
    Yield SSE frames for a subscription until the client goes away.

    Subscribes on first iteration unless a subscription is passed in.
    sse-starlette cancels or closes the generator on disconnect; the
    subscription is removed from the broadcaster either way.
    """
    if subscription is None:
        subscription = broadcaster.subscribe()
    try:
        while True:
            event = await subscription.next_event()
            yield format_sse(event)
    finally:
        broadcaster.unsubscribe(subscription)
