"""Fire-and-forget progress fan-out to connected subscribers."""

import asyncio
import logging

from runthru.models.recording import ProgressEvent

logger = logging.getLogger(__name__)


class Subscription:
    """A subscriber's view of the event stream.

    Usage:
        async with broadcaster.subscribe(recording_id) as events:
            async for event in events:
                print(event.progress, event.current_step)
    """

    def __init__(self, broadcaster: "ProgressBroadcaster", recording_id: str | None, maxsize: int):
        self.recording_id = recording_id
        self.queue: asyncio.Queue[ProgressEvent] = asyncio.Queue(maxsize=maxsize)
        self.dropped = 0
        self._broadcaster = broadcaster

    def wants(self, event: ProgressEvent) -> bool:
        return self.recording_id is None or self.recording_id == event.recording_id

    def offer(self, event: ProgressEvent) -> None:
        """Enqueue without blocking, dropping the oldest event when full."""
        if self.queue.full():
            self.queue.get_nowait()
            self.dropped += 1
            logger.warning("Slow subscriber for %s, dropped an event", self.recording_id or "*")
        self.queue.put_nowait(event)

    async def get(self, timeout: float | None = None) -> ProgressEvent:
        """Wait for the next event."""
        if timeout is None:
            return await self.queue.get()
        return await asyncio.wait_for(self.queue.get(), timeout)

    def close(self) -> None:
        self._broadcaster.unsubscribe(self)

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> ProgressEvent:
        return await self.get()

    async def __aenter__(self) -> "Subscription":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


class ProgressBroadcaster:
    """Pushes progress events to whoever is subscribed right now.

    No replay: a subscriber only sees events published after it subscribed.
    Late observers should read the recording's stored status instead.
    """

    def __init__(self, queue_size: int = 1000):
        self.queue_size = queue_size
        self._subscriptions: list[Subscription] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscriptions)

    def subscribe(self, recording_id: str | None = None) -> Subscription:
        """Register a subscriber for one recording, or for all when ``recording_id`` is None."""
        subscription = Subscription(self, recording_id, self.queue_size)
        self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        if subscription in self._subscriptions:
            self._subscriptions.remove(subscription)

    def publish(self, event: ProgressEvent) -> None:
        """Deliver ``event`` to every matching subscriber. Never blocks."""
        for subscription in list(self._subscriptions):
            if subscription.wants(event):
                subscription.offer(event)
