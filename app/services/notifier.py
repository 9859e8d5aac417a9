"""
Change notifier - pushes updated comparisons to realtime subscribers.

A topic is a record id. Publishing is best-effort: a subscriber that misses an
update can always re-fetch the record, so delivery problems are logged and
never raised to the publisher. Publishers may run on any thread; each
subscription is bound to the event loop that created it.
"""
from __future__ import annotations

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Set

from app.pipeline import build_detail
from app.schemas import ComparisonDetail, ComparisonRecord

logger = logging.getLogger(__name__)

DEFAULT_QUEUE_SIZE = 16


class Subscription:
    """One subscriber's feed for one topic. Iterate with ``async for``."""

    def __init__(self, notifier: "ChangeNotifier", topic: str, maxsize: int):
        self.topic = topic
        self._notifier = notifier
        self._loop = asyncio.get_running_loop()
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)
        self.closed = False

    def deliver(self, payload: Dict[str, Any]) -> None:
        self._loop.call_soon_threadsafe(self._put, payload)

    def _put(self, payload: Dict[str, Any]) -> None:
        if self._queue.full():
            # Keep the newest state; older snapshots are superseded anyway
            self._queue.get_nowait()
        self._queue.put_nowait(payload)

    async def get(self) -> Dict[str, Any]:
        return await self._queue.get()

    def __aiter__(self):
        return self

    async def __anext__(self) -> Dict[str, Any]:
        if self.closed:
            raise StopAsyncIteration
        return await self.get()

    def close(self) -> None:
        if not self.closed:
            self.closed = True
            self._notifier.unsubscribe(self)


class ChangeNotifier:
    def __init__(self, queue_size: int = DEFAULT_QUEUE_SIZE):
        self._queue_size = queue_size
        self._lock = threading.Lock()
        self._topics: Dict[str, Set[Subscription]] = defaultdict(set)

    def subscribe(self, topic: str) -> Subscription:
        """Register a subscriber; must be called from inside a running event loop."""
        sub = Subscription(self, topic, self._queue_size)
        with self._lock:
            self._topics[topic].add(sub)
        logger.debug("Subscribed to %s (%d listeners)", topic, self.subscriber_count(topic))
        return sub

    def unsubscribe(self, sub: Subscription) -> None:
        with self._lock:
            subs = self._topics.get(sub.topic)
            if subs is None:
                return
            subs.discard(sub)
            if not subs:
                del self._topics[sub.topic]

    def subscriber_count(self, topic: str) -> int:
        with self._lock:
            return len(self._topics.get(topic, ()))

    def broadcast(self, topic: str, payload: Dict[str, Any]) -> int:
        """Send *payload* to every subscriber of *topic*; return how many were reached."""
        with self._lock:
            subs = list(self._topics.get(topic, ()))
        delivered = 0
        for sub in subs:
            try:
                sub.deliver(payload)
            except RuntimeError as exc:
                # The subscriber's loop is gone
                logger.warning("Dropping dead subscriber on %s: %s", topic, exc)
                self.unsubscribe(sub)
                continue
            delivered += 1
        return delivered

    def publish(self, record: ComparisonRecord) -> int:
        """Deliver the fully updated *record* to everyone watching its id."""
        detail: ComparisonDetail = (
            record if isinstance(record, ComparisonDetail) else build_detail(record)
        )
        delivered = self.broadcast(record.id, detail.model_dump(mode="json"))
        logger.info(
            "Published comparison %s (%s) to %d subscribers",
            record.id, record.status, delivered,
        )
        return delivered


notifier = ChangeNotifier()
