from __future__ import annotations

import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

PREDICTION_COMPLETED = "prediction.completed"
SYNC_COMPLETED = "sync.completed"


@dataclass(frozen=True)
class Event:
    topic: str
    payload: Any
    published_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class Subscription:
    """Bounded queue of events for one subscriber"""

    def __init__(self, channel: "EventChannel", topics: Optional[List[str]], maxsize: int):
        self._channel = channel
        self.topics = set(topics) if topics else None
        self.queue: "queue.Queue[Event]" = queue.Queue(maxsize=maxsize)
        self.dropped = 0

    def wants(self, topic: str) -> bool:
        return self.topics is None or topic in self.topics

    def get(self, timeout: Optional[float] = None) -> Event:
        """Next event; raises queue.Empty after ``timeout`` seconds"""
        return self.queue.get(timeout=timeout)

    def drain(self) -> List[Event]:
        events = []
        while True:
            try:
                events.append(self.queue.get_nowait())
            except queue.Empty:
                return events

    def close(self):
        self._channel.unsubscribe(self)


class EventChannel:
    """Publish/subscribe for live updates; a full subscriber queue drops the event for that subscriber"""

    def __init__(self, maxsize: int = 1000):
        self.maxsize = maxsize
        self._subscriptions: List[Subscription] = []
        self._lock = threading.Lock()

    def subscribe(self, topics: Optional[List[str]] = None) -> Subscription:
        subscription = Subscription(self, topics, self.maxsize)
        with self._lock:
            self._subscriptions.append(subscription)
        return subscription

    def unsubscribe(self, subscription: Subscription):
        with self._lock:
            if subscription in self._subscriptions:
                self._subscriptions.remove(subscription)

    def publish(self, topic: str, payload: Any) -> int:
        """Deliver to every interested subscriber, returning how many received it"""
        event = Event(topic=topic, payload=payload)
        with self._lock:
            subscriptions = list(self._subscriptions)
        delivered = 0
        for subscription in subscriptions:
            if not subscription.wants(topic):
                continue
            try:
                subscription.queue.put_nowait(event)
                delivered += 1
            except queue.Full:
                subscription.dropped += 1
        return delivered

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "subscribers": len(self._subscriptions),
                "dropped": sum(s.dropped for s in self._subscriptions),
            }
