# src/flippermsg/core/bus.py
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Deque, Dict, List, Optional

from flippermsg.core import log
from flippermsg.core.metrics import inc

BusCallback = Callable[[str, bytes], None]


class BusError(RuntimeError):
    pass


class DeliveryMode(Enum):
    DIRECT = "direct"
    PERSISTENT = "persistent"
    NON_PERSISTENT = "non_persistent"


@dataclass(frozen=True, slots=True)
class TopicDestination:
    name: str


class LoopbackMessage:
    """Outbound message as built by publish_message_to_topic()."""

    def __init__(self):
        self.destination: Optional[TopicDestination] = None
        self.binary_attachment: Optional[bytes] = None
        self.delivery_mode: Optional[DeliveryMode] = None

    def set_destination(self, destination: TopicDestination) -> None:
        self.destination = destination

    def set_binary_attachment(self, data: bytes) -> None:
        self.binary_attachment = bytes(data)

    def set_delivery_mode(self, mode: DeliveryMode) -> None:
        self.delivery_mode = mode

    def __repr__(self) -> str:
        topic = self.destination.name if self.destination else None
        return f"LoopbackMessage(topic={topic!r}, mode={self.delivery_mode}, size={len(self.binary_attachment or b'')})"


class LoopbackSession:
    def __init__(self, bus: "LoopbackBus"):
        self._bus = bus
        self.closed = False

    def send(self, message: LoopbackMessage) -> None:
        if self.closed:
            raise BusError("session is closed")
        self._bus._deliver(message)

    def close(self) -> None:
        self.closed = True


class LoopbackBus:
    """In-process broker exposing the bus client surface the publisher needs.

    Delivery is synchronous on the sender's thread. Subscription patterns are
    an exact topic or a prefix ending in ``>`` (``team/>``).
    """

    DeliveryMode = DeliveryMode

    def __init__(self, name: str = "flippermsg.bus", maxlen: int = 256):
        self.name = name
        self.l = log.get(self.name)
        self._subs: Dict[str, List[BusCallback]] = {}
        self._lock = threading.RLock()
        self.sent: Deque[LoopbackMessage] = deque(maxlen=int(maxlen))

    # vendor surface
    def create_message(self) -> LoopbackMessage:
        return LoopbackMessage()

    def create_topic_destination(self, topic: str) -> TopicDestination:
        return TopicDestination(topic)

    def session(self) -> LoopbackSession:
        return LoopbackSession(self)

    @staticmethod
    def _match(topic: str, pattern: str) -> bool:
        if pattern.endswith(">"):
            return topic.startswith(pattern[:-1])
        return topic == pattern

    def subscribe(self, pattern: str, fn: BusCallback) -> None:
        with self._lock:
            self._subs.setdefault(pattern, []).append(fn)
        self.l.info("subscribed topic=%s fn=%s", pattern, getattr(fn, "__name__", str(fn)))

    def unsubscribe(self, pattern: str, fn: BusCallback) -> None:
        with self._lock:
            fns = self._subs.get(pattern, [])
            if fn in fns:
                fns.remove(fn)
            if not fns:
                self._subs.pop(pattern, None)

    def _deliver(self, msg: LoopbackMessage) -> None:
        if msg.destination is None:
            raise BusError("message has no destination")
        topic = msg.destination.name
        data = msg.binary_attachment or b""
        self.sent.append(msg)
        inc("bus_send_total", 1, topic=topic)

        with self._lock:
            targets = [
                fn
                for pattern, fns in self._subs.items()
                if self._match(topic, pattern)
                for fn in fns
            ]
        for fn in targets:
            try:
                fn(topic, data)
                inc("bus_deliver_total", 1, topic=topic)
            except Exception as e:
                self.l.error("deliver error topic=%s fn=%s err=%s", topic, fn, e, exc_info=True)
