# src/flippermsg/core/publisher.py
from __future__ import annotations

import json
import logging
from typing import Any, Optional, Protocol

from flippermsg.core import log
from flippermsg.core.contracts import to_jsonable
from flippermsg.core.metrics import inc

_log = log.get(__name__)

_PRIMITIVES = (str, bytes, bytearray, int, float, bool, type(None))


class OutboundMessage(Protocol):
    def set_destination(self, destination: Any) -> None: ...
    def set_binary_attachment(self, data: bytes) -> None: ...
    def set_delivery_mode(self, mode: Any) -> None: ...


class BusClient(Protocol):
    """The slice of a vendor pub/sub API this layer relies on."""

    DeliveryMode: Any  # enum-like, must expose DIRECT

    def create_message(self) -> OutboundMessage: ...
    def create_topic_destination(self, topic: str) -> Any: ...


class Session(Protocol):
    def send(self, message: OutboundMessage) -> None: ...


def publish_message_to_topic(
    topic: str,
    message: Any,
    session: Optional[Session],
    bus_client: BusClient,
    *,
    logger: Optional[logging.Logger] = None,
) -> Optional[str]:
    """Serialize message to JSON and send it to topic over session.

    Does nothing when session is None (not connected yet). A primitive
    message is logged and dropped. Errors raised by session.send() are not
    caught; the caller owns recovery.

    Returns the JSON text that was sent, or None when nothing was sent.
    """
    if session is None:
        inc("publish_skipped_total", 1, reason="no_session")
        return None

    l = logger or _log
    if isinstance(message, _PRIMITIVES):
        l.warning("invalid type for parameter msg (%r), should be an object", message)
        inc("publish_skipped_total", 1, reason="invalid_type")
        return None

    payload = json.dumps(to_jsonable(message), ensure_ascii=False, allow_nan=False)
    l.debug("publishing msg (%s) to topic (%s)", payload, topic)

    out = bus_client.create_message()
    out.set_destination(bus_client.create_topic_destination(topic))
    out.set_binary_attachment(payload.encode("utf-8"))
    out.set_delivery_mode(bus_client.DeliveryMode.DIRECT)
    session.send(out)

    inc("publish_total", 1, topic=topic)
    return payload
