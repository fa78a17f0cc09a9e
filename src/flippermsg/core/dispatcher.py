# src/flippermsg/core/dispatcher.py
from __future__ import annotations

import json
import logging
from typing import Callable, Dict, Iterable, List, Optional, Tuple, Type

from flippermsg.core import log
from flippermsg.core.contracts import BaseMessage, Message, TeamsMessage, UnknownKeys, UsersAckMessage
from flippermsg.core.metrics import inc

_log = log.get(__name__)

Handler = Callable[[Message], None]

DEFAULT_ROUTES: Tuple[Tuple[str, Type[BaseMessage]], ...] = (
    ("user/", UsersAckMessage),
    ("team/", TeamsMessage),
)


class TopicRouter:
    """Maps topic prefixes to message shapes.

    Matching is a case-sensitive literal prefix check, first registered prefix
    wins. Only one message shape is assumed per topic family.
    """

    def __init__(self, routes: Optional[Iterable[Tuple[str, Type[BaseMessage]]]] = None):
        self._routes: List[Tuple[str, Type[BaseMessage]]] = []
        self._handlers: Dict[str, Handler] = {}
        for prefix, cls in (DEFAULT_ROUTES if routes is None else routes):
            self.register(prefix, cls)

    def register(self, prefix: str, message_cls: Type[BaseMessage]) -> None:
        if not prefix:
            raise ValueError("route prefix must be non-empty")
        for i, (p, _) in enumerate(self._routes):
            if p == prefix:
                self._routes[i] = (prefix, message_cls)
                return
        self._routes.append((prefix, message_cls))

    @property
    def routes(self) -> List[Tuple[str, Type[BaseMessage]]]:
        return list(self._routes)

    def _match(self, topic: str) -> Optional[Tuple[str, Type[BaseMessage]]]:
        for prefix, cls in self._routes:
            if topic.startswith(prefix):
                return prefix, cls
        return None

    def resolve(self, topic: str) -> Optional[Type[BaseMessage]]:
        hit = self._match(topic)
        return None if hit is None else hit[1]

    def parse(
        self,
        topic: str,
        payload: str | bytes,
        *,
        logger: Optional[logging.Logger] = None,
        unknown: UnknownKeys | str = UnknownKeys.KEEP,
    ) -> Optional[Message]:
        l = logger or _log
        # malformed JSON raises json.JSONDecodeError to the caller
        data = json.loads(payload)
        cls = self.resolve(topic)
        if cls is None:
            l.warning("unexpected topic %s", topic)
            inc("parse_unrecognized_total", 1)
            return None
        msg = cls.from_dict(data, unknown=unknown)
        inc("parse_total", 1, kind=cls.KIND)
        l.debug("parsed %s from topic=%s", cls.__name__, topic)
        return msg

    def on(self, prefix: str, handler: Handler) -> None:
        """Bind handler to messages parsed from topics under prefix.

        prefix must fall under a registered route (``user/`` or ``user/c1``),
        otherwise nothing could ever reach the handler and ValueError is raised.
        The longest bound prefix matching a topic wins.
        """
        if self._match(prefix) is None:
            raise ValueError(f"no route covers handler prefix {prefix!r}")
        self._handlers[prefix] = handler

    def _handler_for(self, topic: str) -> Optional[Handler]:
        best = None
        for p in self._handlers:
            if topic.startswith(p) and (best is None or len(p) > len(best)):
                best = p
        return None if best is None else self._handlers[best]

    def handle(
        self,
        topic: str,
        payload: str | bytes,
        *,
        logger: Optional[logging.Logger] = None,
        unknown: UnknownKeys | str = UnknownKeys.KEEP,
    ) -> Optional[Message]:
        msg = self.parse(topic, payload, logger=logger, unknown=unknown)
        if msg is None:
            return None
        h = self._handler_for(topic)
        if h:
            h(msg)
        return msg


_default_router = TopicRouter()


def parse_received_message(
    topic: str,
    payload: str | bytes,
    *,
    logger: Optional[logging.Logger] = None,
    unknown: UnknownKeys | str = UnknownKeys.KEEP,
    router: Optional[TopicRouter] = None,
) -> Optional[Message]:
    """Decode a received payload into the message shape its topic implies.

    ``user/...`` yields a UsersAckMessage and ``team/...`` a TeamsMessage.
    Any other topic is logged and yields None. Malformed JSON is not caught.
    """
    return (router or _default_router).parse(topic, payload, logger=logger, unknown=unknown)
