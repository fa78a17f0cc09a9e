from __future__ import annotations

import json
import math
from collections.abc import Mapping
from dataclasses import asdict, dataclass, field, fields, is_dataclass
from enum import Enum
from typing import Any, ClassVar, Dict, Optional, Type, Union

import numpy as np


__all__ = [
    "UnknownKeys",
    "MessageDecodeError",
    "BaseMessage",
    "UsersMessage",
    "UsersAckMessage",
    "TournamentsMessage",
    "TeamsMessage",
    "Message",
    "MESSAGE_TYPES",
    "to_jsonable",
]


class MessageDecodeError(ValueError):
    """Raised when a decoded JSON value does not fit a message shape."""


class UnknownKeys(str, Enum):
    """What a decoder does with payload keys the shape does not declare."""
    KEEP = "keep"       # carried in .extras and re-emitted by to_dict()
    IGNORE = "ignore"
    REJECT = "reject"


# --------- Base marker ---------
@dataclass(slots=True)
class BaseMessage:
    """Marker base for every message shape. Carries no fields."""

    KIND: ClassVar[str] = ""
    # python attribute -> JSON key, for attributes whose names differ
    WIRE_KEYS: ClassVar[Dict[str, str]] = {}

    @classmethod
    def _wire_fields(cls) -> Dict[str, str]:
        """JSON key -> attribute name, for the declared fields of this shape."""
        return {
            cls.WIRE_KEYS.get(f.name, f.name): f.name
            for f in fields(cls)
            if f.name != "extras"
        }

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        for f in fields(self):
            if f.name == "extras":
                continue
            d[self.WIRE_KEYS.get(f.name, f.name)] = getattr(self, f.name)
        d.update(getattr(self, "extras", {}))
        return d

    def to_json(self) -> str:
        return json.dumps(to_jsonable(self), ensure_ascii=False, allow_nan=False)

    @classmethod
    def from_dict(cls, d: Any, unknown: UnknownKeys | str = UnknownKeys.KEEP) -> "BaseMessage":
        if not cls.KIND:
            raise TypeError("BaseMessage is a marker; decode into a concrete message type")
        if not isinstance(d, Mapping):
            raise MessageDecodeError(
                f"{cls.__name__} expects a JSON object, got {type(d).__name__}"
            )
        policy = UnknownKeys(unknown)
        by_key = cls._wire_fields()
        kwargs: Dict[str, Any] = {}
        extras: Dict[str, Any] = {}
        for k, v in d.items():
            name = by_key.get(k)
            if name is not None:
                kwargs[name] = v
            elif policy is UnknownKeys.REJECT:
                raise MessageDecodeError(f"{cls.__name__} has no field {k!r}")
            elif policy is UnknownKeys.KEEP:
                extras[k] = v
        return cls(**kwargs, extras=extras)

    @classmethod
    def from_json(cls, s: str | bytes, unknown: UnknownKeys | str = UnknownKeys.KEEP) -> "BaseMessage":
        return cls.from_dict(json.loads(s), unknown=unknown)


# --------- Concrete shapes ---------
@dataclass(slots=True)
class UsersMessage(BaseMessage):
    """Sent once by a client when it picks its display name."""

    KIND: ClassVar[str] = "users"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {"client_id": "clientId"}

    username: Optional[str] = None
    client_id: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def get_username(self) -> Optional[str]:
        return self.username

    def get_client_id(self) -> Optional[str]:
        return self.client_id


@dataclass(slots=True)
class UsersAckMessage(BaseMessage):
    """Server reply to a UsersMessage."""

    SUCCESS: ClassVar[str] = "success"
    FAILURE: ClassVar[str] = "failure"

    KIND: ClassVar[str] = "users_ack"
    WIRE_KEYS: ClassVar[Dict[str, str]] = {"client_id": "clientId"}

    result: Optional[str] = None
    username: Optional[str] = None
    client_id: Optional[str] = None
    extras: Dict[str, Any] = field(default_factory=dict)

    def get_username(self) -> Optional[str]:
        return self.username

    def get_client_id(self) -> Optional[str]:
        return self.client_id

    def is_success(self) -> bool:
        return self.result == UsersAckMessage.SUCCESS

    def is_failure(self) -> bool:
        return not self.is_success()


@dataclass(slots=True)
class TournamentsMessage(BaseMessage):
    """Admin client -> server: build the teams and start a round."""

    BUILD_TEAMS: ClassVar[str] = "buildTeams"
    KIND: ClassVar[str] = "tournaments"

    action: str = BUILD_TEAMS
    extras: Dict[str, Any] = field(default_factory=dict)


@dataclass(slots=True)
class TeamsMessage(BaseMessage):
    KIND: ClassVar[str] = "teams"

    puzzle: Any = None          # opaque to this layer
    extras: Dict[str, Any] = field(default_factory=dict)

    def get_puzzle(self) -> Any:
        return self.puzzle


Message = Union[UsersMessage, UsersAckMessage, TournamentsMessage, TeamsMessage]

MESSAGE_TYPES: Dict[str, Type[BaseMessage]] = {
    cls.KIND: cls
    for cls in (UsersMessage, UsersAckMessage, TournamentsMessage, TeamsMessage)
}


def to_jsonable(obj: Any) -> Any:
    """Convert obj into something json.dumps accepts."""
    if isinstance(obj, BaseMessage):
        return {k: to_jsonable(v) for k, v in obj.to_dict().items()}

    if is_dataclass(obj) and not isinstance(obj, type):
        return to_jsonable(asdict(obj))

    if isinstance(obj, np.ndarray):
        return to_jsonable(obj.tolist())
    if isinstance(obj, np.generic):
        return to_jsonable(obj.item())

    if isinstance(obj, float) and not math.isfinite(obj):
        return None             # NaN/Infinity are not JSON
    if isinstance(obj, (str, int, float, bool)) or obj is None:
        return obj
    if isinstance(obj, Mapping):
        return {str(k): to_jsonable(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set, frozenset)):
        return [to_jsonable(v) for v in obj]

    to_dict = getattr(obj, "to_dict", None)
    if callable(to_dict):
        return to_jsonable(to_dict())

    d = getattr(obj, "__dict__", None)
    if isinstance(d, dict):
        return {k: to_jsonable(v) for k, v in d.items() if not k.startswith("_")}

    return str(obj)
