from __future__ import annotations

import threading
from typing import Any, Dict, List, Tuple

LabelKey = Tuple[Tuple[str, str], ...]  # sorted tuple of (k,v)


def _labels_key(labels: Dict[str, Any] | None) -> LabelKey:
    if not labels:
        return tuple()
    return tuple(sorted((str(k), str(v)) for k, v in labels.items()))


class Counter:
    def __init__(self, name: str, labels: LabelKey):
        self.name = name
        self.labels = labels
        self._value = 0.0
        self._lock = threading.Lock()

    def inc(self, n: float = 1.0) -> None:
        with self._lock:
            self._value += n

    def value(self) -> float:
        with self._lock:
            return self._value


class _Registry:
    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._counters: Dict[Tuple[str, LabelKey], Counter] = {}

    def counter(self, name: str, labels: Dict[str, Any] | None) -> Counter:
        key = (name, _labels_key(labels))
        with self._lock:
            m = self._counters.get(key)
            if m is None:
                m = Counter(name, key[1])
                self._counters[key] = m
            return m

    def peek(self, name: str, labels: Dict[str, Any] | None) -> float:
        with self._lock:
            m = self._counters.get((name, _labels_key(labels)))
        return 0.0 if m is None else m.value()

    def items(self) -> List[Tuple[Tuple[str, LabelKey], Counter]]:
        with self._lock:
            return list(self._counters.items())

    def clear(self) -> None:
        with self._lock:
            self._counters.clear()


_REG = _Registry()


def inc(name: str, n: float = 1.0, **labels: Any) -> None:
    _REG.counter(name, labels).inc(n)


def value(name: str, **labels: Any) -> float:
    """Current value of a counter; 0.0 if it was never incremented."""
    return _REG.peek(name, labels)


def snapshot() -> dict:
    """Return a snapshot of current counters (for tests and debug dumps)."""
    return {
        "counters": [
            {"name": name, "labels": dict(labels), "value": m.value()}
            for (name, labels), m in _REG.items()
        ]
    }


def reset() -> None:
    _REG.clear()
