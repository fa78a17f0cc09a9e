# src/flippermsg/wire_config.py
from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from flippermsg.core.contracts import MESSAGE_TYPES, UnknownKeys
from flippermsg.core.dispatcher import TopicRouter


def _default_routes() -> Dict[str, str]:
    return {"user/": "users_ack", "team/": "teams"}


@dataclass
class MessagingConfig:
    log_level: str = "INFO"
    log_json: bool = False
    unknown_keys: UnknownKeys = UnknownKeys.KEEP
    routes: Dict[str, str] = field(default_factory=_default_routes)  # prefix -> message KIND


def _as_bool(v: Any) -> bool:
    if isinstance(v, str):
        return v.strip().lower() in ("1", "true", "yes", "on")
    return bool(v)


def load_config(path: Optional[str] = None) -> MessagingConfig:
    """Build a MessagingConfig from an optional YAML file, then env overrides.

    YAML layout::

        logging: {level: DEBUG, json: false}
        decode: {unknown_keys: keep}
        routes: {"user/": users_ack, "team/": teams}
    """
    cfg = MessagingConfig()

    if path:
        data = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        log_cfg = data.get("logging", {}) or {}
        cfg.log_level = str(log_cfg.get("level", cfg.log_level))
        cfg.log_json = _as_bool(log_cfg.get("json", cfg.log_json))
        dec_cfg = data.get("decode", {}) or {}
        cfg.unknown_keys = UnknownKeys(dec_cfg.get("unknown_keys", cfg.unknown_keys))
        if data.get("routes"):
            cfg.routes = {str(k): str(v) for k, v in data["routes"].items()}

    env_level = os.getenv("LOG_LEVEL")
    if env_level:
        cfg.log_level = env_level
    env_json = os.getenv("LOG_JSON")
    if env_json is not None:
        cfg.log_json = _as_bool(env_json)
    env_unknown = os.getenv("FLIPPER_UNKNOWN_KEYS")
    if env_unknown:
        cfg.unknown_keys = UnknownKeys(env_unknown.strip().lower())

    return cfg


def build_router(cfg: MessagingConfig) -> TopicRouter:
    routes = []
    for prefix, kind in cfg.routes.items():
        cls = MESSAGE_TYPES.get(kind)
        if cls is None:
            raise ValueError(f"unknown message kind {kind!r} for route {prefix!r}")
        routes.append((prefix, cls))
    return TopicRouter(routes)
