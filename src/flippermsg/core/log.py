from __future__ import annotations

import json
import logging
import os
import sys
from typing import Optional

from dotenv import load_dotenv

_configured = False

_PLAIN_FMT = "[%(asctime)s] %(levelname)s %(name)s | %(message)s"


class JsonFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        obj = {
            "ts": record.created,
            "lvl": record.levelname,
            "name": record.name,
            "msg": record.getMessage(),
            "funcName": record.funcName,
            "lineno": record.lineno,
        }
        if record.exc_info:
            obj["exc"] = self.formatException(record.exc_info)
        return json.dumps(obj, ensure_ascii=False)


def _level(name: Optional[str]) -> int:
    lvl = getattr(logging, (name or "INFO").upper(), None)
    return lvl if isinstance(lvl, int) else logging.INFO


def setup(level: Optional[str] = None, json_mode: Optional[bool] = None, *, force: bool = False) -> None:
    """Configure the root logger.
    - LOG_LEVEL / LOG_JSON (env or .env) are used when args are None
    - a second call is a no-op unless force=True
    """
    global _configured
    if _configured and not force:
        return

    load_dotenv()

    py_level = _level(level or os.getenv("LOG_LEVEL", "INFO"))
    json_flag = json_mode if json_mode is not None else (os.getenv("LOG_JSON", "0") == "1")

    handler = logging.StreamHandler(stream=sys.stdout)
    handler.setFormatter(JsonFormatter() if json_flag else logging.Formatter(fmt=_PLAIN_FMT))

    root = logging.getLogger()
    # drop old handlers so pytest re-runs don't double-log
    root.handlers.clear()
    root.setLevel(py_level)
    root.addHandler(handler)

    _configured = True


def get(name: str) -> logging.Logger:
    return logging.getLogger(name)


def set_level(level: str) -> None:
    logging.getLogger().setLevel(_level(level))
