"""
Logging setup for mptproof.

Library modules only call `logging.getLogger(__name__)`; applications that
want output call `configure_logging()` once. It installs a single handler on
the package logger, either concise text or one JSON object per line.
"""

from __future__ import annotations

import datetime as _dt
import json
import logging
import sys
from typing import Any, Optional, TextIO

from .config import Settings, load_config

ROOT_LOGGER = "mptproof"

_TEXT_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

# attributes every LogRecord has; anything else came in through `extra=`
_RESERVED = set(vars(logging.LogRecord("", 0, "", 0, "", (), None))) | {"message", "asctime"}


def _jsonable(o: Any) -> Any:
    if isinstance(o, (bytes, bytearray)):
        return bytes(o).hex()
    if isinstance(o, tuple):
        return list(o)
    return str(o)


class JsonFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "ts": _dt.datetime.fromtimestamp(record.created, tz=_dt.timezone.utc).isoformat(timespec="milliseconds"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        for k, v in vars(record).items():
            if k not in _RESERVED and not k.startswith("_"):
                payload[k] = v
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, default=_jsonable, sort_keys=True)


def configure_logging(settings: Optional[Settings] = None, stream: Optional[TextIO] = None) -> logging.Logger:
    """(Re)configure the `mptproof` logger; safe to call more than once."""
    settings = settings or load_config()
    logger = logging.getLogger(ROOT_LOGGER)
    for h in list(logger.handlers):
        if getattr(h, "_mptproof", False):
            logger.removeHandler(h)

    handler = logging.StreamHandler(stream or sys.stderr)
    handler._mptproof = True  # type: ignore[attr-defined]
    if settings.log_json:
        handler.setFormatter(JsonFormatter())
    else:
        handler.setFormatter(logging.Formatter(_TEXT_FORMAT))
    logger.addHandler(handler)
    logger.setLevel(settings.log_level)
    return logger
