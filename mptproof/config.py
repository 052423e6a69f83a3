"""
mptproof settings.

Layered, highest precedence first:
    1) keyword overrides passed to `load_config()`
    2) environment variables (MPTPROOF_*)
    3) built-in defaults

Only ambient concerns live here. Byte layouts and hash parameters are fixed
by the trie format and are not configurable.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

ENV_PREFIX = "MPTPROOF_"

_LEVELS = ("CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG", "NOTSET")
_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", ""}


@dataclass(frozen=True)
class Settings:
    log_level: str = "WARNING"
    log_json: bool = False
    # log every annotation step (hex key, nibble taken) at DEBUG
    trace_paths: bool = False

    def validate(self) -> "Settings":
        if self.log_level not in _LEVELS:
            raise ValueError(f"invalid log level {self.log_level!r}; expected one of {', '.join(_LEVELS)}")
        return self


def _parse_bool(name: str, raw: str) -> bool:
    v = raw.strip().lower()
    if v in _TRUE:
        return True
    if v in _FALSE:
        return False
    raise ValueError(f"{name}: expected a boolean, got {raw!r}")


def _from_env(env: Mapping[str, str]) -> dict:
    out: dict = {}
    if ENV_PREFIX + "LOG_LEVEL" in env:
        out["log_level"] = env[ENV_PREFIX + "LOG_LEVEL"].strip().upper()
    for field in ("log_json", "trace_paths"):
        name = ENV_PREFIX + field.upper()
        if name in env:
            out[field] = _parse_bool(name, env[name])
    return out


def load_config(env: Optional[Mapping[str, str]] = None, **overrides: Any) -> Settings:
    """Build `Settings` from defaults, the environment and explicit overrides."""
    settings = replace(Settings(), **_from_env(os.environ if env is None else env))
    if overrides:
        if "log_level" in overrides:
            overrides["log_level"] = str(overrides["log_level"]).upper()
        settings = replace(settings, **overrides)
    return settings.validate()
