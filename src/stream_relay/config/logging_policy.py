"""Debug/logging policy plumbing for the relay."""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoggingToggles:
    log_accepts: bool = True
    log_sends: bool = False
    log_ticks: bool = False
    log_portal: bool = False


@dataclass(frozen=True)
class DebugPolicy:
    enabled: bool
    logging: LoggingToggles
    package_debug: bool = False


_LOG_FLAG_MAP: dict[str, Iterable[str]] = {
    "accepts": ("log_accepts",),
    "sends": ("log_sends",),
    "ticks": ("log_ticks",),
    "portal": ("log_portal",),
}

_TRUTHY = {"1", "true", "yes", "on"}
_FALSY = {"0", "false", "no", "off", ""}


def _coerce_bool(value: object, default: bool = False) -> bool:
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return bool(value)
    if isinstance(value, str):
        val = value.strip().lower()
        if val in _TRUTHY:
            return True
        if val in _FALSY:
            return False
    return default


def _split_flags(raw: object) -> set[str]:
    result: set[str] = set()
    items: Iterable[object]
    if raw is None:
        return result
    if isinstance(raw, str):
        items = raw.split(",")
    elif isinstance(raw, Iterable):
        items = raw
    else:
        return result
    for item in items:
        token = str(item).strip().lower()
        if token:
            result.add(token)
    return result


def _load_debug_config(env: Mapping[str, str]) -> tuple[bool, dict[str, object]]:
    raw = env.get("STREAM_RELAY_DEBUG")
    if raw is None:
        return False, {}
    raw_str = raw.strip()
    if raw_str.lower() in _FALSY:
        return False, {}
    if raw_str.lower() in _TRUTHY:
        return True, {}
    try:
        parsed = json.loads(raw_str)
        if isinstance(parsed, dict):
            enabled = _coerce_bool(parsed.get("enabled", True), True)
            return enabled, parsed
        if isinstance(parsed, (list, tuple)):
            return True, {"flags": parsed}
    except ValueError:
        logger.debug("Failed to parse STREAM_RELAY_DEBUG JSON; treating as flag list", exc_info=True)
    return True, {"flags": raw_str}


def load_debug_policy(env: Optional[Mapping[str, str]] = None) -> DebugPolicy:
    env = os.environ if env is None else env
    enabled, cfg = _load_debug_config(env)

    flags = _split_flags(cfg.get("flags"))

    defaults = LoggingToggles()
    log_kwargs = {name: getattr(defaults, name) for name in LoggingToggles.__annotations__.keys()}
    if enabled:
        for flag, attrs in _LOG_FLAG_MAP.items():
            if flag in flags or "all" in flags:
                for attr in attrs:
                    log_kwargs[attr] = True

    # a bare "1" turns on package DEBUG without any per-area chatter
    package_debug = enabled and _coerce_bool(cfg.get("package_debug", True), True)

    return DebugPolicy(
        enabled=enabled,
        logging=LoggingToggles(**log_kwargs),
        package_debug=package_debug,
    )


__all__ = [
    "DebugPolicy",
    "LoggingToggles",
    "load_debug_policy",
]
