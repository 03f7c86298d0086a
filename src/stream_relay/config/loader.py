"""Resolve a :class:`RelayCtx` from environment variables.

Every knob has a default matching the relay's reference behavior, so an empty
environment yields a working context. Malformed values fall back to the
default rather than failing startup.
"""

from __future__ import annotations

import logging
import os
import shlex
from typing import Mapping, Optional

from stream_relay.config.logging_policy import load_debug_policy
from stream_relay.config.models import PortalConfig, RelayConfig, RelayCtx, TranscoderConfig

logger = logging.getLogger(__name__)


# ---- Helpers -----------------------------------------------------------------

def _env_int(env: Mapping[str, str], name: str, default: int, *, minimum: int = 0) -> int:
    v = env.get(name)
    if v is None:
        return int(default)
    try:
        value = int(v.strip())
    except ValueError:
        logger.warning("Ignoring non-integer %s=%r", name, v)
        return int(default)
    if value < minimum:
        logger.warning("Ignoring %s=%d below minimum %d", name, value, minimum)
        return int(default)
    return value


def _env_float(env: Mapping[str, str], name: str, default: float) -> float:
    v = env.get(name)
    if v is None:
        return float(default)
    try:
        return float(v.strip())
    except ValueError:
        logger.warning("Ignoring non-numeric %s=%r", name, v)
        return float(default)


def _env_str(env: Mapping[str, str], name: str, default: str) -> str:
    v = env.get(name)
    if v is None:
        return default
    v = v.strip()
    return v if v != "" else default


# ---- Loader ------------------------------------------------------------------

def load_relay_ctx(env: Optional[Mapping[str, str]] = None) -> RelayCtx:
    env = os.environ if env is None else env

    defaults = RelayConfig()
    relay = RelayConfig(
        pacing_delay_ms=_env_int(env, "STREAM_RELAY_PACING_MS", defaults.pacing_delay_ms),
        tick_budget_ms=_env_int(env, "STREAM_RELAY_TICK_MS", defaults.tick_budget_ms),
        chunk_size=_env_int(env, "STREAM_RELAY_CHUNK_SIZE", defaults.chunk_size, minimum=1),
        connect_retry_ms=_env_int(env, "STREAM_RELAY_CONNECT_RETRY_MS", defaults.connect_retry_ms, minimum=1),
        read_poll_ms=_env_int(env, "STREAM_RELAY_READ_POLL_MS", defaults.read_poll_ms, minimum=1),
        listen_backlog=_env_int(env, "STREAM_RELAY_LISTEN_BACKLOG", defaults.listen_backlog, minimum=1),
        bind_host=_env_str(env, "STREAM_RELAY_BIND_HOST", defaults.bind_host),
    )

    tc_defaults = TranscoderConfig()
    raw_cmd = env.get("STREAM_RELAY_TRANSCODER")
    command = tuple(shlex.split(raw_cmd)) if raw_cmd and raw_cmd.strip() else tc_defaults.command
    transcoder = TranscoderConfig(
        command=command,
        terminate_timeout_s=_env_float(env, "STREAM_RELAY_TERMINATE_TIMEOUT", tc_defaults.terminate_timeout_s),
    )

    portal_defaults = PortalConfig()
    portal = PortalConfig(
        url=_env_str(env, "STREAM_RELAY_PORTAL_URL", portal_defaults.url),
        timeout_s=_env_float(env, "STREAM_RELAY_PORTAL_TIMEOUT", portal_defaults.timeout_s),
    )

    return RelayCtx(
        relay=relay,
        transcoder=transcoder,
        portal=portal,
        metrics_window=max(16, _env_int(env, "STREAM_RELAY_METRICS_WINDOW", 512)),
        debug_policy=load_debug_policy(env),
    )


__all__ = ["load_relay_ctx"]
