"""Configuration dataclasses shared across the relay package."""

from __future__ import annotations

from dataclasses import dataclass, field

from stream_relay.config.logging_policy import DebugPolicy, load_debug_policy


@dataclass(frozen=True)
class RelayConfig:
    """Relay loop pacing and socket parameters."""

    pacing_delay_ms: int = 20
    tick_budget_ms: int = 30
    chunk_size: int = 256
    connect_retry_ms: int = 500
    read_poll_ms: int = 10
    listen_backlog: int = 10
    bind_host: str = "0.0.0.0"


@dataclass(frozen=True)
class TranscoderConfig:
    """How the transcoder subprocess is launched and stopped."""

    command: tuple[str, ...] = ("./streamer_ffmpeg.sh",)
    # the transcoder always runs beside the relay
    host: str = "127.0.0.1"
    terminate_timeout_s: float = 5.0


@dataclass(frozen=True)
class PortalConfig:
    """Where the directory service lives."""

    url: str = "ws://localhost:9500"
    timeout_s: float = 5.0


@dataclass(frozen=True)
class RelayCtx:
    """Resolved runtime context shared across subsystems."""

    relay: RelayConfig = field(default_factory=RelayConfig)
    transcoder: TranscoderConfig = field(default_factory=TranscoderConfig)
    portal: PortalConfig = field(default_factory=PortalConfig)
    metrics_window: int = 512
    debug_policy: DebugPolicy = field(default_factory=lambda: load_debug_policy({}))
