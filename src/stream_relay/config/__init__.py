"""Shared configuration dataclasses for the relay."""

from .loader import load_relay_ctx
from .logging_policy import DebugPolicy, LoggingToggles, load_debug_policy
from .models import (
    PortalConfig,
    RelayConfig,
    RelayCtx,
    TranscoderConfig,
)

__all__ = [
    "DebugPolicy",
    "LoggingToggles",
    "PortalConfig",
    "RelayConfig",
    "RelayCtx",
    "TranscoderConfig",
    "load_debug_policy",
    "load_relay_ctx",
]
