"""Millisecond clock used for tick pacing."""

from __future__ import annotations

import time


def monotonic_ms() -> float:
    return time.monotonic() * 1000.0


__all__ = ["monotonic_ms"]
