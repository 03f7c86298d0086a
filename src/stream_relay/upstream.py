"""Fixed-size chunk reads from the transcoder connection."""

from __future__ import annotations

import logging
import select
import socket
import threading
from typing import Optional

from stream_relay.errors import UpstreamReadError

logger = logging.getLogger(__name__)


def read_chunk(
    sock: socket.socket,
    size: int,
    stop_event: threading.Event,
    *,
    poll_interval_s: float = 0.010,
) -> Optional[bytes]:
    """Read exactly ``size`` bytes, accumulating short reads.

    Waits on ``select`` in ``poll_interval_s`` slices so a set ``stop_event``
    is noticed promptly; returns None in that case. EOF (even mid-chunk) and
    socket errors raise :class:`UpstreamReadError`.
    """

    buf = bytearray(size)
    view = memoryview(buf)
    got = 0
    while got < size:
        if stop_event.is_set():
            return None
        try:
            readable, _, _ = select.select([sock], [], [], poll_interval_s)
        except (OSError, ValueError) as exc:
            raise UpstreamReadError(f"transcoder socket unusable: {exc}") from exc
        if not readable:
            continue
        try:
            n = sock.recv_into(view[got:], size - got)
        except (BlockingIOError, InterruptedError):
            continue
        except OSError as exc:
            raise UpstreamReadError(f"transcoder socket read failed: {exc}") from exc
        if n == 0:
            raise UpstreamReadError(f"transcoder closed the connection ({got}/{size} bytes into a chunk)")
        got += n
    return bytes(buf)


__all__ = ["read_chunk"]
