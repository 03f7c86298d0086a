#!/usr/bin/env python
"""Consume bytes from a running stream-relay and report throughput."""

from __future__ import annotations

import argparse
import logging
import socket
import sys
import time
from typing import Optional

_LOG = logging.getLogger(__name__)


def _drain(host: str, port: int, total_bytes: int, idle_timeout: float, max_runtime: float, out: Optional[str]) -> tuple[int, float]:
    received = 0
    start = time.monotonic()
    sink = open(out, "wb") if out else None
    try:
        with socket.create_connection((host, port), timeout=idle_timeout) as sock:
            _LOG.info("Drain connected to %s:%d", host, port)
            while total_bytes <= 0 or received < total_bytes:
                elapsed = time.monotonic() - start
                if max_runtime > 0 and elapsed >= max_runtime:
                    _LOG.info("Drain reached max runtime %.2fs", elapsed)
                    break
                try:
                    data = sock.recv(64 * 1024)
                except socket.timeout:
                    _LOG.warning("Drain timeout after %d bytes", received)
                    break
                if not data:
                    _LOG.info("Relay closed the connection")
                    break
                received += len(data)
                if sink is not None:
                    sink.write(data)
    finally:
        if sink is not None:
            sink.close()
    return received, time.monotonic() - start


def main() -> None:
    parser = argparse.ArgumentParser(description="Read the raw byte stream served by stream-relay")
    parser.add_argument("--host", default="127.0.0.1", help="Relay host")
    parser.add_argument("--port", type=int, default=9600, help="Relay client port")
    parser.add_argument("--bytes", type=int, default=0, help="Stop after this many bytes (0=unbounded)")
    parser.add_argument("--idle-timeout", type=float, default=5.0, help="Timeout waiting for data (seconds)")
    parser.add_argument("--max-runtime", type=float, default=30.0, help="Ceiling on total runtime (seconds; 0=unbounded)")
    parser.add_argument("--out", default=None, help="Optional file to write the received stream to")
    args = parser.parse_args()

    logging.basicConfig(level=logging.INFO, format="[%(asctime)s] %(levelname)s %(message)s")
    try:
        received, elapsed = _drain(args.host, args.port, args.bytes, args.idle_timeout, args.max_runtime, args.out)
    except OSError as exc:
        _LOG.error("Drain failed: %s", exc)
        sys.exit(1)
    rate = received / elapsed / 1024.0 if elapsed > 0 else 0.0
    _LOG.info("Drained %d bytes in %.2fs (%.1f KiB/s)", received, elapsed, rate)


if __name__ == "__main__":
    main()
