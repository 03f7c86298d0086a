from __future__ import annotations

import socket
import threading

import pytest

from stream_relay.streamer import open_listener


@pytest.fixture
def stop_event() -> threading.Event:
    return threading.Event()


@pytest.fixture
def listener():
    sock = open_listener("127.0.0.1", 0, 10)
    yield sock
    sock.close()


@pytest.fixture
def upstream_pair():
    """(feeder, upstream): bytes sent on ``feeder`` arrive on ``upstream``."""

    feeder, upstream = socket.socketpair()
    upstream.setblocking(False)
    yield feeder, upstream
    feeder.close()
    upstream.close()


@pytest.fixture
def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]
