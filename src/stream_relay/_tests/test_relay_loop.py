"""Relay loop scenarios driven over real loopback sockets."""

from __future__ import annotations

import socket
import threading
import time
from typing import Callable

from stream_relay.clients import ClientRegistry
from stream_relay.config import RelayConfig
from stream_relay.metrics import Metrics
from stream_relay.relay_loop import RelayLoop, RelayOutcome, RelayState

CHUNK = 256
FILLER = b"\xff" * CHUNK


def _numbered(i: int) -> bytes:
    return i.to_bytes(4, "big") * (CHUNK // 4)


def _wait_for(predicate: Callable[[], bool], timeout_s: float = 5.0) -> None:
    deadline = time.monotonic() + timeout_s
    while not predicate():
        assert time.monotonic() < deadline, "condition not reached in time"
        time.sleep(0.005)


def _connect(listener: socket.socket) -> socket.socket:
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, 1 << 20)
    sock.settimeout(5.0)
    sock.connect(listener.getsockname()[:2])
    return sock


class _Runner:
    """Run a RelayLoop on a background thread and keep its outcome."""

    def __init__(self, loop: RelayLoop) -> None:
        self.loop = loop
        self.outcome: RelayOutcome | None = None
        self.thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        self.outcome = self.loop.run()

    def start(self) -> "_Runner":
        self.thread.start()
        return self


class _RecordingRegistry(ClientRegistry):
    def __init__(self) -> None:
        super().__init__()
        self.broadcasts: list[bytes] = []

    def broadcast_and_prune(self, chunk: bytes):
        self.broadcasts.append(chunk)
        return super().broadcast_and_prune(chunk)


def _make_loop(listener, upstream, registry, stop_event, metrics=None, **kwargs) -> RelayLoop:
    return RelayLoop(
        listener=listener,
        upstream=upstream,
        registry=registry,
        stop_event=stop_event,
        config=RelayConfig(read_poll_ms=5),
        metrics=metrics or Metrics(),
        **kwargs,
    )


def test_two_clients_receive_every_chunk_in_order(listener, upstream_pair, stop_event) -> None:
    feeder, upstream = upstream_pair
    registry = ClientRegistry()
    runner = _Runner(_make_loop(listener, upstream, registry, stop_event)).start()

    # the loop only comes back to accept between ticks, so keep data flowing
    warm = threading.Event()

    def _warmup() -> None:
        while not warm.is_set():
            feeder.sendall(FILLER)
            time.sleep(0.005)

    warmer = threading.Thread(target=_warmup, daemon=True)
    warmer.start()

    first = _connect(listener)
    _wait_for(lambda: len(registry) == 1)
    second = _connect(listener)
    _wait_for(lambda: len(registry) == 2)
    warm.set()
    warmer.join(timeout=2.0)

    received: dict[int, list[int]] = {}

    def _reader(idx: int, sock: socket.socket) -> None:
        seen: list[int] = []
        started = False
        buf = b""
        while len(seen) < 1000:
            data = sock.recv(64 * 1024)
            if not data:
                break
            buf += data
            while len(buf) >= CHUNK:
                chunk, buf = buf[:CHUNK], buf[CHUNK:]
                if not started and chunk == FILLER:
                    continue
                started = True
                value = int.from_bytes(chunk[:4], "big")
                assert chunk == _numbered(value)
                seen.append(value)
        received[idx] = seen

    readers = [
        threading.Thread(target=_reader, args=(idx, sock), daemon=True)
        for idx, sock in enumerate((first, second))
    ]
    for reader in readers:
        reader.start()

    feeder.sendall(b"".join(_numbered(i) for i in range(1000)))
    for reader in readers:
        reader.join(timeout=10.0)

    assert received[0] == list(range(1000))
    assert received[1] == list(range(1000))

    stopped_at = time.monotonic()
    stop_event.set()
    runner.thread.join(timeout=2.0)
    assert not runner.thread.is_alive()
    assert time.monotonic() - stopped_at < 0.05
    assert runner.outcome is RelayOutcome.STOPPED
    assert runner.loop.state is RelayState.SHUTTING_DOWN

    first.close()
    second.close()
    registry.close_all()


def test_upstream_close_ends_loop_after_delivered_chunks(listener, upstream_pair, stop_event) -> None:
    feeder, upstream = upstream_pair
    client = _connect(listener)
    registry = _RecordingRegistry()
    metrics = Metrics()
    runner = _Runner(_make_loop(listener, upstream, registry, stop_event, metrics)).start()

    _wait_for(lambda: len(registry) == 1)
    feeder.sendall(b"".join(_numbered(i) for i in range(10)))
    feeder.close()

    runner.thread.join(timeout=5.0)
    assert not runner.thread.is_alive()
    assert runner.outcome is RelayOutcome.UPSTREAM_LOST
    assert len(registry.broadcasts) == 10
    assert metrics.counter("relay_chunks_total") == 10
    assert stop_event.is_set() is False

    data = b""
    while len(data) < 10 * CHUNK:
        part = client.recv(64 * 1024)
        assert part
        data += part
    assert data == b"".join(_numbered(i) for i in range(10))

    client.close()
    registry.close_all()


def test_short_upstream_reads_broadcast_one_chunk(listener, upstream_pair, stop_event) -> None:
    feeder, upstream = upstream_pair
    registry = _RecordingRegistry()
    runner = _Runner(_make_loop(listener, upstream, registry, stop_event)).start()

    for size, fill in ((10, b"a"), (50, b"b"), (196, b"c")):
        feeder.sendall(fill * size)
        time.sleep(0.03)
    feeder.close()

    runner.thread.join(timeout=5.0)
    assert runner.outcome is RelayOutcome.UPSTREAM_LOST
    assert registry.broadcasts == [b"a" * 10 + b"b" * 50 + b"c" * 196]


def test_dropped_client_does_not_stall_others(listener, upstream_pair, stop_event) -> None:
    feeder, upstream = upstream_pair
    registry = ClientRegistry()
    metrics = Metrics()
    runner = _Runner(_make_loop(listener, upstream, registry, stop_event, metrics)).start()

    warm = threading.Event()

    def _feed() -> None:
        while not warm.is_set():
            feeder.sendall(FILLER)
            time.sleep(0.002)

    feeding = threading.Thread(target=_feed, daemon=True)
    feeding.start()

    doomed = _connect(listener)
    _wait_for(lambda: len(registry) == 1)
    survivor = _connect(listener)
    _wait_for(lambda: len(registry) == 2)

    doomed.close()
    _wait_for(lambda: len(registry) == 1)
    assert metrics.counter("relay_clients_dropped_total") == 1

    # the survivor keeps receiving after the drop
    survivor.recv(1 << 20)
    got = survivor.recv(CHUNK)
    assert got

    warm.set()
    feeding.join(timeout=2.0)
    stop_event.set()
    runner.thread.join(timeout=2.0)
    assert runner.outcome is RelayOutcome.STOPPED
    survivor.close()
    registry.close_all()


def test_tick_budget_returns_to_accepting(listener, upstream_pair, stop_event) -> None:
    feeder, upstream = upstream_pair
    registry = ClientRegistry()
    now = [0.0]

    def _clock() -> float:
        # every reading advances 20ms, so each tick holds two chunks
        now[0] += 20.0
        return now[0]

    metrics = Metrics()
    loop = RelayLoop(
        listener=listener,
        upstream=upstream,
        registry=registry,
        stop_event=stop_event,
        config=RelayConfig(pacing_delay_ms=0, read_poll_ms=5),
        metrics=metrics,
        time_fn=_clock,
    )
    feeder.sendall(FILLER * 6)
    feeder.close()

    assert loop.run() is RelayOutcome.UPSTREAM_LOST
    assert metrics.counter("relay_chunks_total") == 6
    assert metrics.snapshot()["histograms"]["relay_tick_ms"]["count"] == 3


def test_stop_before_run_returns_immediately(listener, upstream_pair, stop_event) -> None:
    _feeder, upstream = upstream_pair
    registry = _RecordingRegistry()
    stop_event.set()

    loop = _make_loop(listener, upstream, registry, stop_event)

    assert loop.run() is RelayOutcome.STOPPED
    assert registry.broadcasts == []
