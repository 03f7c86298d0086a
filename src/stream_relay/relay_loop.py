"""The read-then-broadcast relay loop.

Each outer cycle accepts at most one new client, sleeps a short pacing delay
so the transcoder has data ready, then drains: reads fixed-size chunks from
the transcoder connection and writes each one to every client until the tick
budget is spent. The transcoder is the real pacing source; the tick budget
only bounds how long new clients wait to be accepted.
"""

from __future__ import annotations

import enum
import logging
import socket
import threading
from typing import Callable, Optional

from stream_relay.clients import ClientRegistry
from stream_relay.clock import monotonic_ms
from stream_relay.config import RelayConfig
from stream_relay.errors import UpstreamReadError
from stream_relay.metrics import Metrics
from stream_relay.upstream import read_chunk

logger = logging.getLogger(__name__)


class RelayState(enum.Enum):
    ACCEPTING = "accepting"
    DRAINING = "draining"
    SHUTTING_DOWN = "shutting_down"


class RelayOutcome(enum.Enum):
    """Why :meth:`RelayLoop.run` returned."""

    STOPPED = "stopped"
    UPSTREAM_LOST = "upstream_lost"


class RelayLoop:
    """Drive accept / read / broadcast cycles until shutdown or feed loss."""

    def __init__(
        self,
        *,
        listener: socket.socket,
        upstream: socket.socket,
        registry: ClientRegistry,
        stop_event: threading.Event,
        config: Optional[RelayConfig] = None,
        metrics: Optional[Metrics] = None,
        time_fn: Callable[[], float] = monotonic_ms,
        log_ticks: bool = False,
    ) -> None:
        self._listener = listener
        self._upstream = upstream
        self._registry = registry
        self._stop_event = stop_event
        self._config = config or RelayConfig()
        self._metrics = metrics or Metrics()
        self._time_fn = time_fn
        self._log_ticks = log_ticks
        self.state = RelayState.ACCEPTING

    def run(self) -> RelayOutcome:
        logger.info("Streamer ready")
        cfg = self._config
        pacing_s = cfg.pacing_delay_ms / 1000.0
        poll_s = cfg.read_poll_ms / 1000.0

        try:
            while True:
                self.state = RelayState.ACCEPTING
                if self._stop_event.is_set():
                    return RelayOutcome.STOPPED
                self._accept_one()

                if self._stop_event.wait(pacing_s):
                    return RelayOutcome.STOPPED

                self.state = RelayState.DRAINING
                tick_start = self._time_fn()
                chunks = 0
                while True:
                    try:
                        chunk = read_chunk(
                            self._upstream,
                            cfg.chunk_size,
                            self._stop_event,
                            poll_interval_s=poll_s,
                        )
                    except UpstreamReadError as exc:
                        logger.error("Transcoder socket read failed: %s", exc)
                        return RelayOutcome.UPSTREAM_LOST
                    if chunk is None:
                        return RelayOutcome.STOPPED

                    self._broadcast(chunk)
                    chunks += 1

                    elapsed = self._time_fn() - tick_start
                    if elapsed > cfg.tick_budget_ms:
                        self._metrics.observe_ms("relay_tick_ms", elapsed)
                        if self._log_ticks:
                            logger.debug(
                                "tick: chunks=%d elapsed=%.1fms clients=%d",
                                chunks,
                                elapsed,
                                len(self._registry),
                            )
                        break
        finally:
            self.state = RelayState.SHUTTING_DOWN

    def _accept_one(self) -> None:
        try:
            client = self._registry.accept(self._listener)
        except OSError:
            logger.warning("Accept on listening socket failed", exc_info=True)
            return
        if client is None:
            return
        self._registry.add(client)
        self._metrics.inc("relay_clients_accepted_total")
        self._metrics.set("relay_clients", float(len(self._registry)))

    def _broadcast(self, chunk: bytes) -> None:
        dropped = self._registry.broadcast_and_prune(chunk)
        self._metrics.inc("relay_chunks_total")
        self._metrics.inc("relay_bytes_total", len(chunk))
        if dropped:
            self._metrics.inc("relay_clients_dropped_total", len(dropped))
            self._metrics.set("relay_clients", float(len(self._registry)))


__all__ = ["RelayLoop", "RelayOutcome", "RelayState"]
