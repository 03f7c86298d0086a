"""Streamer application: initialize, relay, and tear down one stream.

Startup order matters: the portal is looked up first, then the public
listening socket is opened, the transcoder is spawned and connected, and only
then is the stream registered, so the portal never advertises a stream that
is not actually live. Teardown runs every step even when earlier ones fail.
"""

from __future__ import annotations

import logging
import signal
import socket
import threading
from typing import Callable, Optional

from stream_relay.clients import ClientRegistry
from stream_relay.config import RelayCtx, load_relay_ctx
from stream_relay.descriptor import StreamDescriptor
from stream_relay.directory import DirectoryPublisher, PortalClient
from stream_relay.errors import SocketSetupError, StreamRelayError, TranscoderConnectCancelled
from stream_relay.metrics import Metrics
from stream_relay.relay_loop import RelayLoop, RelayOutcome
from stream_relay.transcoder import TranscoderSupervisor

logger = logging.getLogger(__name__)


def open_listener(host: str, port: int, backlog: int) -> socket.socket:
    """Bind a non-blocking TCP listening socket."""

    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setblocking(False)
        sock.bind((host, int(port)))
        sock.listen(backlog)
    except OSError as exc:
        sock.close()
        raise SocketSetupError(f"failed to open listen socket on {host}:{port}: {exc}") from exc
    return sock


def install_signal_handlers(stop_event: threading.Event) -> None:
    """Route SIGINT/SIGTERM to ``stop_event`` so teardown can deregister."""

    def _handler(signum, _frame) -> None:
        logger.info("Exiting... (signal %d)", signum)
        stop_event.set()

    signal.signal(signal.SIGINT, _handler)
    signal.signal(signal.SIGTERM, _handler)


class Streamer:
    """Own the relay's resources for the lifetime of one stream."""

    def __init__(
        self,
        *,
        source_file: str,
        descriptor: StreamDescriptor,
        ffmpeg_port: int,
        ctx: Optional[RelayCtx] = None,
        stop_event: Optional[threading.Event] = None,
        publisher: Optional[DirectoryPublisher] = None,
        supervisor: Optional[TranscoderSupervisor] = None,
        metrics: Optional[Metrics] = None,
        listener_factory: Callable[[str, int, int], socket.socket] = open_listener,
    ) -> None:
        self._ctx = ctx or load_relay_ctx()
        self.source_file = source_file
        self.descriptor = descriptor
        self.ffmpeg_port = int(ffmpeg_port)
        self.stop_event = stop_event or threading.Event()
        self.metrics = metrics or Metrics(self._ctx.metrics_window)

        toggles = self._ctx.debug_policy.logging
        self._publisher: DirectoryPublisher = publisher or PortalClient(
            self._ctx.portal,
            log_traffic=toggles.log_portal,
        )
        self._supervisor = supervisor or TranscoderSupervisor(
            self._ctx.transcoder,
            retry_interval_s=self._ctx.relay.connect_retry_ms / 1000.0,
        )
        self._listener_factory = listener_factory
        self.registry = ClientRegistry(log_accepts=toggles.log_accepts, log_sends=toggles.log_sends)
        self.listener: Optional[socket.socket] = None
        self.registered = False

    # --- lifecycle ---------------------------------------------------------------
    def initialize(self) -> None:
        """Bring the stream up; raises :class:`StreamRelayError` on any failure."""

        self._publisher.lookup()

        endpoint = self.descriptor.endpoint
        if endpoint.transport != "tcp":
            logger.warning("Transport %r is advertised but clients are served over tcp", endpoint.transport)

        logger.info("Setting up listen socket...")
        cfg = self._ctx.relay
        self.listener = self._listener_factory(cfg.bind_host, endpoint.port, cfg.listen_backlog)

        logger.info("Starting and connecting to transcoder...")
        self._supervisor.start(
            self.source_file,
            endpoint.transport,
            self.ffmpeg_port,
            self.descriptor.video_size,
            self.descriptor.bit_rate,
        )
        self._supervisor.connect(self.stop_event)

        self._publisher.register(self.descriptor)
        self.registered = True

    def run(self) -> RelayOutcome:
        handle = self._supervisor.handle
        if self.listener is None or handle is None or handle.connection is None:
            raise RuntimeError("run() called before a successful initialize()")
        loop = RelayLoop(
            listener=self.listener,
            upstream=handle.connection,
            registry=self.registry,
            stop_event=self.stop_event,
            config=self._ctx.relay,
            metrics=self.metrics,
            log_ticks=self._ctx.debug_policy.logging.log_ticks,
        )
        outcome = loop.run()
        logger.info("Relay loop finished: %s", outcome.value)
        return outcome

    def close(self) -> None:
        """Release everything; each step runs even if a previous one failed."""

        try:
            self.registry.close_all()
        except Exception:
            logger.exception("Closing clients failed")

        listener = self.listener
        self.listener = None
        if listener is not None:
            try:
                listener.close()
            except OSError:
                logger.debug("Listen socket close failed", exc_info=True)

        try:
            self._supervisor.close_connection()
        except Exception:
            logger.exception("Closing transcoder connection failed")

        if self.registered:
            try:
                self._publisher.deregister(self.descriptor)
            except Exception:
                logger.exception("Deregistering stream %r failed", self.descriptor.name)
            self.registered = False

        try:
            self._publisher.close()
        except Exception:
            logger.debug("Portal close failed", exc_info=True)

        try:
            self._supervisor.terminate()
        except Exception:
            logger.exception("Stopping transcoder failed")

        logger.info("Relay metrics: %s", self.metrics.snapshot()["counters"])

    def serve(self) -> int:
        """Initialize, relay until shutdown, always tear down; return exit code."""

        exit_code = 0
        try:
            try:
                self.initialize()
            except TranscoderConnectCancelled as exc:
                logger.info("Shutdown requested before the transcoder came up: %s", exc)
                exit_code = 1
            except StreamRelayError as exc:
                logger.error("Streamer initialization failed: %s", exc)
                exit_code = 1
            else:
                self.run()
        finally:
            self.close()
        return exit_code


__all__ = ["Streamer", "install_signal_handlers", "open_listener"]
