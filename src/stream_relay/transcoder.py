"""Transcoder subprocess lifecycle and its output connection.

The transcoder is an external program launched with four positional
arguments (source file, ``transport://host:port`` output endpoint, video size,
bit rate). It serves its output on a loopback TCP port; the relay connects to
that port, retrying until the transcoder is ready or shutdown is requested.
"""

from __future__ import annotations

import logging
import socket
import subprocess
import threading
from dataclasses import dataclass, field
from typing import Optional, Sequence

from stream_relay.config import TranscoderConfig
from stream_relay.descriptor import Endpoint
from stream_relay.errors import (
    TranscoderConnectCancelled,
    TranscoderExitedError,
    TranscoderSpawnError,
)

logger = logging.getLogger(__name__)


class TranscoderProcess:
    """Thin wrapper over :class:`subprocess.Popen` for the transcoder."""

    def __init__(self, command: Sequence[str]) -> None:
        if not command:
            raise ValueError("transcoder command must not be empty")
        self._command = list(command)
        self._proc: Optional[subprocess.Popen] = None

    @property
    def started(self) -> bool:
        return self._proc is not None

    @property
    def pid(self) -> Optional[int]:
        return self._proc.pid if self._proc is not None else None

    def poll(self) -> Optional[int]:
        """Return the exit code if the process has exited, else None."""

        if self._proc is None:
            return None
        return self._proc.poll()

    def start(self, source_file: str, endpoint: str, video_size: str, bit_rate: str) -> None:
        if self._proc is not None:
            raise RuntimeError("transcoder already started")
        argv = self._command + [source_file, endpoint, video_size, bit_rate]
        logger.debug("Spawning transcoder: %s", argv)
        try:
            # no stdio redirection: the transcoder writes to its endpoint
            self._proc = subprocess.Popen(argv)
        except OSError as exc:
            raise TranscoderSpawnError(f"failed to spawn {self._command[0]!r}: {exc}") from exc
        logger.info("Transcoder started pid=%d", self._proc.pid)

    def wait(self, timeout_s: Optional[float] = None) -> Optional[int]:
        if self._proc is None:
            return None
        return self._proc.wait(timeout=timeout_s)

    def terminate(self, timeout_s: float = 5.0) -> Optional[int]:
        """Stop the process and reap it.

        No-op when never started; only reaps when it already exited. Escalates
        to SIGKILL when SIGTERM is ignored for ``timeout_s`` seconds.
        """

        proc = self._proc
        if proc is None:
            return None
        if proc.poll() is None:
            logger.info("Sending SIGTERM to transcoder...")
            proc.terminate()
            logger.info("Waiting on transcoder to exit...")
            try:
                proc.wait(timeout=timeout_s)
            except subprocess.TimeoutExpired:
                logger.warning("Transcoder ignored SIGTERM for %.1fs; killing", timeout_s)
                proc.kill()
                proc.wait()
        return proc.returncode


def connect_with_retry(
    endpoint: Endpoint,
    stop_event: threading.Event,
    *,
    retry_interval_s: float = 0.5,
    process: Optional[TranscoderProcess] = None,
) -> socket.socket:
    """Connect to ``endpoint``, retrying until success or shutdown.

    There is no attempt limit: transcoder startup latency is unbounded and the
    only way out is ``stop_event`` (raises :class:`TranscoderConnectCancelled`)
    or, when ``process`` is given, the transcoder exiting
    (raises :class:`TranscoderExitedError`).
    """

    attempts = 0
    while True:
        if stop_event.is_set():
            logger.info("Exiting early...")
            raise TranscoderConnectCancelled(f"connect to {endpoint} cancelled after {attempts} attempts")

        if process is not None:
            code = process.poll()
            if code is not None:
                raise TranscoderExitedError(f"transcoder exited with code {code} before {endpoint} was reachable")

        attempts += 1
        try:
            sock = socket.create_connection(endpoint.address, timeout=retry_interval_s)
        except OSError as exc:
            if attempts == 1 or attempts % 20 == 0:
                logger.debug("Transcoder connect attempt %d failed: %s", attempts, exc)
        else:
            sock.setblocking(False)
            logger.info("Connected to transcoder at %s after %d attempts", endpoint, attempts)
            return sock

        stop_event.wait(retry_interval_s)


@dataclass
class TranscoderHandle:
    """The transcoder process plus its data connection."""

    process: TranscoderProcess
    endpoint: Endpoint
    connection: Optional[socket.socket] = field(default=None)

    @property
    def connected(self) -> bool:
        return self.connection is not None


class TranscoderSupervisor:
    """Launch, connect to, and stop the transcoder."""

    def __init__(self, config: TranscoderConfig, *, retry_interval_s: float = 0.5) -> None:
        self._config = config
        self._retry_interval_s = float(retry_interval_s)
        self.handle: Optional[TranscoderHandle] = None

    def start(
        self,
        source_file: str,
        transport: str,
        port: int,
        video_size: str,
        bit_rate: str,
    ) -> TranscoderHandle:
        endpoint = Endpoint(transport, self._config.host, int(port))
        process = TranscoderProcess(self._config.command)
        self.handle = TranscoderHandle(process=process, endpoint=endpoint)
        process.start(source_file, str(endpoint), video_size, bit_rate)
        return self.handle

    def connect(self, stop_event: threading.Event) -> socket.socket:
        handle = self.handle
        if handle is None:
            raise RuntimeError("transcoder not started")
        handle.connection = connect_with_retry(
            handle.endpoint,
            stop_event,
            retry_interval_s=self._retry_interval_s,
            process=handle.process,
        )
        return handle.connection

    def close_connection(self) -> None:
        handle = self.handle
        if handle is None or handle.connection is None:
            return
        sock = handle.connection
        handle.connection = None
        try:
            sock.shutdown(socket.SHUT_RDWR)
        except OSError:
            logger.debug("Transcoder socket shutdown failed", exc_info=True)
        sock.close()

    def terminate(self) -> None:
        handle = self.handle
        if handle is None:
            return
        code = handle.process.terminate(self._config.terminate_timeout_s)
        if code is not None:
            logger.info("Transcoder exited with code %d", code)


__all__ = [
    "TranscoderHandle",
    "TranscoderProcess",
    "TranscoderSupervisor",
    "connect_with_retry",
]
