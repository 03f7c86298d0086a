"""Directory service ("portal") publishing.

The relay only needs two calls: ``register(descriptor)`` once the stream is
verified live and ``deregister(descriptor)`` during teardown. The portal is
reached over a websocket carrying one JSON request per call; any reply other
than ``{"ok": true}`` is a failure.
"""

from __future__ import annotations

import json
import logging
from contextlib import ExitStack
from typing import Any, Optional, Protocol

from websockets.exceptions import WebSocketException
from websockets.sync.client import ClientConnection, connect

from stream_relay.config import PortalConfig
from stream_relay.descriptor import StreamDescriptor
from stream_relay.errors import RegistrationError

logger = logging.getLogger(__name__)


class DirectoryPublisher(Protocol):
    def lookup(self) -> None: ...

    def register(self, descriptor: StreamDescriptor) -> None: ...

    def deregister(self, descriptor: StreamDescriptor) -> None: ...

    def close(self) -> None: ...


class PortalClient:
    """Websocket client for the portal's register/deregister calls."""

    def __init__(self, config: PortalConfig, *, log_traffic: bool = False) -> None:
        self._config = config
        self._log_traffic = log_traffic
        self._stack = ExitStack()
        self._ws: Optional[ClientConnection] = None

    @property
    def connected(self) -> bool:
        return self._ws is not None

    def lookup(self) -> None:
        """Open the portal connection; failure means the portal is unavailable."""

        self._connection()

    def register(self, descriptor: StreamDescriptor) -> None:
        self._call("stream.register", descriptor)
        logger.info("Registered stream %r at %s", descriptor.name, descriptor.endpoint)

    def deregister(self, descriptor: StreamDescriptor) -> None:
        self._call("stream.deregister", descriptor)
        logger.info("Deregistered stream %r", descriptor.name)

    def close(self) -> None:
        if self._ws is None:
            return
        self._ws = None
        try:
            self._stack.close()
        except (OSError, WebSocketException):
            logger.debug("Portal websocket close failed", exc_info=True)

    def _connection(self) -> ClientConnection:
        if self._ws is not None:
            return self._ws
        try:
            # held open until close(); the stack exits the connection context
            ws = self._stack.enter_context(connect(self._config.url, open_timeout=self._config.timeout_s))
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise RegistrationError(f"failed to find portal at {self._config.url}: {exc}") from exc
        logger.info("Connected to portal at %s", self._config.url)
        self._ws = ws
        return ws

    def _call(self, kind: str, descriptor: StreamDescriptor) -> dict[str, Any]:
        ws = self._connection()
        request = {"type": kind, "stream": descriptor.to_payload()}
        if self._log_traffic:
            logger.debug("portal -> %s", request)
        try:
            ws.send(json.dumps(request))
            raw = ws.recv(timeout=self._config.timeout_s)
        except (OSError, TimeoutError, WebSocketException) as exc:
            raise RegistrationError(f"{kind} failed: {exc}") from exc
        if self._log_traffic:
            logger.debug("portal <- %s", raw)

        try:
            reply = json.loads(raw)
        except ValueError as exc:
            raise RegistrationError(f"{kind}: malformed portal reply {raw!r}") from exc
        if not isinstance(reply, dict) or reply.get("ok") is not True:
            error = reply.get("error") if isinstance(reply, dict) else None
            raise RegistrationError(f"{kind} rejected by portal: {error or reply!r}")
        return reply


__all__ = ["DirectoryPublisher", "PortalClient"]
