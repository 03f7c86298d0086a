"""Downstream client bookkeeping.

The registry owns the accepted client sockets. Clients are disposable: a
client whose write fails (closed by the peer, reset, or too slow to take a
whole chunk without blocking) is dropped at the end of that broadcast pass so
it cannot stall delivery to everyone else.
"""

from __future__ import annotations

import logging
import socket
from dataclasses import dataclass
from typing import Iterator, Optional

logger = logging.getLogger(__name__)


@dataclass(eq=False)
class ClientConnection:
    """One accepted downstream consumer."""

    sock: socket.socket
    peer: object = None

    def fileno(self) -> int:
        return self.sock.fileno()

    def close(self) -> None:
        try:
            self.sock.close()
        except OSError:
            logger.debug("Client close failed peer=%s", self.peer, exc_info=True)


def accept(listener: socket.socket) -> Optional[ClientConnection]:
    """Accept one pending connection without blocking, or return None."""

    try:
        sock, peer = listener.accept()
    except (BlockingIOError, InterruptedError):
        return None
    sock.setblocking(False)
    return ClientConnection(sock=sock, peer=peer)


class ClientRegistry:
    """Ordered set of active clients, mutated only by the relay loop."""

    def __init__(self, *, log_accepts: bool = True, log_sends: bool = False) -> None:
        self._clients: list[ClientConnection] = []
        self._log_accepts = log_accepts
        self._log_sends = log_sends

    def __len__(self) -> int:
        return len(self._clients)

    def __iter__(self) -> Iterator[ClientConnection]:
        return iter(list(self._clients))

    def accept(self, listener: socket.socket) -> Optional[ClientConnection]:
        return accept(listener)

    def add(self, client: ClientConnection) -> None:
        self._clients.append(client)
        if self._log_accepts:
            logger.info("Accepted new client %s, fd %d", client.peer, client.fileno())

    def broadcast_and_prune(self, chunk: bytes) -> list[ClientConnection]:
        """Write ``chunk`` to every client; drop and return the ones that failed."""

        dead: list[ClientConnection] = []
        for client in self._clients:
            try:
                # non-blocking: a partial write raises instead of throttling
                client.sock.sendall(chunk)
            except OSError as exc:
                if self._log_sends:
                    logger.debug("Client send error peer=%s: %s", client.peer, exc)
                dead.append(client)

        if dead:
            self._clients = [client for client in self._clients if client not in dead]
            for client in dead:
                logger.info("Removing client %s from client list", client.peer)
                client.close()
        return dead

    def close_all(self) -> None:
        while self._clients:
            client = self._clients.pop(0)
            client.close()


__all__ = ["ClientConnection", "ClientRegistry", "accept"]
