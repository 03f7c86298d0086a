"""
stream-relay: fan a transcoder's live byte stream out to TCP clients.

One process relays one stream. The transcoder runs as a child process and
writes to a loopback TCP endpoint; the relay reads fixed-size chunks from it
and writes each chunk to every connected client, announcing the stream to a
directory service ("portal") while it is live.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
