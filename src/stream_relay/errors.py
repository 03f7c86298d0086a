"""Exception types raised by the relay.

Startup failures (configuration, portal lookup/registration, socket setup,
transcoder spawn) abort initialization. Upstream read failures end the relay
loop. Client write failures never surface here; the registry absorbs them.
"""

from __future__ import annotations


class StreamRelayError(Exception):
    """Base class for relay failures."""


class ConfigurationError(StreamRelayError):
    """Bad or missing command-line arguments."""


class RegistrationError(StreamRelayError):
    """The portal could not be reached or refused the stream."""


class SocketSetupError(StreamRelayError):
    """The public listening socket could not be bound or opened."""


class TranscoderSpawnError(StreamRelayError):
    """The transcoder subprocess could not be launched."""


class TranscoderExitedError(TranscoderSpawnError):
    """The transcoder exited before its output endpoint became reachable."""


class TranscoderConnectCancelled(StreamRelayError):
    """Shutdown was requested while waiting for the transcoder endpoint."""


class UpstreamReadError(StreamRelayError):
    """The transcoder connection failed or closed; the feed is gone."""


__all__ = [
    "ConfigurationError",
    "RegistrationError",
    "SocketSetupError",
    "StreamRelayError",
    "TranscoderConnectCancelled",
    "TranscoderExitedError",
    "TranscoderSpawnError",
    "UpstreamReadError",
]
