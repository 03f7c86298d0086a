"""Command-line entry point for the relay."""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import dataclass
from typing import NoReturn, Optional, Sequence

from stream_relay.config import RelayCtx, load_relay_ctx
from stream_relay.descriptor import Endpoint, StreamDescriptor, parse_keywords
from stream_relay.errors import ConfigurationError
from stream_relay.streamer import Streamer, install_signal_handlers

logger = logging.getLogger(__name__)

USAGE_LINES = (
    "Usage: stream-relay $video_file $stream_name [options]",
    "Options:",
    "'--transport $trans' sets endpoint transport protocol, tcp by default",
    "'--host $host' sets endpoint host, localhost by default",
    "'--port $port' specifies listen port, 9600 by default",
    "'--ffmpeg_port $port' sets port for the transcoder instance, 9601 by default",
    "'--video_size $size' specifies video size, 480x270 by default",
    "'--bit_rate $rate' sets video bit rate, 400k by default",
    "'--keywords $key1,$key2...,$keyn' adds search keywords to stream",
)

VALUE_OPTIONS = (
    "--transport",
    "--host",
    "--port",
    "--ffmpeg_port",
    "--video_size",
    "--bit_rate",
    "--keywords",
)


class _RelayArgumentParser(argparse.ArgumentParser):
    """Raise instead of exiting so the caller owns the exit code."""

    def error(self, message: str) -> NoReturn:
        raise ConfigurationError(message)


@dataclass(frozen=True)
class RelayArgs:
    source_file: str
    descriptor: StreamDescriptor
    ffmpeg_port: int


def build_parser() -> argparse.ArgumentParser:
    parser = _RelayArgumentParser(
        prog="stream-relay",
        description="Relay a transcoded video stream to TCP clients",
        allow_abbrev=False,
    )
    parser.add_argument("video_source", help="Source media file handed to the transcoder")
    parser.add_argument("stream_name", help="Name the stream is published under")
    parser.add_argument("--transport", default="tcp", help="Endpoint transport protocol (default: tcp)")
    parser.add_argument("--host", default="localhost", help="Advertised endpoint host (default: localhost)")
    parser.add_argument("--port", type=int, default=9600, help="Client listen port (default: 9600)")
    parser.add_argument("--ffmpeg_port", type=int, default=9601, help="Transcoder output port (default: 9601)")
    parser.add_argument("--video_size", default="480x270", help="Video size WxH (default: 480x270)")
    parser.add_argument("--bit_rate", default="400k", help="Video bit rate (default: 400k)")
    parser.add_argument("--keywords", default="", help="Comma separated search keywords")
    return parser


def _bind_option_values(argv: Sequence[str], options: Sequence[str]) -> list[str]:
    """Fold ``--opt value`` into ``--opt=value`` for known options.

    The item after an option is always its value, even when it starts with
    ``-`` (``--keywords -live,news``).
    """

    items = list(argv)
    bound: list[str] = []
    i = 0
    while i < len(items):
        item = items[i]
        if item in options and i + 1 < len(items):
            bound.append(f"{item}={items[i + 1]}")
            i += 2
            continue
        bound.append(item)
        i += 1
    return bound


def parse_args(argv: Optional[Sequence[str]] = None) -> RelayArgs:
    """Parse ``argv`` into the stream descriptor; raises :class:`ConfigurationError`."""

    items = list(sys.argv[1:] if argv is None else argv)
    parser = build_parser()
    args, unknown = parser.parse_known_args(_bind_option_values(items, VALUE_OPTIONS))
    if unknown and items and unknown[-1] == items[-1] and items[-1].startswith("-"):
        raise ConfigurationError(f"option '{items[-1]}' expects a value")
    for option in unknown:
        if option.startswith("-"):
            logger.info("Unrecognized option '%s', skipping", option)

    descriptor = StreamDescriptor(
        name=args.stream_name,
        endpoint=Endpoint(args.transport, args.host, args.port),
        video_size=args.video_size,
        bit_rate=args.bit_rate,
        keywords=parse_keywords(args.keywords),
    )
    return RelayArgs(source_file=args.video_source, descriptor=descriptor, ffmpeg_port=args.ffmpeg_port)


def print_usage() -> None:
    for line in USAGE_LINES:
        logger.info(line)


def _configure_logging(ctx: RelayCtx) -> None:
    logging.basicConfig(level=logging.INFO,
                        format='[%(asctime)s] %(name)s - %(levelname)s - %(message)s')
    if ctx.debug_policy.package_debug:
        logging.getLogger("stream_relay").setLevel(logging.DEBUG)
        logger.debug("Debug policy: %s", ctx.debug_policy)


def main(argv: Optional[Sequence[str]] = None) -> int:
    ctx = load_relay_ctx()
    _configure_logging(ctx)

    try:
        relay_args = parse_args(argv)
    except ConfigurationError as exc:
        logger.error("%s", exc)
        print_usage()
        return 1

    streamer = Streamer(
        source_file=relay_args.source_file,
        descriptor=relay_args.descriptor,
        ffmpeg_port=relay_args.ffmpeg_port,
        ctx=ctx,
    )
    install_signal_handlers(streamer.stop_event)
    return streamer.serve()


if __name__ == "__main__":
    sys.exit(main())
