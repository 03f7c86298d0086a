"""Stream identity published to the portal."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class Endpoint:
    """Structured ``transport://host:port`` address."""

    transport: str
    host: str
    port: int

    def __str__(self) -> str:
        return f"{self.transport}://{self.host}:{self.port}"

    @property
    def address(self) -> tuple[str, int]:
        return (self.host, int(self.port))


@dataclass(frozen=True)
class StreamDescriptor:
    """Identity and presentation metadata for the relayed stream."""

    name: str
    endpoint: Endpoint
    video_size: str = "480x270"
    bit_rate: str = "400k"
    keywords: tuple[str, ...] = ()

    def to_payload(self) -> dict:
        """Return the JSON-ready record sent to the portal."""

        return {
            "name": self.name,
            "endpoint": str(self.endpoint),
            "video_size": self.video_size,
            "bit_rate": self.bit_rate,
            "keywords": list(self.keywords),
        }


def parse_keywords(raw: Optional[str]) -> tuple[str, ...]:
    """Split a comma separated keyword list.

    An empty string yields no keywords. Interior empty items are kept and a
    single trailing comma does not produce an empty keyword.
    """

    if not raw:
        return ()
    items = raw.split(",")
    if items[-1] == "":
        items.pop()
    return tuple(items)


__all__ = ["Endpoint", "StreamDescriptor", "parse_keywords"]
