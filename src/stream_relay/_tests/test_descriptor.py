from __future__ import annotations

import dataclasses

import pytest

from stream_relay.descriptor import Endpoint, StreamDescriptor, parse_keywords


def test_parse_keywords_keeps_order() -> None:
    assert parse_keywords("news,sports") == ("news", "sports")


def test_parse_keywords_empty_string_yields_nothing() -> None:
    assert parse_keywords("") == ()
    assert parse_keywords(None) == ()


def test_parse_keywords_edge_items() -> None:
    assert parse_keywords("news") == ("news",)
    assert parse_keywords("a,,b") == ("a", "", "b")
    assert parse_keywords("a,b,") == ("a", "b")
    assert parse_keywords("a,a") == ("a", "a")


def test_endpoint_renders_transport_url() -> None:
    endpoint = Endpoint("tcp", "localhost", 9600)
    assert str(endpoint) == "tcp://localhost:9600"
    assert endpoint.address == ("localhost", 9600)


def test_descriptor_payload_and_immutability() -> None:
    descriptor = StreamDescriptor(
        name="evening-news",
        endpoint=Endpoint("tcp", "relay.example", 9600),
        keywords=("news", "sports"),
    )
    assert descriptor.to_payload() == {
        "name": "evening-news",
        "endpoint": "tcp://relay.example:9600",
        "video_size": "480x270",
        "bit_rate": "400k",
        "keywords": ["news", "sports"],
    }
    with pytest.raises(dataclasses.FrozenInstanceError):
        descriptor.name = "other"  # type: ignore[misc]
