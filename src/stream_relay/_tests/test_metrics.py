from __future__ import annotations

from stream_relay.metrics import Metrics


def test_counters_gauges_and_histograms() -> None:
    metrics = Metrics(window=16)
    metrics.inc("relay_chunks_total")
    metrics.inc("relay_chunks_total")
    metrics.inc("relay_bytes_total", 512)
    metrics.set("relay_clients", 3)
    for value in (10.0, 30.0, 20.0):
        metrics.observe_ms("relay_tick_ms", value)

    snap = metrics.snapshot()

    assert snap["counters"] == {"relay_chunks_total": 2, "relay_bytes_total": 512}
    assert snap["gauges"] == {"relay_clients": 3.0}
    tick = snap["histograms"]["relay_tick_ms"]
    assert tick["count"] == 3
    assert tick["last_ms"] == 20.0
    assert tick["p50_ms"] == 20.0
    assert tick["min_ms"] == 10.0
    assert tick["max_ms"] == 30.0
    assert tick["mean_ms"] == 20.0


def test_histogram_window_rolls_over() -> None:
    metrics = Metrics(window=16)
    for value in range(40):
        metrics.observe_ms("relay_tick_ms", float(value))

    tick = metrics.snapshot()["histograms"]["relay_tick_ms"]
    assert tick["count"] == 40
    assert tick["p50_ms"] >= 24.0
    assert tick["min_ms"] == 0.0
