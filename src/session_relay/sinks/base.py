from __future__ import annotations

import time
from contextlib import contextmanager
from typing import Iterator

from prometheus_client import Counter, Histogram

SINK_WRITES_TOTAL = Counter(
    "sink_writes_total",
    "Total delivery attempts made by sink clients",
    ["sink", "status"],
)

SINK_WRITE_LATENCY = Histogram(
    "sink_write_latency_seconds",
    "Latency of one sink delivery attempt in seconds",
    ["sink"],
    buckets=[0.01, 0.05, 0.1, 0.25, 0.5, 1, 2.5, 5, 10, 30, 60, 300],
)


@contextmanager
def record_write(sink: str) -> Iterator[None]:
    """Count the attempt as success/failure and observe its latency."""
    start = time.perf_counter()
    try:
        yield
    except Exception:
        SINK_WRITES_TOTAL.labels(sink=sink, status="failure").inc()
        raise
    else:
        SINK_WRITES_TOTAL.labels(sink=sink, status="success").inc()
    finally:
        SINK_WRITE_LATENCY.labels(sink=sink).observe(time.perf_counter() - start)
