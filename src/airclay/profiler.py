"""Per-stage timing for the drawing pipeline.

Each tick runs classification, stabilization and recording; finished
strokes additionally go through synthesis and meshing. The profiler keeps a
rolling window of timings per stage so the CLI and benchmarks can report
where a frame's budget goes.
"""

from __future__ import annotations

import threading
import time
from collections import deque
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, Optional

import numpy as np


@dataclass
class StageStats:
    """Timing statistics for a single pipeline stage."""
    name: str
    avg_ms: float
    min_ms: float
    max_ms: float
    p95_ms: float
    call_count: int


class PipelineProfiler:
    """Times named pipeline stages.

    Usage:
        profiler = PipelineProfiler()
        with profiler.stage("classification"):
            result = classifier.classify(hand, width, height)
        print(profiler.summary())
    """

    STAGES = (
        "classification",
        "stabilization",
        "recording",
        "synthesis",
        "mesh",
        "total",
    )

    def __init__(self, window_size: int = 120):
        self._window_size = window_size
        self._timings: dict[str, deque[float]] = {}
        self._counts: dict[str, int] = {}
        self.enabled = True
        self._lock = threading.Lock()
        for name in self.STAGES:
            self._add_stage(name)

    def _add_stage(self, name: str):
        self._timings[name] = deque(maxlen=self._window_size)
        self._counts[name] = 0

    @contextmanager
    def stage(self, name: str) -> Iterator[None]:
        """Context manager timing one run of a stage."""
        if not self.enabled:
            yield
            return

        with self._lock:
            if name not in self._timings:
                self._add_stage(name)

        t0 = time.perf_counter()
        try:
            yield
        finally:
            elapsed_ms = (time.perf_counter() - t0) * 1000.0
            with self._lock:
                self._timings[name].append(elapsed_ms)
                self._counts[name] += 1

    def get_stage_stats(self, name: str) -> Optional[StageStats]:
        timings = self._timings.get(name)
        if not timings:
            return None

        arr = np.fromiter(timings, dtype=np.float64)
        return StageStats(
            name=name,
            avg_ms=float(arr.mean()),
            min_ms=float(arr.min()),
            max_ms=float(arr.max()),
            p95_ms=float(np.percentile(arr, 95)),
            call_count=self._counts[name],
        )

    def summary(self) -> dict[str, dict]:
        """Stats for every stage that has run, rounded for display."""
        result = {}
        for name in self._timings:
            stats = self.get_stage_stats(name)
            if stats is None:
                continue
            result[name] = {
                "avg_ms": round(stats.avg_ms, 3),
                "min_ms": round(stats.min_ms, 3),
                "max_ms": round(stats.max_ms, 3),
                "p95_ms": round(stats.p95_ms, 3),
                "calls": stats.call_count,
            }
        return result

    def reset(self):
        for name in list(self._timings):
            self._add_stage(name)
