"""Stroke curve synthesis: downsampling and Chaikin corner cutting.

Raw strokes are dense and jittery. Before a stroke becomes a tube it is
first thinned to a bounded number of points, then rounded with a few passes
of Chaikin's corner-cutting scheme. Both steps keep the original endpoints.
"""

from __future__ import annotations

import math

import numpy as np

from airclay.strokes import Stroke


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def downsample(points: np.ndarray, max_points: int = 30) -> np.ndarray:
    """Pick at most ``max_points`` evenly spaced points, preserving endpoints.

    Paths with ``max_points`` points or fewer are returned unchanged.
    """
    points = np.asarray(points, dtype=np.float64)
    n = len(points)
    if n <= max_points:
        return points
    if max_points < 2:
        raise ValueError(f"max_points must be >= 2, got {max_points}")

    step = (n - 1) / (max_points - 1)
    indices = [min(_round_half_up(i * step), n - 1) for i in range(max_points)]
    return points[indices]


def chaikin_smooth(points: np.ndarray, iterations: int = 3) -> np.ndarray:
    """Round a polyline with Chaikin's corner-cutting algorithm.

    Each pass keeps the first and last point and replaces every segment
    (P0, P1) with Q = 3/4 P0 + 1/4 P1 and R = 1/4 P0 + 3/4 P1, so an
    n-point path becomes a 2n-point path. Paths with fewer than three
    points have no corner to cut and are returned unchanged.
    """
    points = np.asarray(points, dtype=np.float64)
    if len(points) < 3:
        return points

    result = points
    for _ in range(iterations):
        p0 = result[:-1]
        p1 = result[1:]
        q = 0.75 * p0 + 0.25 * p1
        r = 0.25 * p0 + 0.75 * p1
        cut = np.stack([q, r], axis=1).reshape(-1, result.shape[1])
        result = np.vstack([result[:1], cut, result[-1:]])

    return result


def synthesize(stroke: Stroke | np.ndarray, max_points: int = 30, iterations: int = 3) -> np.ndarray:
    """Downsample and smooth a stroke into a curve of shape (M, 2).

    Pure and deterministic: the same stroke always yields the same curve.
    """
    if isinstance(stroke, Stroke):
        points = stroke.as_array()
    else:
        points = np.asarray(stroke, dtype=np.float64).reshape(-1, 2)

    return chaikin_smooth(downsample(points, max_points), iterations)


class CurveSynthesizer:
    """``synthesize`` bound to a fixed downsample cap and iteration count."""

    def __init__(self, max_points: int = 30, iterations: int = 3):
        if max_points < 2:
            raise ValueError(f"max_points must be >= 2, got {max_points}")
        if iterations < 0:
            raise ValueError(f"iterations must be >= 0, got {iterations}")
        self.max_points = max_points
        self.iterations = iterations

    def synthesize(self, stroke: Stroke | np.ndarray) -> np.ndarray:
        return synthesize(stroke, self.max_points, self.iterations)

    __call__ = synthesize
