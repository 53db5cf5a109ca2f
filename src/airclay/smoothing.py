"""Fingertip stabilization."""

from __future__ import annotations

from typing import Optional

from airclay.landmarks import Point


class ExponentialSmoother:
    """Exponential moving average over 2D points.

    The factor is the weight of the new sample. A high factor (0.8 by
    default) keeps latency low at the cost of letting some jitter through,
    which feels better for live drawing than a heavily damped pointer.

    The x and y accumulators are independent. The first sample after
    construction or ``reset()`` is returned unchanged and seeds the state.
    """

    def __init__(self, factor: float = 0.8):
        if not 0.0 < factor <= 1.0:
            raise ValueError(f"Smoothing factor must be in (0, 1], got {factor}")
        self.factor = factor
        self._x = 0.0
        self._y = 0.0
        self._seeded = False

    def smooth(self, point: Point) -> Point:
        x, y = float(point[0]), float(point[1])
        if not self._seeded:
            self._x, self._y = x, y
            self._seeded = True
            return Point(x, y)

        self._x += (x - self._x) * self.factor
        self._y += (y - self._y) * self.factor
        return Point(self._x, self._y)

    def reset(self):
        """Forget the accumulated state; the next sample seeds it again."""
        self._seeded = False

    @property
    def is_seeded(self) -> bool:
        return self._seeded

    @property
    def value(self) -> Optional[Point]:
        """Current filter output, or None before the first sample."""
        if not self._seeded:
            return None
        return Point(self._x, self._y)
