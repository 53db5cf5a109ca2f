"""Stroke recording for air drawing.

Accumulates stabilized fingertip points into strokes. Near-duplicate points
caused by jitter are dropped with a squared-distance threshold, so the
stroke only grows when the finger actually moves.

Every accepted point after the first produces a preview segment for the live
2D overlay. Consecutive segments join at midpoints with quadratic curves so
the preview stays smooth without storing extra history.

Usage:
    recorder = StrokeRecorder()
    recorder.on_segment(lambda seg: overlay.draw(seg.to_dict()))
    # In frame loop while drawing:
    recorder.add_point(point)
    # On gesture end:
    stroke = recorder.end_stroke()
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, field
from typing import Callable, Iterator, Optional

import numpy as np

from airclay.landmarks import Point

logger = logging.getLogger("airclay.strokes")


@dataclass(frozen=True)
class Stroke:
    """One continuous drawing action, stored as its ordered raw points."""
    points: tuple[Point, ...]

    def __len__(self) -> int:
        return len(self.points)

    def __iter__(self) -> Iterator[Point]:
        return iter(self.points)

    def __getitem__(self, index):
        return self.points[index]

    @property
    def first(self) -> Point:
        return self.points[0]

    @property
    def last(self) -> Point:
        return self.points[-1]

    def as_array(self) -> np.ndarray:
        """Points as a float array of shape (N, 2)."""
        if not self.points:
            return np.zeros((0, 2), dtype=np.float64)
        return np.array(self.points, dtype=np.float64)

    @classmethod
    def from_points(cls, points) -> Stroke:
        return cls(tuple(Point(float(p[0]), float(p[1])) for p in points))


@dataclass
class PreviewSegment:
    """A single live-preview drawing command."""
    type: str  # "line", "quadratic"
    start: Point
    end: Point
    control: Optional[Point] = None

    def to_dict(self) -> dict:
        if self.type == "quadratic":
            return {
                "type": "quadratic",
                "x1": round(self.start.x, 1),
                "y1": round(self.start.y, 1),
                "cx": round(self.control.x, 1),
                "cy": round(self.control.y, 1),
                "x2": round(self.end.x, 1),
                "y2": round(self.end.y, 1),
            }
        return {
            "type": "line",
            "x1": round(self.start.x, 1),
            "y1": round(self.start.y, 1),
            "x2": round(self.end.x, 1),
            "y2": round(self.end.y, 1),
        }


def _midpoint(a: Point, b: Point) -> Point:
    return Point((a.x + b.x) * 0.5, (a.y + b.y) * 0.5)


def stroke_segments(stroke: Stroke) -> list[PreviewSegment]:
    """Segments that redraw a completed stroke as one smooth path.

    Quadratic curves pass through the midpoints between consecutive points,
    with each point as the control. Two-point strokes are a straight line.
    """
    pts = stroke.points
    n = len(pts)
    if n < 2:
        return []
    if n == 2:
        return [PreviewSegment(type="line", start=pts[0], end=pts[1])]

    segments = []
    start = pts[0]
    for i in range(n - 2):
        end = _midpoint(pts[i + 1], pts[i + 2])
        segments.append(PreviewSegment(type="quadratic", start=start, control=pts[i + 1], end=end))
        start = end
    segments.append(PreviewSegment(type="quadratic", start=start, control=pts[-2], end=pts[-1]))
    return segments


@dataclass
class StrokeState:
    """Bookkeeping for the stroke currently being drawn."""
    points: list[Point] = field(default_factory=list)
    last_point: Optional[Point] = None
    previous_point: Optional[Point] = None


class StrokeRecorder:
    """Owns the in-progress stroke and the ordered list of completed strokes.

    The recorder is the only writer of stroke state. Listeners registered with
    ``on_segment``, ``on_stroke`` and ``on_clear`` are notified of every
    accepted point, every finalized stroke and every clear.
    """

    def __init__(self, min_distance_sq: float = 4.0):
        if min_distance_sq < 0:
            raise ValueError(f"min_distance_sq must be >= 0, got {min_distance_sq}")
        self.min_distance_sq = min_distance_sq

        self._state = StrokeState()
        self._strokes: list[Stroke] = []
        self._segment_handlers: list[Callable[[PreviewSegment], None]] = []
        self._stroke_handlers: list[Callable[[Stroke], None]] = []
        self._clear_handlers: list[Callable[[], None]] = []

    def on_segment(self, callback: Callable[[PreviewSegment], None]):
        """Register a callback for live-preview segments."""
        self._segment_handlers.append(callback)

    def on_stroke(self, callback: Callable[[Stroke], None]):
        """Register a callback for finalized strokes."""
        self._stroke_handlers.append(callback)

    def on_clear(self, callback: Callable[[], None]):
        self._clear_handlers.append(callback)

    def add_point(self, point: Point) -> bool:
        """Append a point to the current stroke.

        Returns:
            True if the point was accepted, False if it was too close to the
            last accepted point or not finite.
        """
        point = Point(float(point[0]), float(point[1]))
        if not (math.isfinite(point.x) and math.isfinite(point.y)):
            logger.debug("Rejected non-finite point %s", point)
            return False

        state = self._state
        last = state.last_point

        if last is None:
            state.points.append(point)
            state.last_point = point
            state.previous_point = None
            return True

        dx = point.x - last.x
        dy = point.y - last.y
        if dx * dx + dy * dy < self.min_distance_sq:
            return False

        if state.previous_point is not None:
            segment = PreviewSegment(
                type="quadratic",
                start=_midpoint(state.previous_point, last),
                control=last,
                end=_midpoint(last, point),
            )
        else:
            segment = PreviewSegment(type="line", start=last, end=point)

        state.points.append(point)
        state.previous_point = last
        state.last_point = point
        self._emit(self._segment_handlers, segment)
        return True

    def end_stroke(self) -> Optional[Stroke]:
        """Finish the current stroke.

        The stroke is kept only if it has at least two points. The
        in-progress state is reset either way.

        Returns:
            The completed stroke, or None if it was too short to keep.
        """
        state = self._state
        self._state = StrokeState()

        if len(state.points) < 2:
            if state.points:
                logger.debug("Dropped single-point stroke at %s", state.points[0])
            return None

        stroke = Stroke(tuple(state.points))
        self._strokes.append(stroke)
        logger.debug("Stroke %d completed with %d points", len(self._strokes) - 1, len(stroke))
        self._emit(self._stroke_handlers, stroke)
        return stroke

    def cancel_stroke(self):
        """Discard the in-progress stroke without finalizing it."""
        self._state = StrokeState()

    def clear(self):
        """Discard both the in-progress stroke and all completed strokes."""
        self._state = StrokeState()
        self._strokes = []
        self._emit(self._clear_handlers)

    def get_strokes(self) -> tuple[Stroke, ...]:
        """Snapshot of the completed strokes in insertion order."""
        return tuple(self._strokes)

    def _emit(self, handlers: list[Callable], *args):
        for handler in handlers:
            try:
                handler(*args)
            except Exception as e:
                logger.error("Stroke listener %r error: %s", handler, e)

    @property
    def strokes(self) -> tuple[Stroke, ...]:
        return self.get_strokes()

    @property
    def current_points(self) -> tuple[Point, ...]:
        return tuple(self._state.points)

    @property
    def is_stroking(self) -> bool:
        return bool(self._state.points)

    @property
    def stroke_count(self) -> int:
        return len(self._strokes)
