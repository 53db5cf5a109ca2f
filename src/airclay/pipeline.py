"""Per-frame drawing pipeline: landmarks → gesture → stabilized point → strokes.

One ``DrawingPipeline`` is one drawing session. The landmark source calls
``process()`` once per tick; the pipeline classifies the hand, stabilizes
the fingertip, records strokes and fires callbacks on the drawing edges.
Meshes for finished strokes are built on demand with ``build_meshes()``.

Usage:
    with DrawingPipeline() as pipeline:
        pipeline.on_drawing_point(lambda p: print("draw", p))
        pipeline.on_drawing_end(lambda: print("stroke done"))
        for hand in landmark_source:
            pipeline.process(hand, width=640, height=480)
        meshes = pipeline.build_meshes(640, 480)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Optional

from airclay.classifier import GestureClassifier, GestureState
from airclay.config import DrawingConfig
from airclay.landmarks import Point
from airclay.mesh import MeshBuilder, TubeMesh
from airclay.profiler import PipelineProfiler
from airclay.smoothing import ExponentialSmoother
from airclay.strokes import PreviewSegment, Stroke, StrokeRecorder

logger = logging.getLogger("airclay.pipeline")


@dataclass
class FrameResult:
    """What happened during one tick."""
    state: GestureState
    hand_detected: bool
    fingertip: Optional[Point] = None  # raw, canvas pixels
    point: Optional[Point] = None  # stabilized, only while drawing
    accepted: bool = False  # point was added to the stroke
    stroke_ended: bool = False
    stroke: Optional[Stroke] = None  # the stroke kept on this tick, if any


@dataclass
class PipelineStats:
    """Session counters."""
    total_frames: int
    drawing_frames: int
    dropped_frames: int
    strokes_started: int
    strokes_completed: int
    state: str
    profiler_summary: dict = field(default_factory=dict)


class DrawingPipeline:
    """Runs the classify → stabilize → record chain once per tick.

    The gesture state is edge-triggered: the first drawing frame after an
    idle one starts a stroke, and the first idle frame after drawing (a lost
    hand included) ends it, resets the stabilizer and fires
    ``on_drawing_end`` exactly once.

    ``process()`` must finish before it is called again. A reentrant call,
    for example from inside a callback, is dropped and counted.
    """

    def __init__(
        self,
        config: Optional[DrawingConfig] = None,
        classifier: Optional[GestureClassifier] = None,
        profiler: Optional[PipelineProfiler] = None,
        enable_profiling: bool = True,
    ):
        self.config = (config or DrawingConfig()).validate()
        self.classifier = classifier or GestureClassifier()
        self.smoother = ExponentialSmoother(self.config.smoothing_factor)
        self.recorder = StrokeRecorder(self.config.min_distance_sq)
        self.profiler = profiler or PipelineProfiler()
        self.profiler.enabled = enable_profiling
        self.mesh_builder = MeshBuilder(self.config, profiler=self.profiler)

        self._state = GestureState.IDLE
        self._busy = False
        self._running = False

        self._point_callbacks: list[Callable[[Point], None]] = []
        self._end_callbacks: list[Callable[[], None]] = []

        self._total_frames = 0
        self._drawing_frames = 0
        self._dropped_frames = 0
        self._strokes_started = 0

        self.recorder.on_clear(self.mesh_builder.cache.invalidate)

    # --- Callbacks ---

    def on_drawing_point(self, callback: Callable[[Point], None]):
        """Register a callback fired with the stabilized point on every drawing frame."""
        self._point_callbacks.append(callback)

    def on_drawing_end(self, callback: Callable[[], None]):
        """Register a callback fired once on every drawing → idle edge."""
        self._end_callbacks.append(callback)

    def on_stroke(self, callback: Callable[[Stroke], None]):
        """Register a callback fired with each stroke kept in the collection."""
        self.recorder.on_stroke(callback)

    def on_segment(self, callback: Callable[[PreviewSegment], None]):
        """Register a callback for live-preview segments."""
        self.recorder.on_segment(callback)

    def _emit(self, callbacks: list[Callable], *args):
        for cb in callbacks:
            try:
                cb(*args)
            except Exception as e:
                logger.error("Drawing callback %r error: %s", cb, e)

    # --- Session lifecycle ---

    def start(self):
        """Begin a session with fresh per-session state."""
        self._reset_session_state()
        self._running = True
        logger.info("Drawing session started")

    def stop(self):
        """End the session, releasing the stabilizer and in-progress stroke.

        The in-progress stroke is discarded, not finalized, and no
        ``on_drawing_end`` fires. Completed strokes are kept until ``clear()``.
        """
        self._reset_session_state()
        self._running = False
        logger.info(
            "Drawing session stopped (%d frames, %d strokes)",
            self._total_frames, self.recorder.stroke_count,
        )

    def _reset_session_state(self):
        self.smoother.reset()
        self.recorder.cancel_stroke()
        self._state = GestureState.IDLE

    def clear(self):
        """Drop all strokes, in progress and completed."""
        self.smoother.reset()
        self.recorder.clear()
        self._state = GestureState.IDLE
        logger.info("Cleared all strokes")

    # --- Per-tick entry point ---

    def process(self, hand: Any, width: float, height: float) -> Optional[FrameResult]:
        """Process one landmark tick.

        Args:
            hand: 21 landmarks for the single tracked hand, or None when no
                hand is in view.
            width: Canvas width in pixels.
            height: Canvas height in pixels.

        Returns:
            The frame result, or None if the call was dropped because a
            previous call is still running.
        """
        if self._busy:
            self._dropped_frames += 1
            logger.debug("Dropped frame: pipeline busy")
            return None

        self._busy = True
        try:
            with self.profiler.stage("total"):
                return self._process(hand, width, height)
        finally:
            self._busy = False

    def _process(self, hand: Any, width: float, height: float) -> FrameResult:
        self._total_frames += 1

        with self.profiler.stage("classification"):
            result = self.classifier.classify(hand, width, height)

        previous = self._state
        self._state = result.state
        frame = FrameResult(
            state=result.state,
            hand_detected=hand is not None,
            fingertip=result.fingertip,
        )

        if result.drawing:
            self._drawing_frames += 1
            if previous is GestureState.IDLE:
                self._strokes_started += 1

            with self.profiler.stage("stabilization"):
                point = self.smoother.smooth(result.fingertip)
            frame.point = point

            self._emit(self._point_callbacks, point)

            with self.profiler.stage("recording"):
                frame.accepted = self.recorder.add_point(point)

        elif previous is GestureState.DRAWING:
            self.smoother.reset()
            with self.profiler.stage("recording"):
                frame.stroke = self.recorder.end_stroke()
            frame.stroke_ended = True
            self._emit(self._end_callbacks)

        return frame

    # --- Outputs ---

    def get_strokes(self) -> tuple[Stroke, ...]:
        """Snapshot of all completed strokes, oldest first."""
        return self.recorder.get_strokes()

    def build_meshes(self, width: float, height: float) -> list[Optional[TubeMesh]]:
        """Tube meshes for every completed stroke (None where a stroke is too short)."""
        with self.profiler.stage("mesh"):
            return self.mesh_builder.build_all(self.get_strokes(), width, height)

    @property
    def state(self) -> GestureState:
        return self._state

    @property
    def is_drawing(self) -> bool:
        return self._state is GestureState.DRAWING

    @property
    def running(self) -> bool:
        return self._running

    @property
    def stats(self) -> PipelineStats:
        return PipelineStats(
            total_frames=self._total_frames,
            drawing_frames=self._drawing_frames,
            dropped_frames=self._dropped_frames,
            strokes_started=self._strokes_started,
            strokes_completed=self.recorder.stroke_count,
            state=self._state.value,
            profiler_summary=self.profiler.summary(),
        )

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.stop()
