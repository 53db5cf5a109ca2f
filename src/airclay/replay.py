"""Landmark session recording and replay.

Records the raw per-tick input of a drawing session (one hand or none, plus
the canvas size) so it can be fed back through the pipeline:

- reproducible tests without a camera
- debugging classifier or smoothing changes against real sessions
- headless demos

Only landmark input is recorded. Strokes and meshes are always recomputed.
"""

from __future__ import annotations

import json
import time
from dataclasses import asdict, dataclass
from pathlib import Path
from typing import Any, Iterator, Optional

import numpy as np

from airclay.landmarks import as_hand_pose

FORMAT_VERSION = 1


@dataclass
class SessionFrame:
    """One recorded tick."""
    timestamp: float  # seconds from recording start
    width: float
    height: float
    hand: Optional[list[list[float]]] = None  # (21, D) as nested lists


class SessionRecorder:
    """Records landmark ticks to a JSON file.

    Usage:
        recorder = SessionRecorder()
        recorder.start()
        # In the frame loop:
        recorder.add_frame(hand, width, height)
        recorder.save("session.json")
    """

    def __init__(self):
        self._frames: list[SessionFrame] = []
        self._start_time: Optional[float] = None
        self._recording = False

    def start(self):
        self._frames = []
        self._start_time = time.monotonic()
        self._recording = True

    def stop(self) -> int:
        """Stop recording. Returns number of frames captured."""
        self._recording = False
        return len(self._frames)

    def add_frame(self, hand: Any, width: float, height: float, timestamp: Optional[float] = None):
        """Record one tick. Ignored when not recording."""
        if not self._recording:
            return

        if timestamp is None:
            timestamp = time.monotonic() - self._start_time
        pose = as_hand_pose(hand)
        self._frames.append(SessionFrame(
            timestamp=float(timestamp),
            width=float(width),
            height=float(height),
            hand=pose.tolist() if pose is not None else None,
        ))

    def save(self, path: str | Path):
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "version": FORMAT_VERSION,
            "frame_count": len(self._frames),
            "duration": self.duration,
            "frames": [asdict(f) for f in self._frames],
        }
        with open(path, "w") as f:
            json.dump(data, f)

    @property
    def is_recording(self) -> bool:
        return self._recording

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        if not self._frames:
            return 0.0
        return self._frames[-1].timestamp


class SessionPlayer:
    """Replays a recorded landmark session.

    Usage:
        player = SessionPlayer.load("session.json")
        for frame in player.play():
            pipeline.process(frame.hand, frame.width, frame.height)
    """

    def __init__(self, frames: list[SessionFrame]):
        self._frames = frames

    @classmethod
    def load(cls, path: str | Path) -> SessionPlayer:
        with open(path) as f:
            data = json.load(f)

        version = data.get("version", FORMAT_VERSION)
        if version != FORMAT_VERSION:
            raise ValueError(f"Unsupported session format version {version} in {path}")

        frames = [
            SessionFrame(
                timestamp=f["timestamp"],
                width=f["width"],
                height=f["height"],
                hand=f.get("hand"),
            )
            for f in data["frames"]
        ]
        return cls(frames)

    @property
    def frame_count(self) -> int:
        return len(self._frames)

    @property
    def duration(self) -> float:
        if not self._frames:
            return 0.0
        return self._frames[-1].timestamp

    def play(self) -> Iterator[SessionFrame]:
        """Yield every frame immediately, with hands as numpy arrays."""
        for frame in self._frames:
            yield SessionFrame(
                timestamp=frame.timestamp,
                width=frame.width,
                height=frame.height,
                hand=np.array(frame.hand, dtype=np.float64) if frame.hand is not None else None,
            )

    def play_realtime(self, speed: float = 1.0) -> Iterator[SessionFrame]:
        """Yield frames at their recorded timing, scaled by ``speed``."""
        if speed <= 0:
            raise ValueError(f"speed must be positive, got {speed}")

        start = time.monotonic()
        for frame in self.play():
            target = frame.timestamp / speed
            elapsed = time.monotonic() - start
            if target > elapsed:
                time.sleep(target - elapsed)
            yield frame
