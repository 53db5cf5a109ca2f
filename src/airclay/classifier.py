"""Drawing gesture classification from hand landmark geometry."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Optional

import numpy as np

from airclay.landmarks import FINGER_JOINTS, HandLandmark, Point, as_hand_pose


class FingerState(Enum):
    """Binary finger state based on landmark positions."""
    EXTENDED = "extended"
    CURLED = "curled"


class GestureState(Enum):
    """Whether the user is currently drawing."""
    IDLE = "idle"
    DRAWING = "drawing"


@dataclass
class Classification:
    """Result of classifying one frame."""
    drawing: bool
    fingertip: Optional[Point] = None
    fingers: dict[str, FingerState] = field(default_factory=dict)

    @property
    def state(self) -> GestureState:
        return GestureState.DRAWING if self.drawing else GestureState.IDLE


def is_finger_extended(pose: np.ndarray, finger: str) -> bool:
    """A finger is extended when tip, PIP and MCP rise monotonically in image y.

    Image y grows downwards, so "rising" means strictly decreasing y. No angle
    computation is involved, which keeps the check independent of hand scale.
    """
    tip, pip, mcp = FINGER_JOINTS[finger]
    return bool(pose[tip, 1] < pose[pip, 1] < pose[mcp, 1])


class GestureClassifier:
    """Classifies hand poses into the index-only "draw" gesture.

    The drawing signal is true iff the index finger is extended and the
    middle, ring and pinky fingers are not. The thumb is ignored.

    Usage:
        classifier = GestureClassifier()
        result = classifier.classify(landmarks, width=640, height=480)
        if result.drawing:
            stroke.append(result.fingertip)
    """

    DRAW_FINGER = "index"
    BLOCKING_FINGERS = ("middle", "ring", "pinky")

    def finger_states(self, pose: np.ndarray) -> dict[str, FingerState]:
        """Determine extension state of each finger."""
        return {
            name: FingerState.EXTENDED if is_finger_extended(pose, name) else FingerState.CURLED
            for name in FINGER_JOINTS
        }

    def classify(self, hand: Any, width: float, height: float) -> Classification:
        """Classify one frame.

        Args:
            hand: Hand landmarks (anything ``as_hand_pose`` accepts) or None
                when no hand is in view.
            width: Canvas width in pixels.
            height: Canvas height in pixels.

        Returns:
            Classification with the drawing signal and the raw index fingertip
            scaled into canvas pixels. No hand gives ``drawing=False`` and no
            fingertip; a non-finite fingertip never draws.
        """
        if width <= 0 or height <= 0:
            raise ValueError(f"Canvas size must be positive, got {width}x{height}")

        pose = as_hand_pose(hand)
        if pose is None:
            return Classification(drawing=False)

        fingers = self.finger_states(pose)
        drawing = fingers[self.DRAW_FINGER] == FingerState.EXTENDED and all(
            fingers[name] == FingerState.CURLED for name in self.BLOCKING_FINGERS
        )

        tip = pose[HandLandmark.INDEX_TIP]
        fingertip = Point(float(tip[0]) * width, float(tip[1]) * height)
        if not (math.isfinite(fingertip.x) and math.isfinite(fingertip.y)):
            drawing = False
        return Classification(drawing=drawing, fingertip=fingertip, fingers=fingers)
