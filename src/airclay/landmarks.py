"""Hand landmark layout and input coercion.

The landmark source hands us 21 points per hand in normalized image space.
MediaPipe gives lists of objects with ``.x/.y/.z``, recordings give nested
lists, tests give numpy arrays. Everything is coerced into a float array of
shape (21, 2) or (21, 3) before the classifier sees it.
"""

from __future__ import annotations

from enum import IntEnum
from typing import Any, NamedTuple, Optional

import numpy as np

NUM_LANDMARKS = 21


class HandLandmark(IntEnum):
    """MediaPipe hand landmark indices."""
    WRIST = 0
    THUMB_CMC = 1
    THUMB_MCP = 2
    THUMB_IP = 3
    THUMB_TIP = 4
    INDEX_MCP = 5
    INDEX_PIP = 6
    INDEX_DIP = 7
    INDEX_TIP = 8
    MIDDLE_MCP = 9
    MIDDLE_PIP = 10
    MIDDLE_DIP = 11
    MIDDLE_TIP = 12
    RING_MCP = 13
    RING_PIP = 14
    RING_DIP = 15
    RING_TIP = 16
    PINKY_MCP = 17
    PINKY_PIP = 18
    PINKY_DIP = 19
    PINKY_TIP = 20


class Point(NamedTuple):
    """A 2D point in canvas pixel space."""
    x: float
    y: float


# (tip, pip, mcp) per finger; the thumb uses its IP joint in the PIP slot
FINGER_JOINTS: dict[str, tuple[int, int, int]] = {
    "thumb": (HandLandmark.THUMB_TIP, HandLandmark.THUMB_IP, HandLandmark.THUMB_MCP),
    "index": (HandLandmark.INDEX_TIP, HandLandmark.INDEX_PIP, HandLandmark.INDEX_MCP),
    "middle": (HandLandmark.MIDDLE_TIP, HandLandmark.MIDDLE_PIP, HandLandmark.MIDDLE_MCP),
    "ring": (HandLandmark.RING_TIP, HandLandmark.RING_PIP, HandLandmark.RING_MCP),
    "pinky": (HandLandmark.PINKY_TIP, HandLandmark.PINKY_PIP, HandLandmark.PINKY_MCP),
}


def as_hand_pose(landmarks: Any) -> Optional[np.ndarray]:
    """Coerce a landmark container into a float array of shape (21, D).

    Args:
        landmarks: None, an array-like of shape (21, 2) or (21, 3), or a
            sequence of 21 objects exposing ``x``, ``y`` and optionally ``z``.
            A MediaPipe ``NormalizedLandmarkList`` (anything with a
            ``landmark`` attribute) is unwrapped first.

    Returns:
        The landmark array, or None when no hand was given.

    Raises:
        ValueError: If the input is not 21 points with at least x and y.
    """
    if landmarks is None:
        return None

    if hasattr(landmarks, "landmark"):
        landmarks = landmarks.landmark

    if isinstance(landmarks, np.ndarray):
        pose = landmarks.astype(np.float64, copy=False)
    else:
        items = list(landmarks)
        if items and hasattr(items[0], "x"):
            pose = np.array(
                [[lm.x, lm.y, getattr(lm, "z", 0.0) or 0.0] for lm in items],
                dtype=np.float64,
            )
        else:
            pose = np.asarray(items, dtype=np.float64)

    if pose.ndim != 2 or pose.shape[0] != NUM_LANDMARKS or pose.shape[1] < 2:
        raise ValueError(
            f"Expected {NUM_LANDMARKS} landmarks with at least 2 coordinates, "
            f"got shape {pose.shape}"
        )
    return pose
