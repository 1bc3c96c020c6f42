"""Overlay drawing helpers (OpenCV).

Draws tracked landmarks and the fitted skeleton onto a copy of the frame. No
windows are opened; callers decide whether to display or encode the result.
"""

from __future__ import annotations

import cv2
import numpy as np

from upose.core.skeleton.model import Skeleton
from upose.core.types import FrameSummary, Landmark

LANDMARK_COLORS: dict[str, tuple[int, int, int]] = {
    Landmark.FACE.value: (0, 255, 0),
    Landmark.LEFT_HAND.value: (255, 0, 0),
    Landmark.RIGHT_HAND.value: (0, 0, 255),
    Landmark.NECK.value: (255, 255, 255),
    Landmark.LEFT_SHOULDER.value: (0, 0, 255),
    Landmark.RIGHT_SHOULDER.value: (0, 0, 255),
}
SKELETON_COLOR = (0, 255, 255)
ELBOW_COLOR = (255, 255, 255)
TEXT_COLOR = (255, 255, 255)


def draw_overlays(frame: np.ndarray, summary: FrameSummary) -> np.ndarray:
    """Return a copy of `frame` with landmarks and skeleton drawn."""

    if not summary.tracking:
        return frame

    img = frame.copy()
    if len(summary.skeleton) == 4 and summary.landmarks:
        anchors = {Landmark(name): p for name, p in summary.landmarks.items()}
        skeleton = Skeleton.from_parameters(anchors, summary.skeleton)
        skeleton.render(img, 2, SKELETON_COLOR)
        for elbow in (skeleton.left_elbow, skeleton.right_elbow):
            cv2.circle(img, (int(round(elbow[0])), int(round(elbow[1]))), 6, ELBOW_COLOR, -1)

    for name, (x, y) in summary.landmarks.items():
        color = LANDMARK_COLORS.get(name, TEXT_COLOR)
        cv2.circle(img, (int(round(x)), int(round(y))), 8, color, -1)

    if summary.cost is not None:
        cv2.putText(
            img,
            f"cost {summary.cost:.0f}",
            (8, 20),
            cv2.FONT_HERSHEY_SIMPLEX,
            0.5,
            TEXT_COLOR,
            1,
            cv2.LINE_AA,
        )
    return img
