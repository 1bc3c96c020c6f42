"""Evidence extraction from raw BGR frames (OpenCV).

Produces the per-frame maps the tracker consumes: a background-subtracted
foreground mask, a YIQ skin mask, a Canny edge map restricted to the
foreground, a motion map and the skin/foreground regions used as landmark
candidates. The tracker only depends on the `EvidenceProvider` protocol, so
these primitives can be swapped for another implementation.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Protocol

import cv2
import numpy as np

from upose.core.types import Candidate, EvidenceMaps, Frame

if TYPE_CHECKING:
    from upose.core.context import TrackingContext


class EvidenceProvider(Protocol):
    """Minimal evidence interface expected by `PoseTracker`."""

    def extract(self, frame: Frame, context: TrackingContext) -> EvidenceMaps:
        """Return evidence maps for `frame` given the session state."""


@dataclass(frozen=True)
class EvidenceConfig:
    foreground_ratio: float = 0.25
    skin_threshold: float = 2.0
    candidate_blur: int = 9
    candidate_threshold: int = 127
    edge_blur: int = 3
    canny_low: float = 32.0
    canny_high: float = 64.0


def _to_gray(frame: Frame) -> np.ndarray:
    if frame.ndim == 3 and frame.shape[2] == 3:
        return cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    return frame


def background_subtract(frame: Frame, background: Frame, ratio: float = 0.25) -> np.ndarray:
    """Return a 0/255 mask of pixels that differ from the background.

    A channel counts as changed when its absolute difference exceeds `ratio`
    times the current intensity, which keeps the test stable under global
    illumination changes.
    """

    diff = cv2.absdiff(frame, background).astype(np.float32)
    changed = diff > ratio * frame.astype(np.float32)
    if changed.ndim == 3:
        changed = changed.any(axis=2)
    return changed.astype(np.uint8) * 255


def skin_regions(frame: Frame, threshold: float = 2.0) -> np.ndarray:
    """Return a 0/255 skin mask from the in-phase (I) component of YIQ.

    Brand and Mason (2000): skin has a strongly positive I component; Y and Q
    are not needed.
    """

    b, g, r = cv2.split(frame.astype(np.float32))
    in_phase = 0.596 * r - 0.274 * g - 0.322 * b
    return (in_phase > threshold).astype(np.uint8) * 255


def edge_map(frame: Frame, blur: int = 3, low: float = 32.0, high: float = 64.0) -> np.ndarray:
    """Return a Canny edge map of the lightly blurred frame."""

    blurred = cv2.blur(_to_gray(frame), (blur, blur))
    return cv2.Canny(blurred, low, high, apertureSize=3)


def motion_map(frame: Frame, previous: Frame | None) -> np.ndarray:
    """Return the grayscale absolute difference with the previous frame."""

    if previous is None or previous.shape != frame.shape:
        return np.zeros(frame.shape[:2], dtype=np.uint8)
    return _to_gray(cv2.absdiff(frame, previous))


def extract_candidates(
    foreground: np.ndarray,
    skin: np.ndarray,
    blur: int = 9,
    threshold: int = 127,
) -> list[Candidate]:
    """Return skin-colored foreground regions, widest first.

    The intersection mask is box-blurred and re-thresholded to drop speckle and
    merge nearby fragments before external contours are extracted. Each
    candidate's centroid is the center of its bounding box.
    """

    tracked = cv2.bitwise_and(foreground, skin)
    tracked = cv2.blur(tracked, (blur, blur))
    binary = (tracked > threshold).astype(np.uint8) * 255

    # OpenCV 3 returns (image, contours, hierarchy); OpenCV 4 drops the image.
    contours = cv2.findContours(binary, cv2.RETR_EXTERNAL, cv2.CHAIN_APPROX_SIMPLE)[-2]

    candidates: list[Candidate] = []
    for contour in contours:
        x, y, w, h = cv2.boundingRect(contour)
        candidates.append(
            Candidate(
                centroid=(x + w / 2.0, y + h / 2.0),
                bbox=(float(x), float(y), float(w), float(h)),
                contour=contour.reshape(-1, 2).astype(np.float64),
            )
        )
    candidates.sort(key=lambda c: c.width, reverse=True)
    return candidates


class OpenCVEvidence:
    """Default `EvidenceProvider` built on OpenCV primitives."""

    def __init__(self, config: EvidenceConfig | None = None) -> None:
        self.config = config or EvidenceConfig()

    def extract(self, frame: Frame, context: TrackingContext) -> EvidenceMaps:
        cfg = self.config
        background = context.background_image()
        if background is None:
            background = frame
        foreground = background_subtract(frame, background, cfg.foreground_ratio)
        skin = skin_regions(frame, cfg.skin_threshold)
        edges = cv2.bitwise_and(edge_map(frame, cfg.edge_blur, cfg.canny_low, cfg.canny_high), foreground)
        return EvidenceMaps(
            foreground=foreground,
            skin=skin,
            edges=edges,
            candidates=extract_candidates(foreground, skin, cfg.candidate_blur, cfg.candidate_threshold),
            motion=motion_map(frame, context.previous_frame),
        )
