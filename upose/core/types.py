"""Shared type definitions used across the tracker.

This module centralizes the small, stable types (points, boxes, candidates,
landmark names, evidence maps and per-frame summaries) so assignment, skeleton
and pipeline code can stay strongly typed.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

import numpy as np

Frame = np.ndarray

Point = tuple[float, float]
# x, y, width, height
BBox = tuple[float, float, float, float]


class Landmark(str, Enum):
    """Named anatomical points tracked by the engine."""

    FACE = "face"
    LEFT_HAND = "left_hand"
    RIGHT_HAND = "right_hand"
    NECK = "neck"
    LEFT_SHOULDER = "left_shoulder"
    RIGHT_SHOULDER = "right_shoulder"


# Slots filled from per-frame candidates (columns of the cost matrix).
TRACKED_SLOTS: tuple[Landmark, ...] = (Landmark.FACE, Landmark.LEFT_HAND, Landmark.RIGHT_HAND)


@dataclass
class Candidate:
    """A detected skin/foreground region competing for a landmark slot."""

    centroid: Point
    bbox: BBox
    contour: np.ndarray | None = None  # shape: (N, 2) -> x, y

    @property
    def width(self) -> float:
        return float(self.bbox[2])

    @property
    def height(self) -> float:
        return float(self.bbox[3])


@dataclass
class EvidenceMaps:
    """Per-frame evidence delivered by the image-processing collaborator.

    The tracker reads `foreground`, `skin`, `edges` and `candidates`. `motion`
    is carried for callers that render or log it; nothing in the core reads it.
    """

    foreground: np.ndarray
    skin: np.ndarray
    edges: np.ndarray
    candidates: list[Candidate] = field(default_factory=list)
    motion: np.ndarray | None = None

    @property
    def frame_size(self) -> tuple[int, int]:
        """Return (width, height) of the maps."""

        h, w = self.foreground.shape[:2]
        return int(w), int(h)


@dataclass
class FrameSummary:
    """Metadata payload associated with a processed frame."""

    frame_id: int
    timestamp: float
    landmarks: dict[str, Point]
    skeleton: list[float]
    confidence: dict[str, float]
    updated: list[str] = field(default_factory=list)
    cost: float | None = None
    tracking: bool = False
    fps: float = 0.0
    frame_size: tuple[int, int] = (0, 0)
    profile: dict[str, float] | None = None
