"""Upper-body skeleton model and its image-agreement cost.

The skeleton is anchored on tracked landmarks (face, neck, shoulders, hands);
the elbows are the only free parameters. A candidate skeleton is drawn as thick
line segments and scored against an edge/foreground evidence map: long bones
are penalized, pixels that land on evidence are rewarded.
"""

from __future__ import annotations

import math
from collections.abc import Mapping, Sequence
from dataclasses import dataclass

import cv2
import numpy as np

from upose.core.errors import ConfigurationError
from upose.core.types import Landmark, Point

# left elbow (x, y), right elbow (x, y)
SKELETON_DIMENSION = 4

Segment = tuple[Point, Point]

# Drawing coordinates are clamped to this many frame sizes around the image so
# runaway parameters cannot overflow OpenCV's int32 points.
_DRAW_MARGIN = 4


@dataclass(frozen=True)
class SkeletonConfig:
    stroke_width: int = 9
    length_weight: float = 1.0
    agreement_weight: float = 1.0


@dataclass(frozen=True)
class Skeleton:
    """Two-segment arms hanging from shoulders joined at the neck."""

    face: Point
    neck: Point
    left_shoulder: Point
    right_shoulder: Point
    left_hand: Point
    right_hand: Point
    left_elbow: Point
    right_elbow: Point

    @classmethod
    def from_parameters(cls, anchors: Mapping[Landmark, Point], params: Sequence[float]) -> Skeleton:
        """Build a skeleton from landmark anchors and elbow parameters."""

        if len(params) != SKELETON_DIMENSION:
            raise ConfigurationError(
                f"expected {SKELETON_DIMENSION} skeleton parameters, got {len(params)}"
            )
        return cls(
            face=_pt(anchors[Landmark.FACE]),
            neck=_pt(anchors[Landmark.NECK]),
            left_shoulder=_pt(anchors[Landmark.LEFT_SHOULDER]),
            right_shoulder=_pt(anchors[Landmark.RIGHT_SHOULDER]),
            left_hand=_pt(anchors[Landmark.LEFT_HAND]),
            right_hand=_pt(anchors[Landmark.RIGHT_HAND]),
            left_elbow=(float(params[0]), float(params[1])),
            right_elbow=(float(params[2]), float(params[3])),
        )

    @classmethod
    def from_segments(cls, segments: Sequence[Segment]) -> Skeleton:
        """Rebuild a skeleton from the ordered segments produced by `segments()`."""

        if len(segments) != 7:
            raise ConfigurationError(f"expected 7 skeleton segments, got {len(segments)}")
        (lh, le), (_, ls), (_, neck), (rh, re), (_, rs), _, (_, face) = segments
        return cls(
            face=face,
            neck=neck,
            left_shoulder=ls,
            right_shoulder=rs,
            left_hand=lh,
            right_hand=rh,
            left_elbow=le,
            right_elbow=re,
        )

    def parameters(self) -> np.ndarray:
        return np.array([*self.left_elbow, *self.right_elbow], dtype=np.float64)

    def segments(self) -> list[Segment]:
        """Return connected segments: hand->elbow->shoulder->neck per arm, then neck->face."""

        return [
            (self.left_hand, self.left_elbow),
            (self.left_elbow, self.left_shoulder),
            (self.left_shoulder, self.neck),
            (self.right_hand, self.right_elbow),
            (self.right_elbow, self.right_shoulder),
            (self.right_shoulder, self.neck),
            (self.neck, self.face),
        ]

    def length(self) -> float:
        return sum(math.dist(a, b) for a, b in self.segments())

    def render(
        self,
        canvas: np.ndarray,
        stroke_width: int,
        color: int | tuple[int, int, int] = 255,
    ) -> np.ndarray:
        """Draw the segments onto `canvas` in place and return it."""

        h, w = canvas.shape[:2]
        for a, b in self.segments():
            cv2.line(canvas, _draw_pt(a, w, h), _draw_pt(b, w, h), color, int(stroke_width))
        return canvas

    def bounds(self, pad: float, frame_size: tuple[int, int]) -> tuple[int, int, int, int] | None:
        """Return the padded (x1, y1, x2, y2) pixel box covering the skeleton, clipped to the frame."""

        w, h = frame_size
        pts = np.array([p for seg in self.segments() for p in seg], dtype=np.float64)
        x1 = max(0, int(math.floor(pts[:, 0].min() - pad)))
        y1 = max(0, int(math.floor(pts[:, 1].min() - pad)))
        x2 = min(w, int(math.ceil(pts[:, 0].max() + pad)) + 1)
        y2 = min(h, int(math.ceil(pts[:, 1].max() + pad)) + 1)
        if x2 <= x1 or y2 <= y1:
            return None
        return x1, y1, x2, y2


def _pt(p: Point) -> Point:
    return (float(p[0]), float(p[1]))


def _draw_pt(p: Point, w: int, h: int) -> tuple[int, int]:
    lim_x = _DRAW_MARGIN * max(w, 1)
    lim_y = _DRAW_MARGIN * max(h, 1)
    x = min(max(p[0], -lim_x), lim_x)
    y = min(max(p[1], -lim_y), lim_y)
    return int(round(x)), int(round(y))


class SkeletonCost:
    """Cost evaluator: `length_penalty - agreement_reward` for elbow parameters.

    The evaluator closes over the anchors and evidence of one frame. The
    evidence is copied into a boolean mask; drawing happens on a private
    scratch canvas that is cleared after each evaluation.
    """

    dimension = SKELETON_DIMENSION

    def __init__(
        self,
        anchors: Mapping[Landmark, Point],
        evidence: np.ndarray,
        config: SkeletonConfig | None = None,
    ) -> None:
        self.config = config or SkeletonConfig()
        if self.config.stroke_width <= 0:
            raise ConfigurationError("stroke_width must be >= 1")
        self.anchors = {lm: _pt(p) for lm, p in anchors.items()}
        mask = np.asarray(evidence)
        if mask.ndim == 3:
            mask = mask.any(axis=2)
        self._evidence = mask > 0
        h, w = self._evidence.shape
        self.frame_size = (int(w), int(h))
        self._canvas = np.zeros((h, w), dtype=np.uint8)
        self.evaluations = 0

    def skeleton(self, params: Sequence[float]) -> Skeleton:
        return Skeleton.from_parameters(self.anchors, params)

    def agreement(self, skeleton: Skeleton) -> int:
        """Count drawn pixels that coincide with evidence pixels."""

        box = skeleton.bounds(self.config.stroke_width, self.frame_size)
        if box is None:
            return 0
        x1, y1, x2, y2 = box
        skeleton.render(self._canvas, self.config.stroke_width)
        roi = self._canvas[y1:y2, x1:x2]
        hits = int(np.count_nonzero((roi > 0) & self._evidence[y1:y2, x1:x2]))
        roi.fill(0)
        return hits

    def __call__(self, params: Sequence[float]) -> float:
        self.evaluations += 1
        sk = self.skeleton(params)
        cfg = self.config
        return cfg.length_weight * sk.length() - cfg.agreement_weight * float(self.agreement(sk))
