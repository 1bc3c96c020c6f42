"""Frame-to-frame assignment of candidate regions to named landmarks.

Each frame, the widest skin/foreground regions are scored against the face and
hand slots with a cost matrix (distance from the previous position plus a
positional bias). Slots take their cheapest candidate when it beats a reject
threshold scaled to the frame diagonal; otherwise they hold their last value.
Neck and shoulders are derived from the face box rather than tracked.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from upose.core.types import TRACKED_SLOTS, Candidate, Landmark, Point

if TYPE_CHECKING:
    from upose.core.context import TrackingContext

logger = logging.getLogger(__name__)

UNASSIGNED = -1

HAND_SHOULDER: dict[Landmark, Landmark] = {
    Landmark.LEFT_HAND: Landmark.LEFT_SHOULDER,
    Landmark.RIGHT_HAND: Landmark.RIGHT_SHOULDER,
}


@dataclass(frozen=True)
class AssignmentConfig:
    min_candidates: int = 3
    max_candidates: int | None = 3
    reject_divisor: float = 64.0
    face_bias_weight: float = 1.0
    hand_bias_weight: float = 1.0
    size_weight: float = 0.0
    exclusive: bool = False
    refine_hands: bool = True
    # Torso geometry in face-box widths.
    neck_drop: float = 1.0
    shoulder_span: float = 1.0
    shoulder_drop: float = 0.5


def derive_torso(face: Point, face_width: float, config: AssignmentConfig) -> dict[Landmark, Point]:
    """Return neck and shoulder positions implied by the face centroid and box width."""

    fx, fy = float(face[0]), float(face[1])
    fw = float(face_width)
    neck = (fx, fy + config.neck_drop * fw)
    shoulder_y = neck[1] + config.shoulder_drop * fw
    return {
        Landmark.NECK: neck,
        Landmark.LEFT_SHOULDER: (neck[0] - config.shoulder_span * fw, shoulder_y),
        Landmark.RIGHT_SHOULDER: (neck[0] + config.shoulder_span * fw, shoulder_y),
    }


def hand_extremity(candidate: Candidate, shoulder: Point) -> Point:
    """Return the contour point opposite the one closest to `shoulder`.

    Sleeves and forearms stretch the hand blob towards the body; the far end of
    the contour is a better hand estimate than the centroid. Contours with fewer
    than two points fall back to the centroid.
    """

    contour = candidate.contour
    if contour is None:
        return candidate.centroid
    pts = np.asarray(contour, dtype=np.float64).reshape(-1, 2)
    n = len(pts)
    if n < 2:
        return candidate.centroid
    d2 = ((pts - np.asarray(shoulder, dtype=np.float64)) ** 2).sum(axis=1)
    closest = int(d2.argmin())
    x, y = pts[(closest + n // 2) % n]
    return (float(x), float(y))


def rank_candidates(candidates: Sequence[Candidate], limit: int | None) -> list[Candidate]:
    """Return candidates sorted widest first, truncated to `limit`."""

    ranked = sorted(candidates, key=lambda c: c.width, reverse=True)
    if limit is not None:
        ranked = ranked[:limit]
    return ranked


class LandmarkAssigner:
    """Cost-matrix assignment of candidates to the face and hand slots."""

    def __init__(self, config: AssignmentConfig | None = None) -> None:
        self.config = config or AssignmentConfig()

    def reject_threshold(self, frame_size: tuple[int, int]) -> int:
        """Return the adaptive reject cost for a (width, height) frame."""

        w, h = frame_size
        return int((w * w + h * h) / self.config.reject_divisor)

    def cost_matrix(
        self,
        candidates: Sequence[Candidate],
        previous: Mapping[Landmark, Point],
        frame_size: tuple[int, int],
    ) -> np.ndarray:
        """Return an (n_candidates, 3) int64 matrix of non-negative costs."""

        cfg = self.config
        if not candidates:
            return np.zeros((0, len(TRACKED_SLOTS)), dtype=np.int64)

        centroids = np.array([c.centroid for c in candidates], dtype=np.float64)
        widths = np.array([c.width for c in candidates], dtype=np.float64)
        prev = np.array([previous[slot] for slot in TRACKED_SLOTS], dtype=np.float64)

        dist = np.linalg.norm(centroids[:, None, :] - prev[None, :, :], axis=2)
        frame_w = float(frame_size[0])
        bias = np.stack(
            [
                cfg.face_bias_weight * centroids[:, 1],
                cfg.hand_bias_weight * centroids[:, 0],
                cfg.hand_bias_weight * (frame_w - centroids[:, 0]),
            ],
            axis=1,
        )
        costs = dist + bias - cfg.size_weight * widths[:, None]
        return np.maximum(np.trunc(costs), 0.0).astype(np.int64)

    def select(self, costs: np.ndarray, threshold: int) -> list[int]:
        """Return, per slot, the chosen candidate row or `UNASSIGNED`."""

        n_slots = len(TRACKED_SLOTS)
        indices = [UNASSIGNED] * n_slots
        if costs.size == 0:
            return indices

        if not self.config.exclusive:
            # Slot-independent minimum: one region may serve several slots.
            for p in range(n_slots):
                i = int(costs[:, p].argmin())
                if costs[i, p] < threshold:
                    indices[p] = i
            return indices

        work = costs.astype(np.float64)
        while True:
            i, p = divmod(int(work.argmin()), work.shape[1])
            if not work[i, p] < threshold:
                break
            indices[p] = i
            work[i, :] = np.inf
            work[:, p] = np.inf
        return indices

    def update(self, context: TrackingContext, candidates: Sequence[Candidate]) -> list[Landmark]:
        """Update landmark positions in `context`; return the landmarks that moved."""

        cfg = self.config
        if len(candidates) < cfg.min_candidates:
            logger.debug(
                "Only %d candidates (< %d); holding previous pose",
                len(candidates),
                cfg.min_candidates,
            )
            return []

        ranked = rank_candidates(candidates, cfg.max_candidates)
        costs = self.cost_matrix(ranked, context.landmarks, context.frame_size)
        indices = self.select(costs, self.reject_threshold(context.frame_size))

        updated: list[Landmark] = []
        chosen: dict[Landmark, Candidate] = {}
        for slot, idx in zip(TRACKED_SLOTS, indices):
            if idx == UNASSIGNED:
                continue
            cand = ranked[idx]
            chosen[slot] = cand
            context.landmarks[slot] = (float(cand.centroid[0]), float(cand.centroid[1]))
            updated.append(slot)

        face = chosen.get(Landmark.FACE)
        if face is not None:
            if face.width > 0:
                context.face_width = face.width
            context.landmarks.update(
                derive_torso(context.landmarks[Landmark.FACE], context.face_width, cfg)
            )
            updated.extend([Landmark.NECK, Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER])

        if cfg.refine_hands:
            for hand, shoulder in HAND_SHOULDER.items():
                cand = chosen.get(hand)
                if cand is not None:
                    context.landmarks[hand] = hand_extremity(cand, context.landmarks[shoulder])

        if not updated:
            logger.debug("No candidate beat the reject threshold; holding previous pose")
        return updated
