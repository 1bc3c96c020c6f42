"""Per-stream tracking state.

A `TrackingContext` threads frame N's results into frame N+1: landmark
positions, the face width used to derive the torso, the background reference,
the previous frame and the skeleton warm start. One context belongs to one
tracker; nothing here is shared between streams.
"""

from __future__ import annotations

from dataclasses import dataclass, field

import numpy as np

from upose.core.tracking.assignment import AssignmentConfig, derive_torso
from upose.core.types import Frame, Landmark, Point


@dataclass
class TrackingContext:
    """Mutable state of one tracking session."""

    frame_size: tuple[int, int]
    landmarks: dict[Landmark, Point]
    face_width: float
    background: np.ndarray | None = None
    previous_frame: Frame | None = None
    skeleton: np.ndarray | None = None
    confidence: dict[Landmark, float] = field(default_factory=dict)
    frame_id: int = 0
    subject_present: bool = False

    @classmethod
    def initial(
        cls,
        frame_size: tuple[int, int],
        config: AssignmentConfig | None = None,
        face_width_fraction: float = 0.1,
    ) -> TrackingContext:
        """Create a context with the default resting pose for a (width, height) frame.

        The face starts at the top center and the hands at the left/right edges,
        half way down.
        """

        cfg = config or AssignmentConfig()
        w, h = frame_size
        face = (w / 2.0, 0.0)
        face_width = max(1.0, face_width_fraction * w)
        landmarks: dict[Landmark, Point] = {
            Landmark.FACE: face,
            Landmark.LEFT_HAND: (0.0, h / 2.0),
            Landmark.RIGHT_HAND: (float(w), h / 2.0),
        }
        landmarks.update(derive_torso(face, face_width, cfg))
        return cls(
            frame_size=(int(w), int(h)),
            landmarks=landmarks,
            face_width=face_width,
            confidence={lm: 1.0 for lm in Landmark},
        )

    @classmethod
    def from_frame(
        cls,
        frame: Frame,
        config: AssignmentConfig | None = None,
        face_width_fraction: float = 0.1,
    ) -> TrackingContext:
        """Create a context whose background reference is `frame`."""

        h, w = frame.shape[:2]
        ctx = cls.initial((w, h), config, face_width_fraction)
        ctx.background = frame.astype(np.float32)
        ctx.previous_frame = frame.copy()
        return ctx

    def background_image(self) -> np.ndarray | None:
        """Return the background reference as uint8, matching the frames."""

        if self.background is None:
            return None
        return np.clip(np.rint(self.background), 0, 255).astype(np.uint8)

    def update_background(self, frame: Frame, rate: float) -> None:
        """Blend `frame` into the running background (rate 0 keeps it fixed)."""

        if self.background is None:
            self.background = frame.astype(np.float32)
            return
        if rate <= 0.0:
            return
        self.background *= 1.0 - rate
        self.background += rate * frame.astype(np.float32)

    def positions(self) -> dict[str, Point]:
        """Return a JSON-friendly copy of the landmark map."""

        return {lm.value: (float(p[0]), float(p[1])) for lm, p in self.landmarks.items()}
