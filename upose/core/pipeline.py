"""Per-frame pose tracking orchestration.

This module ties together evidence extraction, landmark localization and the
skeleton fit into a single per-frame step. State flows from one frame to the
next only through the tracker's `TrackingContext`.
"""

from __future__ import annotations

import logging
import time

import numpy as np

from upose.core.config.settings import TrackerSettings
from upose.core.context import TrackingContext
from upose.core.errors import ConfigurationError
from upose.core.evidence import EvidenceConfig, EvidenceProvider, OpenCVEvidence
from upose.core.optim.search import Optimizer, make_optimizer
from upose.core.skeleton.model import SKELETON_DIMENSION, SkeletonConfig, SkeletonCost
from upose.core.tracking.assignment import AssignmentConfig, LandmarkAssigner, derive_torso
from upose.core.tracking.priors import PriorConfig, locate, prior_value, spatial_prior, weight_likelihood
from upose.core.types import TRACKED_SLOTS, EvidenceMaps, Frame, FrameSummary, Landmark

logger = logging.getLogger(__name__)

TORSO = (Landmark.NECK, Landmark.LEFT_SHOULDER, Landmark.RIGHT_SHOULDER)


class PoseTracker:
    """End-to-end per-frame upper-body tracking for one video stream.

    Responsibilities:
    - wait until a subject is present at the frame center
    - move the face and hand landmarks (cost-matrix assignment or prior argmax)
    - fit the elbows by minimizing the skeleton cost, warm-started from the
      previous frame's solution
    """

    def __init__(
        self,
        evidence: EvidenceProvider | None = None,
        assigner: LandmarkAssigner | None = None,
        optimizer: Optimizer | None = None,
        skeleton_config: SkeletonConfig | None = None,
        prior_config: PriorConfig | None = None,
        *,
        localization: str = "assignment",
        iterations: int = 200,
        background_rate: float = 0.0,
        wait_for_subject: bool = True,
        face_width_fraction: float = 0.1,
        seed: int | np.random.Generator | None = 0,
    ) -> None:
        """Create a tracker with optional injected components."""

        if localization not in {"assignment", "prior"}:
            raise ConfigurationError(f"unknown localization mode: {localization}")
        if iterations < 0:
            raise ConfigurationError("iterations must be >= 0")
        self.evidence: EvidenceProvider = evidence or OpenCVEvidence()
        self.assigner = assigner or LandmarkAssigner()
        self.rng = np.random.default_rng(seed)
        self.optimizer: Optimizer = optimizer or make_optimizer("simplex", 8.0)
        self.skeleton_config = skeleton_config or SkeletonConfig()
        self.prior_config = prior_config or PriorConfig()
        self.localization = localization
        self.iterations = int(iterations)
        self.background_rate = float(background_rate)
        self.wait_for_subject = bool(wait_for_subject)
        self.face_width_fraction = float(face_width_fraction)
        self.context: TrackingContext | None = None
        # Use a monotonic clock for FPS deltas; keep wall-clock timestamps for payloads.
        self._last_fps_at = time.perf_counter()
        self._fps = 0.0

    @classmethod
    def from_settings(
        cls,
        settings: TrackerSettings | None = None,
        evidence: EvidenceProvider | None = None,
    ) -> PoseTracker:
        """Build a tracker whose components are configured from `settings`."""

        s = settings or TrackerSettings()
        rng = np.random.default_rng(s.random_seed)
        assigner = LandmarkAssigner(
            AssignmentConfig(
                min_candidates=s.min_candidates,
                max_candidates=s.max_candidates,
                reject_divisor=s.reject_divisor,
                face_bias_weight=s.face_bias_weight,
                hand_bias_weight=s.hand_bias_weight,
                size_weight=s.size_weight,
                exclusive=s.exclusive_assignment,
                refine_hands=s.refine_hands,
                neck_drop=s.neck_drop,
                shoulder_span=s.shoulder_span,
                shoulder_drop=s.shoulder_drop,
            )
        )
        evidence = evidence or OpenCVEvidence(
            EvidenceConfig(
                foreground_ratio=s.foreground_ratio,
                skin_threshold=s.skin_threshold,
                candidate_blur=s.candidate_blur,
                candidate_threshold=s.candidate_threshold,
                edge_blur=s.edge_blur,
                canny_low=s.canny_low,
                canny_high=s.canny_high,
            )
        )
        tracker = cls(
            evidence=evidence,
            assigner=assigner,
            optimizer=make_optimizer(
                s.optimizer, s.optimizer_radius, seed=rng, tolerance=s.simplex_tolerance
            ),
            skeleton_config=SkeletonConfig(
                stroke_width=s.stroke_width,
                length_weight=s.length_weight,
                agreement_weight=s.agreement_weight,
            ),
            prior_config=PriorConfig(
                scale=s.prior_scale,
                bounds_x=s.prior_bounds_x,
                bounds_y=s.prior_bounds_y,
            ),
            localization=s.localization,
            iterations=s.optimizer_iterations,
            background_rate=s.background_rate,
            wait_for_subject=s.wait_for_subject,
            face_width_fraction=s.initial_face_width_fraction,
            seed=rng,
        )
        return tracker

    def _ensure_context(self, frame_size: tuple[int, int], frame: Frame | None = None) -> TrackingContext:
        """Lazy-initialize the context from the first frame (or its size)."""

        if self.context is None:
            if frame is not None:
                self.context = TrackingContext.from_frame(
                    frame, self.assigner.config, self.face_width_fraction
                )
            else:
                self.context = TrackingContext.initial(
                    frame_size, self.assigner.config, self.face_width_fraction
                )
        elif self.context.frame_size != tuple(frame_size):
            raise ConfigurationError(
                f"frame size {frame_size} does not match session size {self.context.frame_size}"
            )
        return self.context

    def _subject_at_center(self, evidence: EvidenceMaps) -> bool:
        fg = evidence.foreground
        h, w = fg.shape[:2]
        return bool(np.any(fg[h // 2, w // 2]))

    def _localize_by_prior(self, ctx: TrackingContext, evidence: EvidenceMaps) -> list[Landmark]:
        """Move each tracked slot to the argmax of prior * foreground * skin."""

        cfg = self.prior_config
        shape = evidence.foreground.shape[:2]
        updated: list[Landmark] = []
        for slot in TRACKED_SLOTS:
            prior = spatial_prior(shape, ctx.landmarks[slot], cfg.scale, cfg.bounds_x, cfg.bounds_y)
            pos, conf = locate(weight_likelihood(prior, evidence.foreground, evidence.skin))
            ctx.confidence[slot] = conf
            if pos is None:
                continue
            ctx.landmarks[slot] = pos
            updated.append(slot)

        if Landmark.FACE in updated:
            ctx.landmarks.update(
                derive_torso(ctx.landmarks[Landmark.FACE], ctx.face_width, self.assigner.config)
            )
            updated.extend(TORSO)
        for lm in TORSO:
            ctx.confidence[lm] = ctx.confidence[Landmark.FACE]
        return updated

    def _localize_by_assignment(self, ctx: TrackingContext, evidence: EvidenceMaps) -> list[Landmark]:
        """Assign candidates to slots; confidence is the prior around the old position."""

        cfg = self.prior_config
        previous = dict(ctx.landmarks)
        updated = self.assigner.update(ctx, evidence.candidates)
        for lm in updated:
            ctx.confidence[lm] = prior_value(
                ctx.landmarks[lm], previous[lm], cfg.scale, cfg.bounds_x, cfg.bounds_y
            )
        return updated

    def _initial_parameters(self, frame_size: tuple[int, int]) -> np.ndarray:
        """Draw a random elbow seed inside the frame (first use only)."""

        w, h = frame_size
        high = np.array([w, h] * (SKELETON_DIMENSION // 2), dtype=np.float64)
        return self.rng.uniform(0.0, 1.0, size=SKELETON_DIMENSION) * high

    def _fit_skeleton(self, ctx: TrackingContext, evidence: EvidenceMaps) -> float:
        """Refine the elbow parameters in place; return the final cost."""

        cost_fn = SkeletonCost(ctx.landmarks, evidence.edges, self.skeleton_config)
        seed = ctx.skeleton if ctx.skeleton is not None else self._initial_parameters(ctx.frame_size)
        ctx.skeleton = self.optimizer.optimize(cost_fn, SKELETON_DIMENSION, self.iterations, seed)
        return float(cost_fn(ctx.skeleton))

    def _update_fps(self) -> None:
        now_perf = time.perf_counter()
        dt = now_perf - self._last_fps_at
        if dt > 0:
            instant_fps = 1.0 / dt
            alpha = 0.1
            self._fps = (
                instant_fps if self._fps == 0 else (self._fps * (1.0 - alpha) + instant_fps * alpha)
            )
        self._last_fps_at = now_perf

    def _step_internal(
        self,
        evidence: EvidenceMaps,
        profile: bool,
        timings: dict[str, float],
    ) -> FrameSummary:
        ctx = self._ensure_context(evidence.frame_size)
        ctx.frame_id += 1

        updated: list[Landmark] = []
        cost: float | None = None
        tracking = ctx.subject_present or not self.wait_for_subject
        if tracking:
            t0 = time.perf_counter() if profile else 0.0
            if self.localization == "prior":
                updated = self._localize_by_prior(ctx, evidence)
            else:
                updated = self._localize_by_assignment(ctx, evidence)
            t1 = time.perf_counter() if profile else 0.0
            cost = self._fit_skeleton(ctx, evidence)
            t2 = time.perf_counter() if profile else 0.0
            if profile:
                timings["localize_ms"] = (t1 - t0) * 1000.0
                timings["fit_ms"] = (t2 - t1) * 1000.0
                timings["candidates"] = float(len(evidence.candidates))
        elif self._subject_at_center(evidence):
            ctx.subject_present = True
            logger.info("Subject detected at frame %d; tracking starts next frame", ctx.frame_id)

        self._update_fps()
        return FrameSummary(
            frame_id=ctx.frame_id,
            timestamp=time.time(),
            landmarks=ctx.positions(),
            skeleton=[] if ctx.skeleton is None else [float(v) for v in ctx.skeleton],
            confidence={lm.value: float(c) for lm, c in ctx.confidence.items()},
            updated=[lm.value for lm in updated],
            cost=cost,
            tracking=tracking,
            fps=self._fps,
            frame_size=ctx.frame_size,
        )

    def step(self, evidence: EvidenceMaps) -> FrameSummary:
        """Advance the session by one frame of ready-made evidence."""

        return self._step_internal(evidence, profile=False, timings={})

    def _process_internal(
        self,
        frame: Frame,
        profile: bool,
    ) -> tuple[FrameSummary, Frame, dict[str, float]]:
        """Process one frame and return (summary, frame, timings)."""

        timings: dict[str, float] = {}
        t_all0 = time.perf_counter() if profile else 0.0

        h, w = frame.shape[:2]
        ctx = self._ensure_context((w, h), frame)

        t_ev0 = time.perf_counter() if profile else 0.0
        evidence = self.evidence.extract(frame, ctx)
        if profile:
            timings["evidence_ms"] = (time.perf_counter() - t_ev0) * 1000.0

        summary = self._step_internal(evidence, profile, timings)

        ctx.update_background(frame, self.background_rate)
        ctx.previous_frame = frame.copy()

        if profile:
            timings["pipeline_ms"] = (time.perf_counter() - t_all0) * 1000.0
            summary.profile = timings
        return summary, frame, timings

    def process(self, frame: Frame) -> tuple[FrameSummary, Frame]:
        """Process a raw BGR frame and return (summary, frame)."""

        summary, out_frame, _timings = self._process_internal(frame, profile=False)
        return summary, out_frame

    def process_with_profile(self, frame: Frame) -> tuple[FrameSummary, Frame, dict[str, float]]:
        """Process a frame and return (summary, frame, timings).

        The `timings` dict contains stage durations in milliseconds and can be
        used by the CLI tooling.
        """

        return self._process_internal(frame, profile=True)
