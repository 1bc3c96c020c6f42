import numpy as np
import pytest

from upose.core.config.settings import TrackerSettings
from upose.core.errors import ConfigurationError
from upose.core.optim.search import DownhillSimplex, LocalRandomSearch
from upose.core.pipeline import PoseTracker
from upose.core.tracking.priors import PriorConfig, prior_value
from upose.core.types import Candidate, EvidenceMaps

SKIN_BGR = (80, 120, 200)
BODY_BGR = (200, 60, 40)


def _cand(x, y, w, h):
    return Candidate(centroid=(x + w / 2.0, y + h / 2.0), bbox=(x, y, w, h))


def _evidence(w=600, h=480, candidates=None, center=False):
    fg = np.zeros((h, w), dtype=np.uint8)
    if center:
        fg[h // 2, w // 2] = 255
    return EvidenceMaps(
        foreground=fg,
        skin=np.zeros((h, w), dtype=np.uint8),
        edges=np.zeros((h, w), dtype=np.uint8),
        candidates=list(candidates or []),
    )


def _scenario():
    return [_cand(10, 10, 20, 20), _cand(300, 240, 30, 30), _cand(590, 10, 20, 20)]


class RecordingOptimizer:
    def __init__(self):
        self.seeds = []

    def optimize(self, cost_fn, dimension, iterations, params):
        self.seeds.append(np.array(params, dtype=np.float64))
        return np.array(params, dtype=np.float64) + 1.0


def test_step_assigns_scenario_candidates():
    tracker = PoseTracker(wait_for_subject=False, iterations=5)
    summary = tracker.step(_evidence(candidates=_scenario()))

    assert summary.tracking is True
    assert summary.landmarks["face"] == (20.0, 20.0)
    assert summary.landmarks["left_hand"] == (20.0, 20.0)
    assert summary.landmarks["right_hand"] == (600.0, 20.0)
    assert "face" in summary.updated
    assert len(summary.skeleton) == 4
    assert summary.cost is not None
    assert summary.frame_size == (600, 480)


def test_step_holds_pose_without_enough_candidates():
    tracker = PoseTracker(wait_for_subject=False, iterations=2)
    first = tracker.step(_evidence(candidates=_scenario()))
    for _ in range(100):
        summary = tracker.step(_evidence(candidates=_scenario()[:2]))
        assert summary.updated == []
    assert summary.landmarks == first.landmarks
    assert summary.frame_id == 101


def test_skeleton_is_warm_started_from_previous_frame():
    opt = RecordingOptimizer()
    tracker = PoseTracker(optimizer=opt, wait_for_subject=False, seed=3)
    first = tracker.step(_evidence())
    second = tracker.step(_evidence())

    w, h = 600, 480
    seed0 = opt.seeds[0]
    assert ((seed0 >= 0) & (seed0 <= np.array([w, h, w, h]))).all()
    assert np.allclose(opt.seeds[1], first.skeleton)
    assert np.allclose(second.skeleton, np.array(first.skeleton) + 1.0)


def test_tracking_waits_for_subject_at_frame_center():
    tracker = PoseTracker(iterations=2)
    s1 = tracker.step(_evidence(candidates=_scenario()))
    assert s1.tracking is False
    assert s1.skeleton == []

    s2 = tracker.step(_evidence(candidates=_scenario(), center=True))
    assert s2.tracking is False
    assert tracker.context.subject_present is True

    s3 = tracker.step(_evidence(candidates=_scenario()))
    assert s3.tracking is True
    assert s3.landmarks["face"] == (20.0, 20.0)


def test_frame_size_change_raises():
    tracker = PoseTracker(wait_for_subject=False, iterations=1)
    tracker.step(_evidence())
    with pytest.raises(ConfigurationError):
        tracker.step(_evidence(w=320, h=240))


def test_invalid_constructor_arguments_raise():
    with pytest.raises(ConfigurationError):
        PoseTracker(localization="magic")
    with pytest.raises(ConfigurationError):
        PoseTracker(iterations=-1)


def test_prior_localization_moves_to_argmax_with_confidence():
    prior = PriorConfig(scale=1.0, bounds_x=(-10.0, 10.0), bounds_y=(-10.0, 10.0))
    tracker = PoseTracker(
        prior_config=prior, localization="prior", wait_for_subject=False, iterations=1
    )
    ev = _evidence(w=200, h=100)
    ev.foreground[5:11, 95:106] = 255
    ev.skin[5:11, 95:106] = 255

    summary = tracker.step(ev)
    assert summary.landmarks["face"] == (100.0, 5.0)
    expected = prior_value((100, 5), (100, 0), 1.0, (-10.0, 10.0), (-10.0, 10.0))
    assert summary.confidence["face"] == pytest.approx(expected)
    assert summary.confidence["neck"] == pytest.approx(expected)
    assert "neck" in summary.updated


def test_prior_localization_without_evidence_holds():
    tracker = PoseTracker(localization="prior", wait_for_subject=False, iterations=1)
    first = tracker.step(_evidence(w=200, h=100))
    assert first.updated == []
    assert first.landmarks["face"] == (100.0, 0.0)
    assert first.confidence["face"] == 0.0
    assert first.confidence["left_hand"] == 0.0


def test_assignment_confidence_reflects_jump_size():
    tracker = PoseTracker(wait_for_subject=False, iterations=1)
    summary = tracker.step(_evidence(candidates=_scenario()))
    assert 0.0 <= summary.confidence["face"] < 1.0
    assert summary.confidence["right_hand"] < 1.0


def test_from_settings_wires_components():
    settings = TrackerSettings(
        optimizer="simplex",
        optimizer_iterations=7,
        exclusive_assignment=True,
        stroke_width=5,
        localization="prior",
        wait_for_subject=False,
    )
    tracker = PoseTracker.from_settings(settings)
    assert isinstance(tracker.optimizer, DownhillSimplex)
    assert tracker.iterations == 7
    assert tracker.assigner.config.exclusive is True
    assert tracker.skeleton_config.stroke_width == 5
    assert tracker.localization == "prior"
    assert tracker.wait_for_subject is False

    default = PoseTracker.from_settings(TrackerSettings())
    assert isinstance(default.optimizer, DownhillSimplex)

    searched = PoseTracker.from_settings(TrackerSettings(optimizer="random"))
    assert isinstance(searched.optimizer, LocalRandomSearch)


def _person_frames(w=640, h=480):
    background = np.full((h, w, 3), 40, dtype=np.uint8)
    person = background.copy()
    person[120:480, 220:420] = BODY_BGR
    person[40:90, 300:340] = SKIN_BGR  # face
    person[260:300, 40:80] = SKIN_BGR  # left hand
    person[260:300, 560:600] = SKIN_BGR  # right hand
    return background, person


def test_process_tracks_synthetic_person():
    background, person = _person_frames()
    tracker = PoseTracker(iterations=20)

    s0, out = tracker.process(background)
    assert out is background
    assert s0.tracking is False

    s1, _ = tracker.process(person)
    assert s1.tracking is False
    assert tracker.context.subject_present is True

    s2, _ = tracker.process(person)
    assert s2.tracking is True
    fx, fy = s2.landmarks["face"]
    assert abs(fx - 320) <= 3 and abs(fy - 65) <= 3
    lx, ly = s2.landmarks["left_hand"]
    assert 38 <= lx <= 82 and 258 <= ly <= 302
    rx, ry = s2.landmarks["right_hand"]
    assert 558 <= rx <= 602 and 258 <= ry <= 302
    assert len(s2.skeleton) == 4
    assert np.array_equal(tracker.context.previous_frame, person)


def test_process_with_profile_reports_stage_timings():
    background, person = _person_frames()
    tracker = PoseTracker(iterations=5, wait_for_subject=False)
    tracker.process(background)
    summary, _, timings = tracker.process_with_profile(person)
    for key in ("evidence_ms", "localize_ms", "fit_ms", "pipeline_ms"):
        assert key in timings
        assert timings[key] >= 0.0
    assert summary.profile == timings
