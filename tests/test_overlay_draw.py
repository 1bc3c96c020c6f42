from __future__ import annotations

import numpy as np

from upose.core.overlay.draw import draw_overlays
from upose.core.types import FrameSummary


def _summary(tracking: bool, skeleton=None) -> FrameSummary:
    return FrameSummary(
        frame_id=1,
        timestamp=0.0,
        landmarks={
            "face": (50.0, 10.0),
            "neck": (50.0, 25.0),
            "left_shoulder": (35.0, 30.0),
            "right_shoulder": (65.0, 30.0),
            "left_hand": (10.0, 80.0),
            "right_hand": (90.0, 80.0),
        },
        skeleton=skeleton if skeleton is not None else [25.0, 55.0, 75.0, 55.0],
        confidence={},
        cost=-12.0,
        tracking=tracking,
        frame_size=(100, 100),
    )


def test_draw_overlays_fast_path_returns_same_object():
    frame = np.zeros((100, 100, 3), dtype=np.uint8)
    out = draw_overlays(frame, _summary(tracking=False))
    assert out is frame


def test_draw_overlays_draws_landmarks_and_skeleton_on_copy():
    frame = np.zeros((100, 100, 3), dtype=np.uint8)
    out = draw_overlays(frame, _summary(tracking=True))
    assert out is not frame
    assert out.shape == frame.shape
    assert np.count_nonzero(frame) == 0
    assert out[10, 50].any()
    assert out[55, 25].any()


def test_draw_overlays_without_skeleton_still_draws_landmarks():
    frame = np.zeros((100, 100, 3), dtype=np.uint8)
    out = draw_overlays(frame, _summary(tracking=True, skeleton=[]))
    assert out[80, 90].any()
