from __future__ import annotations

from typing import Any


# CPU-oriented presets. They trade skeleton fit quality against per-frame cost.
#
# Notes:
# - optimizer_iterations: cost evaluations per frame (each one renders the skeleton)
# - stroke_width: wider strokes tolerate noisier landmarks but blur the fit
# - max_candidates: None scores every region instead of the three widest


PRESETS: dict[str, dict[str, Any]] = {
    # Best fit; several hundred renders per frame.
    "quality": {
        "optimizer": "simplex",
        "optimizer_iterations": 400,
        "optimizer_radius": 12.0,
        "stroke_width": 7,
        "max_candidates": None,
    },
    # Good compromise for most CPUs.
    "balanced": {
        "optimizer": "random",
        "optimizer_iterations": 200,
        "optimizer_radius": 8.0,
        "stroke_width": 9,
        "max_candidates": 3,
    },
    # Max throughput; coarse fit relying on warm starts.
    "fast": {
        "optimizer": "random",
        "optimizer_iterations": 60,
        "optimizer_radius": 6.0,
        "stroke_width": 11,
        "max_candidates": 3,
    },
}


def list_presets() -> list[str]:
    """Preset names, in order from slowest to fastest."""

    return list(PRESETS)


def preset_patch(preset_id: str) -> dict[str, Any]:
    if preset_id not in PRESETS:
        raise KeyError(preset_id)
    return dict(PRESETS[preset_id])
