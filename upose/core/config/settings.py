"""Tracker configuration.

Settings are loaded from YAML defaults and overridden by environment variables
prefixed with `UPOSE_`. All empirically tuned constants of the tracker (bias
weights, reject divisor, prior scale, optimizer budget) live here.
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class TrackerSettings(BaseSettings):
    """Runtime configuration loaded from YAML defaults and `UPOSE_` env overrides."""

    model_config = SettingsConfigDict(env_prefix="UPOSE_", validate_assignment=True)

    # Landmark assignment
    min_candidates: int = 3
    # Only the N widest candidates enter the cost matrix. None = all of them.
    max_candidates: int | None = 3
    reject_divisor: float = 64.0
    face_bias_weight: float = 1.0
    hand_bias_weight: float = 1.0
    # Subtracted per pixel of candidate width (prefers larger regions). 0 disables.
    size_weight: float = 0.0
    exclusive_assignment: bool = False
    refine_hands: bool = True

    # Neck/shoulder geometry, in face-box widths.
    neck_drop: float = 1.0
    shoulder_span: float = 1.0
    shoulder_drop: float = 0.5
    initial_face_width_fraction: float = 0.1

    # Spatial prior
    localization: str = Field("assignment", description="assignment|prior")
    prior_scale: float = 1.0
    prior_bounds_x: tuple[float, float] = (-48.0, 48.0)
    prior_bounds_y: tuple[float, float] = (-48.0, 48.0)

    # Skeleton cost
    stroke_width: int = 9
    length_weight: float = 1.0
    agreement_weight: float = 1.0

    # Optimizer
    optimizer: str = Field("simplex", description="simplex|random")
    optimizer_iterations: int = 200
    optimizer_radius: float = 8.0
    simplex_tolerance: float = 1e-3
    random_seed: int | None = 0

    # Evidence extraction
    foreground_ratio: float = 0.25
    skin_threshold: float = 2.0
    candidate_blur: int = 9
    candidate_threshold: int = 127
    edge_blur: int = 3
    canny_low: float = 32.0
    canny_high: float = 64.0
    # Running-average background update rate. 0 keeps the first frame forever.
    background_rate: float = 0.0
    wait_for_subject: bool = True

    @field_validator("min_candidates")
    def _validate_min_candidates(cls, v: int) -> int:
        if v < 1:
            raise ValueError("min_candidates must be >= 1")
        return v

    @field_validator("max_candidates")
    def _validate_max_candidates(cls, v: int | None) -> int | None:
        if v is None:
            return v
        if v < 1:
            raise ValueError("max_candidates must be >= 1")
        return v

    @field_validator("reject_divisor")
    def _validate_reject_divisor(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("reject_divisor must be > 0")
        return float(v)

    @field_validator("size_weight", "length_weight", "agreement_weight")
    def _validate_non_negative_weight(cls, v: float) -> float:
        if v < 0:
            raise ValueError("weights must be >= 0")
        return float(v)

    @field_validator("initial_face_width_fraction")
    def _validate_face_fraction(cls, v: float) -> float:
        if not 0.0 < float(v) <= 1.0:
            raise ValueError("initial_face_width_fraction must be in (0, 1]")
        return float(v)

    @field_validator("localization")
    def _validate_localization(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"assignment", "prior"}:
            raise ValueError("localization must be assignment|prior")
        return v2

    @field_validator("prior_scale")
    def _validate_prior_scale(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("prior_scale must be > 0")
        return float(v)

    @field_validator("prior_bounds_x", "prior_bounds_y")
    def _validate_prior_bounds(cls, v: tuple[float, float]) -> tuple[float, float]:
        lower, upper = v
        if upper <= lower:
            raise ValueError("prior bounds must satisfy lower < upper")
        return (float(lower), float(upper))

    @field_validator("stroke_width")
    def _validate_stroke_width(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("stroke_width must be >= 1")
        return v

    @field_validator("optimizer")
    def _validate_optimizer(cls, v: str) -> str:
        v2 = str(v).strip().lower()
        if v2 not in {"random", "simplex"}:
            raise ValueError("optimizer must be random|simplex")
        return v2

    @field_validator("optimizer_iterations")
    def _validate_iterations(cls, v: int) -> int:
        if v < 0:
            raise ValueError("optimizer_iterations must be >= 0")
        return v

    @field_validator("optimizer_radius", "simplex_tolerance")
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("optimizer_radius/simplex_tolerance must be > 0")
        return float(v)

    @field_validator("foreground_ratio")
    def _validate_foreground_ratio(cls, v: float) -> float:
        if v < 0:
            raise ValueError("foreground_ratio must be >= 0")
        return float(v)

    @field_validator("candidate_blur", "edge_blur")
    def _validate_blur(cls, v: int) -> int:
        if v < 1:
            raise ValueError("blur kernel sizes must be >= 1")
        return v

    @field_validator("candidate_threshold")
    def _validate_candidate_threshold(cls, v: int) -> int:
        if not 0 <= v <= 255:
            raise ValueError("candidate_threshold must be in [0, 255]")
        return v

    @field_validator("background_rate")
    def _validate_background_rate(cls, v: float) -> float:
        if not 0.0 <= float(v) <= 1.0:
            raise ValueError("background_rate must be in [0, 1]")
        return float(v)


def _fields_set(obj: object) -> set[str]:
    """Return the set of fields explicitly provided/overridden on a Pydantic model."""

    return set(getattr(obj, "model_fields_set", set()))


def _config_path() -> Path:
    """Return the YAML configuration path (defaults to config/upose.config.yml)."""

    return Path(os.getenv("UPOSE_CONFIG", "config/upose.config.yml"))


def load_settings(**overrides: Any) -> TrackerSettings:
    """Load settings from YAML and environment variables.

    YAML provides defaults; environment variables override; explicit keyword
    overrides win over both.
    """

    data: dict[str, Any] = {}
    path = _config_path()
    if path.exists():
        with open(path, encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}

    env_settings = TrackerSettings()
    env_overrides: dict[str, Any] = {
        name: getattr(env_settings, name) for name in _fields_set(env_settings)
    }

    merged = {**data, **env_overrides, **overrides}
    return TrackerSettings(**merged)
