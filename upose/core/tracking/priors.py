"""Spatial priors around expected landmark locations.

A prior is a dense map over the frame that equals 1 at the expected location and
falls off like a Gaussian. It is either multiplied into foreground/skin
likelihoods to bias detection, or used on its own to locate a landmark as the
argmax of the combined likelihood.
"""

from __future__ import annotations

import math
from dataclasses import dataclass

import numpy as np

from upose.core.errors import ConfigurationError
from upose.core.types import Point


@dataclass(frozen=True)
class PriorConfig:
    scale: float = 1.0
    # Pixel offsets around the anchor, per axis.
    bounds_x: tuple[float, float] = (-48.0, 48.0)
    bounds_y: tuple[float, float] = (-48.0, 48.0)


def prior_parameters(scale: float, lower: float, upper: float) -> tuple[float, float]:
    """Return (mean_offset, spread) for one axis from a scale and bounds."""

    if scale <= 0:
        raise ConfigurationError("prior scale must be > 0")
    mean = scale * (upper + lower) / 2.0
    spread = scale * upper - mean
    if spread <= 0:
        raise ConfigurationError(f"degenerate prior bounds ({lower}, {upper})")
    return mean, spread


def spatial_prior(
    frame_shape: tuple[int, int],
    anchor: Point,
    scale: float,
    bounds_x: tuple[float, float],
    bounds_y: tuple[float, float],
) -> np.ndarray:
    """Return an (h, w) float64 prior map peaking at `anchor` + mean offset."""

    h, w = frame_shape[:2]
    mean_x, spread_x = prior_parameters(scale, *bounds_x)
    mean_y, spread_y = prior_parameters(scale, *bounds_y)
    denom = 2.0 * (spread_x * spread_x + spread_y * spread_y)

    dx = np.arange(w, dtype=np.float64) - float(anchor[0]) - mean_x
    dy = np.arange(h, dtype=np.float64) - float(anchor[1]) - mean_y
    return np.exp(-(dy[:, None] ** 2 + dx[None, :] ** 2) / denom)


def prior_value(
    point: Point,
    anchor: Point,
    scale: float,
    bounds_x: tuple[float, float],
    bounds_y: tuple[float, float],
) -> float:
    """Evaluate the prior at a single point without building the full map."""

    mean_x, spread_x = prior_parameters(scale, *bounds_x)
    mean_y, spread_y = prior_parameters(scale, *bounds_y)
    dx = float(point[0]) - float(anchor[0]) - mean_x
    dy = float(point[1]) - float(anchor[1]) - mean_y
    return math.exp(-(dx * dx + dy * dy) / (2.0 * (spread_x * spread_x + spread_y * spread_y)))


def as_likelihood(mask: np.ndarray) -> np.ndarray:
    """Scale a uint8 mask (0/255) or a probability map to float64 in [0, 1]."""

    if mask.dtype == np.uint8:
        return mask.astype(np.float64) / 255.0
    return np.clip(mask.astype(np.float64, copy=False), 0.0, 1.0)


def weight_likelihood(prior: np.ndarray, *likelihoods: np.ndarray) -> np.ndarray:
    """Multiply the prior into one or more likelihood maps."""

    combined = prior.copy()
    for lk in likelihoods:
        if lk.shape[:2] != prior.shape[:2]:
            raise ConfigurationError(
                f"likelihood shape {lk.shape[:2]} does not match prior {prior.shape[:2]}"
            )
        combined *= as_likelihood(lk)
    return combined


def locate(combined: np.ndarray) -> tuple[Point | None, float]:
    """Return (argmax position, value there), or (None, 0.0) when the map is empty."""

    if combined.size == 0:
        return None, 0.0
    flat_index = int(combined.argmax())
    value = float(combined.flat[flat_index])
    if value <= 0.0:
        return None, 0.0
    y, x = divmod(flat_index, combined.shape[1])
    return (float(x), float(y)), value
