"""Derivative-free minimizers for black-box cost functions.

Both strategies share one contract: `optimize(cost_fn, dimension, iterations,
params)` returns a new parameter vector whose cost is never worse than the
seed's. When no evaluation improves on the seed, the seed comes back unchanged.
The input array is never modified.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Protocol

import numpy as np

from upose.core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class CostFunction(Protocol):
    """Scalar cost over a fixed-length parameter vector.

    Implementations may expose a `dimension` attribute; optimizers check it
    against the requested dimension.
    """

    def __call__(self, params: np.ndarray) -> float:
        """Return the cost of `params` (lower is better)."""


class Optimizer(Protocol):
    """Minimal optimizer interface expected by `PoseTracker`."""

    def optimize(
        self,
        cost_fn: CostFunction,
        dimension: int,
        iterations: int,
        params: Sequence[float] | np.ndarray,
    ) -> np.ndarray:
        """Return the best parameters found starting from `params`."""


def _check_inputs(
    cost_fn: CostFunction,
    dimension: int,
    iterations: int,
    params: Sequence[float] | np.ndarray,
) -> np.ndarray:
    """Validate the call and return a private float64 copy of `params`."""

    if dimension <= 0:
        raise ConfigurationError("dimension must be >= 1")
    if iterations < 0:
        raise ConfigurationError("iterations must be >= 0")
    declared = getattr(cost_fn, "dimension", None)
    if declared is not None and int(declared) != dimension:
        raise ConfigurationError(
            f"cost function expects {declared} parameters, optimizer was given {dimension}"
        )
    x = np.array(params, dtype=np.float64).reshape(-1)
    if x.shape[0] != dimension:
        raise ConfigurationError(f"expected {dimension} parameters, got {x.shape[0]}")
    return x


def _make_rng(seed: int | np.random.Generator | None) -> np.random.Generator:
    if isinstance(seed, np.random.Generator):
        return seed
    return np.random.default_rng(seed)


class LocalRandomSearch:
    """Coordinate-wise random search.

    Iteration `t` nudges coordinate `t % dimension` by a uniform offset in
    `[-radius, radius]` and keeps the move only if the cost strictly drops.

    Reach is bounded: a coordinate can travel at most
    `ceil(iterations / dimension) * radius` from the seed, and typically about
    a quarter of that. Use it to refine a warm start, not to cross the frame.
    """

    def __init__(self, radius: float, seed: int | np.random.Generator | None = None) -> None:
        if radius <= 0:
            raise ConfigurationError("radius must be > 0")
        self.radius = float(radius)
        self.rng = _make_rng(seed)

    def optimize(
        self,
        cost_fn: CostFunction,
        dimension: int,
        iterations: int,
        params: Sequence[float] | np.ndarray,
    ) -> np.ndarray:
        x = _check_inputs(cost_fn, dimension, iterations, params)
        if iterations == 0:
            return x

        best = float(cost_fn(x))
        start = best
        accepted = 0
        offsets = self.rng.uniform(-self.radius, self.radius, size=iterations)
        for t in range(iterations):
            i = t % dimension
            old = x[i]
            x[i] = old + offsets[t]
            cost = float(cost_fn(x))
            if cost < best:
                best = cost
                accepted += 1
            else:
                x[i] = old

        logger.debug(
            "Random search: %d/%d moves accepted, cost %.3f -> %.3f",
            accepted,
            iterations,
            start,
            best,
        )
        return x


class DownhillSimplex:
    """Nelder-Mead downhill simplex over `dimension + 1` vertices.

    The initial simplex is the seed plus one vertex `radius` away along each
    axis. Each iteration reflects the worst vertex through the centroid of the
    others, then expands, contracts or shrinks depending on the result.
    """

    reflection = 1.0
    expansion = 2.0
    contraction = 0.5
    shrink = 0.5

    def __init__(self, radius: float, tolerance: float = 1e-3) -> None:
        if radius <= 0:
            raise ConfigurationError("radius must be > 0")
        if tolerance <= 0:
            raise ConfigurationError("tolerance must be > 0")
        self.radius = float(radius)
        self.tolerance = float(tolerance)

    def optimize(
        self,
        cost_fn: CostFunction,
        dimension: int,
        iterations: int,
        params: Sequence[float] | np.ndarray,
    ) -> np.ndarray:
        seed = _check_inputs(cost_fn, dimension, iterations, params)
        if iterations == 0:
            return seed

        seed_cost = float(cost_fn(seed))
        simplex = np.repeat(seed[None, :], dimension + 1, axis=0)
        simplex[1:] += self.radius * np.eye(dimension)
        costs = np.empty(dimension + 1, dtype=np.float64)
        costs[0] = seed_cost
        for k in range(1, dimension + 1):
            costs[k] = float(cost_fn(simplex[k]))

        it = 0
        while it < iterations:
            order = np.argsort(costs, kind="stable")
            simplex = simplex[order]
            costs = costs[order]
            if costs[-1] - costs[0] < self.tolerance:
                break
            it += 1

            centroid = simplex[:-1].mean(axis=0)
            worst = simplex[-1]
            reflected = centroid + self.reflection * (centroid - worst)
            r_cost = float(cost_fn(reflected))

            if r_cost < costs[0]:
                expanded = centroid + self.expansion * (reflected - centroid)
                e_cost = float(cost_fn(expanded))
                if e_cost < r_cost:
                    simplex[-1], costs[-1] = expanded, e_cost
                else:
                    simplex[-1], costs[-1] = reflected, r_cost
                continue

            if r_cost < costs[-2]:
                simplex[-1], costs[-1] = reflected, r_cost
                continue

            if r_cost < costs[-1]:
                contracted = centroid + self.contraction * (reflected - centroid)
            else:
                contracted = centroid + self.contraction * (worst - centroid)
            c_cost = float(cost_fn(contracted))
            if c_cost < min(r_cost, costs[-1]):
                simplex[-1], costs[-1] = contracted, c_cost
                continue

            best = simplex[0].copy()
            simplex[1:] = best + self.shrink * (simplex[1:] - best)
            for k in range(1, dimension + 1):
                costs[k] = float(cost_fn(simplex[k]))

        b = int(costs.argmin())
        logger.debug(
            "Downhill simplex: %d iterations, cost %.3f -> %.3f", it, seed_cost, costs[b]
        )
        if costs[b] < seed_cost:
            return simplex[b].copy()
        return seed


def make_optimizer(
    kind: str,
    radius: float,
    seed: int | np.random.Generator | None = None,
    tolerance: float = 1e-3,
) -> LocalRandomSearch | DownhillSimplex:
    """Build an optimizer by name (`random` or `simplex`)."""

    kind = kind.strip().lower()
    if kind == "random":
        return LocalRandomSearch(radius, seed=seed)
    if kind == "simplex":
        return DownhillSimplex(radius, tolerance=tolerance)
    raise ConfigurationError(f"unknown optimizer: {kind}")
