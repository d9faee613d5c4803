"""
Normal sampling for the Monte Carlo runner — the only source of randomness in the analytics core.

Standard-normal draws come from the Box-Muller transform over two independent
uniform(0,1) draws; a uniform of exactly 0 is rejected and redrawn so log(u)
never produces -inf.

Reproducibility:
  MonteCarloSampler(seed=42).spawn(n) hands out n independent NormalSamplers,
  one per simulation, each on its own child stream of the seed. Simulation i
  sees the same draws whether simulations run sequentially or on a pool.
"""

from __future__ import annotations

from typing import List, Optional

import numpy as np


class NormalSampler:
    """Box-Muller standard-normal draws over an injected uniform source."""

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self.rng = rng if rng is not None else np.random.default_rng()

    def _uniform_open(self, size: int) -> np.ndarray:
        u = self.rng.random(size)
        zero = u == 0.0
        while zero.any():
            u[zero] = self.rng.random(int(zero.sum()))
            zero = u == 0.0
        return u

    def standard_normal(self, size: int) -> np.ndarray:
        if size <= 0:
            return np.zeros(0, dtype=float)
        u = self._uniform_open(size)
        v = self._uniform_open(size)
        return np.sqrt(-2.0 * np.log(u)) * np.cos(2.0 * np.pi * v)

    def sample(self) -> float:
        return float(self.standard_normal(1)[0])


class MonteCarloSampler:
    """
    Hands out per-simulation NormalSamplers from one seed.

    Usage:
        sampler = MonteCarloSampler(seed=7)
        streams = sampler.spawn(1000)
        shocks = streams[0].standard_normal(12)
    """

    def __init__(self, seed: Optional[int] = None):
        self.seed = seed
        self._seed_sequence = np.random.SeedSequence(seed)

    def spawn(self, n: int) -> List[NormalSampler]:
        children = self._seed_sequence.spawn(n)
        return [NormalSampler(np.random.default_rng(child)) for child in children]
