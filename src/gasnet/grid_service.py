import numpy as np
from dataclasses import dataclass
from typing import Optional


@dataclass
class SegmentConfig:
    total_length: float
    n_segments: int
    inlet_length: Optional[float] = None  # First segment length; None for a uniform split
    growth_limit: float = 4.0             # Max ratio between neighbouring segments


class PipeSegmenter:
    """
    Splits a pipe line into storage segments.
    A short inlet segment resolves the entrance; the remaining length is
    distributed with a geometric growth so neighbouring segments stay comparable.
    """
    def __init__(self, config: SegmentConfig):
        self.cfg = config
        if config.total_length <= 0:
            raise ValueError(f"total_length must be > 0, got {config.total_length}")
        if config.n_segments < 1:
            raise ValueError(f"n_segments must be >= 1, got {config.n_segments}")
        if config.inlet_length is not None and not 0 < config.inlet_length < config.total_length:
            raise ValueError("inlet_length must lie in (0, total_length)")

    def generate(self):
        """
        Returns:
            dz_list (np.array): Array of segment lengths
            z_positions (np.array): Array of segment center positions
        """
        L = self.cfg.total_length
        N = self.cfg.n_segments
        dz_list = np.full(N, L / N)

        if self.cfg.inlet_length is not None and N > 1:
            # 1. Inlet segment
            dz_list[0] = self.cfg.inlet_length

            # 2. Remaining length with geometric growth ratio q: sum dz0 q^k = L - dz0
            rest = L - self.cfg.inlet_length
            q = self._growth_ratio(self.cfg.inlet_length, rest, N - 1)
            dz_list[1:] = self.cfg.inlet_length * q**np.arange(1, N)
            dz_list[1:] *= rest / np.sum(dz_list[1:])

        # Compute Z positions (Centers)
        edges = np.concatenate([[0.0], np.cumsum(dz_list)])
        z_positions = 0.5 * (edges[:-1] + edges[1:])
        return dz_list, z_positions

    def _growth_ratio(self, dz0, rest, n):
        """Ratio q with sum_{k=1..n} dz0 q^k = rest, clipped to the growth limit (bisection)."""
        limit = self.cfg.growth_limit
        lo, hi = 1.0 / limit, limit
        for _ in range(100):
            q = 0.5 * (lo + hi)
            total = dz0 * np.sum(q**np.arange(1, n + 1))
            if total > rest:
                hi = q
            else:
                lo = q
        return 0.5 * (lo + hi)
