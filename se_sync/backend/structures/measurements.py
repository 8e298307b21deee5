"""
Relative pose measurements between nodes of a pose graph.

Each measurement (i, j) relates pose j to pose i:
    R_j ≈ R_i @ R_ij,    t_j ≈ t_i + R_i @ t_ij
with rotational concentration kappa and translational precision tau.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np
import scipy.sparse as sp
from scipy.sparse.csgraph import connected_components


@dataclass
class RelativePoseMeasurement:
    """Noisy relative SE(d) measurement from pose i to pose j."""
    i: int
    j: int
    R: np.ndarray  # (d, d) relative rotation
    t: np.ndarray  # (d,) relative translation
    kappa: float = 1.0  # Rotational measurement concentration
    tau: float = 1.0  # Translational measurement precision

    def __post_init__(self) -> None:
        self.i = int(self.i)
        self.j = int(self.j)
        self.R = np.asarray(self.R, dtype=float)
        self.t = np.asarray(self.t, dtype=float).reshape(-1)
        self.kappa = float(self.kappa)
        self.tau = float(self.tau)

        if self.i < 0 or self.j < 0:
            raise ValueError(f"Measurement indices must be non-negative, got ({self.i}, {self.j})")
        if self.i == self.j:
            raise ValueError(f"Measurement must relate two distinct poses, got ({self.i}, {self.j})")
        d = self.R.shape[0]
        if self.R.shape != (d, d) or d not in (2, 3):
            raise ValueError(f"Measurement rotation must be 2x2 or 3x3, got {self.R.shape}")
        if self.t.shape != (d,):
            raise ValueError(f"Measurement translation must have shape ({d},), got {self.t.shape}")
        if not (self.kappa > 0.0 and self.tau > 0.0):
            raise ValueError(
                f"Measurement weights must be positive, got kappa={self.kappa}, tau={self.tau}"
            )

    @property
    def dimension(self) -> int:
        return self.R.shape[0]


def num_poses(measurements: Sequence[RelativePoseMeasurement]) -> int:
    """Number of poses referenced by a measurement set (max index + 1)."""
    return max(max(m.i, m.j) for m in measurements) + 1


def dimension(measurements: Sequence[RelativePoseMeasurement]) -> int:
    """Common dimension d of a measurement set."""
    dims = {m.dimension for m in measurements}
    if len(dims) != 1:
        raise ValueError(f"Measurements mix dimensions: {sorted(dims)}")
    return dims.pop()


def validate_measurements(measurements: Sequence[RelativePoseMeasurement]) -> None:
    """Check that the measurement set is non-empty, single-dimension and connected."""
    if len(measurements) == 0:
        raise ValueError("At least one measurement is required")
    dimension(measurements)

    n = num_poses(measurements)
    rows = np.array([m.i for m in measurements])
    cols = np.array([m.j for m in measurements])
    adjacency = sp.coo_matrix((np.ones(len(measurements)), (rows, cols)), shape=(n, n))
    n_components, _ = connected_components(adjacency, directed=False)
    if n_components != 1:
        raise ValueError(f"Measurement graph must be connected, found {n_components} components")
