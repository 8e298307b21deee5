"""
Operators acting on Riemannian Staircase iterates.

- escape_saddle: lift a saddle point to the next rank along a direction of
  negative curvature
"""

from se_sync.operators.escape_saddle import (
    escape_saddle,
    escape_step_lengths,
    max_escape_trials,
)

__all__ = [
    "escape_saddle",
    "escape_step_lengths",
    "max_escape_trials",
]
