"""Riemannian optimization routines used by the staircase."""

from se_sync.backend.optimization.tnt import (
    TNTParams,
    TNTResult,
    TNTStatus,
    tnt,
    truncated_preconditioned_cg,
)

__all__ = [
    "TNTParams",
    "TNTResult",
    "TNTStatus",
    "tnt",
    "truncated_preconditioned_cg",
]
