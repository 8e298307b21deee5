"""
Result records for SE-Sync runs.

A run produces exactly one SESyncResult. Its status is the single place where
the outcome of the Riemannian Staircase is reported:

    GLOBAL_OPT       second-order critical point found; the relaxation is solved
    EIG_IMPRECISION  minimum eigenvalue computation did not converge
    SADDLE_POINT     backtracking line search failed to escape a saddle point
    RS_ITER_LIMIT    maximum staircase level reached without certifying optimality

Regardless of status, xhat / Fxhat hold the rounded pose estimate.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

import numpy as np


class Status(str, Enum):
    """Terminal outcome of the Riemannian Staircase."""
    GLOBAL_OPT = "GLOBAL_OPT"
    EIG_IMPRECISION = "EIG_IMPRECISION"
    SADDLE_POINT = "SADDLE_POINT"
    RS_ITER_LIMIT = "RS_ITER_LIMIT"


def _json_safe(obj):
    """Convert NumPy scalars/containers to JSON-serializable Python types."""
    if obj is None or isinstance(obj, (str, int, float, bool)):
        return obj
    if isinstance(obj, Enum):
        return obj.value
    if isinstance(obj, (list, tuple)):
        return [_json_safe(x) for x in obj]
    if isinstance(obj, dict):
        return {str(k): _json_safe(v) for k, v in obj.items()}
    if isinstance(obj, np.ndarray):
        return obj.tolist()
    if isinstance(obj, np.generic):
        return obj.item()
    return repr(obj)


def _matrix_summary(M: Optional[np.ndarray]) -> Optional[Dict[str, Any]]:
    if M is None:
        return None
    return {"shape": list(M.shape), "frobenius_norm": float(np.linalg.norm(M))}


@dataclass
class SESyncResult:
    """
    Accumulated output of one SE-Sync run.

    Per-level traces (function_values, gradient_norms, elapsed_optimization_times)
    hold one sub-list per level of the staircase that was optimized.

    Attributes:
        Yopt: Final iterate (r x N)
        SDPval: Objective value F(Yopt) of the rank-restricted relaxation
        gradnorm: Norm of the Riemannian gradient at Yopt
        lambda_min: Minimum eigenvalue of S - Lambda(Yopt) (last successful computation)
        v_min: Corresponding unit eigenvector
        status: Terminal status (write-once)
        xhat: Rounded estimate [t | R] (d x (n + dn))
        Fxhat: Objective value at the rounded estimate
        relaxation_ranks: Staircase level r of each optimized level
        iterates: Accepted trust-region iterates (only when log_iterates is set)
    """
    Yopt: Optional[np.ndarray] = None
    SDPval: float = float("nan")
    gradnorm: float = float("nan")
    lambda_min: float = float("nan")
    v_min: Optional[np.ndarray] = None
    status: Status = Status.RS_ITER_LIMIT
    xhat: Optional[np.ndarray] = None
    Fxhat: float = float("nan")

    initialization_time: float = 0.0
    total_computation_time: float = 0.0

    function_values: List[List[float]] = field(default_factory=list)
    gradient_norms: List[List[float]] = field(default_factory=list)
    elapsed_optimization_times: List[List[float]] = field(default_factory=list)
    minimum_eigenvalues: List[float] = field(default_factory=list)
    minimum_eigenvalue_computation_times: List[float] = field(default_factory=list)
    relaxation_ranks: List[int] = field(default_factory=list)
    iterates: List[np.ndarray] = field(default_factory=list)

    @property
    def suboptimality_bound(self) -> float:
        """Upper bound on the suboptimality of xhat: F(xhat) - F(Yopt)."""
        return self.Fxhat - self.SDPval

    @property
    def final_objective_values(self) -> List[float]:
        """Objective value at the end of each optimized staircase level."""
        return [vals[-1] for vals in self.function_values if vals]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "SDPval": self.SDPval,
            "gradnorm": self.gradnorm,
            "lambda_min": self.lambda_min,
            "Fxhat": self.Fxhat,
            "suboptimality_bound": self.suboptimality_bound,
            "initialization_time": self.initialization_time,
            "total_computation_time": self.total_computation_time,
            "relaxation_ranks": list(self.relaxation_ranks),
            "minimum_eigenvalues": _json_safe(self.minimum_eigenvalues),
            "minimum_eigenvalue_computation_times": _json_safe(
                self.minimum_eigenvalue_computation_times
            ),
            "function_values": _json_safe(self.function_values),
            "gradient_norms": _json_safe(self.gradient_norms),
            "elapsed_optimization_times": _json_safe(self.elapsed_optimization_times),
            "num_iterates": len(self.iterates),
            "Yopt": _matrix_summary(self.Yopt),
            "xhat": _matrix_summary(self.xhat),
        }

    def to_json(self) -> str:
        # NaN placeholders (e.g. no eigenvalue computed) are emitted as null.
        return json.dumps(_nan_to_none(self.to_dict()), sort_keys=True)


def _nan_to_none(obj):
    if isinstance(obj, float) and obj != obj:
        return None
    if isinstance(obj, list):
        return [_nan_to_none(x) for x in obj]
    if isinstance(obj, dict):
        return {k: _nan_to_none(v) for k, v in obj.items()}
    return obj
