"""
Saddle escape for the Riemannian Staircase.

At a first-order critical point Y of the rank-r problem where S - Lambda(Y) has a
negative eigenvalue lambda_min with unit eigenvector v_min, the point

    Y_aug = [Y; 0]   (rank r + 1)

is again critical, and Ydot = [0; v_min^T] is a second-order descent direction
tangent to the lifted manifold. A backtracking search along Ydot returns a point
that strictly decreases the objective and whose gradient is large enough that the
next trust-region run does not immediately stop at the saddle.
"""

from __future__ import annotations

import logging
import math
from typing import Iterator, Optional, Tuple

import numpy as np

from se_sync.common import constants

_logger = logging.getLogger(__name__)


def escape_step_lengths(
    alpha0: float, alpha_min: float = constants.SESYNC_ESCAPE_ALPHA_MIN
) -> Iterator[float]:
    """
    Trial step lengths alpha0/2, alpha0/4, ... of the backtracking search.

    The search stops after the first trial whose step length does not exceed
    alpha_min, so at most ceil(log2(alpha0 / alpha_min)) + 1 values are produced.
    """
    alpha = float(alpha0)
    while True:
        alpha /= 2.0
        yield alpha
        if alpha <= alpha_min:
            return


def max_escape_trials(alpha0: float, alpha_min: float = constants.SESYNC_ESCAPE_ALPHA_MIN) -> int:
    """Upper bound on the number of trial points tested by escape_saddle."""
    if alpha0 <= alpha_min:
        return 1
    return int(math.ceil(math.log2(alpha0 / alpha_min))) + 1


def escape_saddle(
    problem,
    Y: np.ndarray,
    lambda_min: float,
    v_min: np.ndarray,
    gradient_tolerance: float,
) -> Tuple[bool, Optional[np.ndarray]]:
    """
    Escape the saddle Y along the negative-curvature direction v_min.

    Args:
        problem: SESyncProblem whose relaxation rank is already set to r + 1
        Y: Saddle point at rank r, shape (r, N)
        lambda_min: Negative minimum eigenvalue of S - Lambda(Y)
        v_min: Corresponding eigenvector, shape (N,)
        gradient_tolerance: Trust-region gradient stopping tolerance

    Returns:
        (True, Yplus) with Yplus of shape (r + 1, N) on success, (False, None) if no
        trial step satisfied both acceptance conditions.
    """
    Y = np.asarray(Y, dtype=float)
    v_min = np.asarray(v_min, dtype=float).reshape(-1)
    r, N = Y.shape

    if not lambda_min < 0.0:
        raise ValueError(f"lambda_min must be negative at a saddle point, got {lambda_min}")
    if v_min.shape[0] != N:
        raise ValueError(f"v_min must have {N} entries, got {v_min.shape[0]}")
    if problem.relaxation_rank != r + 1:
        raise ValueError(
            f"Problem rank must be {r + 1} before escaping a rank-{r} saddle, "
            f"got {problem.relaxation_rank}"
        )

    FY = problem.evaluate_objective(Y)

    Y_aug = np.vstack([Y, np.zeros((1, N), dtype=float)])
    Ydot = np.zeros_like(Y_aug)
    Ydot[r, :] = v_min

    # Second-order model F(Y + alpha Ydot) ~ F(Y) + alpha^2 lambda_min ||Ydot||^2, so
    # this step length gives a gradient norm of about 100x the tolerance.
    alpha0 = constants.SESYNC_ESCAPE_STEP_SCALE * gradient_tolerance / abs(lambda_min)

    num_trials = 0
    for alpha in escape_step_lengths(alpha0):
        num_trials += 1
        Ytest = problem.retract(Y_aug, alpha * Ydot)
        FYtest = problem.evaluate_objective(Ytest)
        if FYtest >= FY:
            continue
        grad_norm = float(np.linalg.norm(problem.Riemannian_gradient(Ytest)))
        if grad_norm > gradient_tolerance:
            _logger.debug(
                "Escaped saddle after %d trials: alpha = %.3g, F %.6g -> %.6g, |grad F| = %.3g",
                num_trials, alpha, FY, FYtest, grad_norm,
            )
            return True, Ytest

    _logger.debug("Saddle escape failed after %d trials (alpha0 = %.3g)", num_trials, alpha0)
    return False, None
