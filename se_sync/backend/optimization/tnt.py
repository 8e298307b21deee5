"""
Riemannian truncated-Newton trust-region method (TNT).

Each outer iteration approximately minimizes the local quadratic model

    m(h) = f(x) + <grad f(x), h> + 1/2 <h, Hess f(x)[h]>,   ||h||_M <= Delta

with the Steihaug-Toint truncated preconditioned conjugate gradient method,
retracts the step onto the manifold, and updates the trust-region radius from
the ratio rho of actual to predicted decrease.

The optimizer is generic over the problem: everything it needs is passed in as
function objects.

    F(x) -> float
    QM(x) -> (grad, hess_op)           hess_op(v) -> Hess f(x)[v]
    metric(x, v1, v2) -> float
    retraction(x, v) -> x'
    precon(x, v) -> v' (optional)
    user_function(t, x, f, grad, accepted) (optional, called once per iteration)
"""

from __future__ import annotations

import logging
import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, List, Optional, Tuple

import numpy as np

from se_sync.common import constants

_logger = logging.getLogger(__name__)

Objective = Callable[[Any], float]
HessianOperator = Callable[[Any], Any]
QuadraticModel = Callable[[Any], Tuple[Any, HessianOperator]]
RiemannianMetric = Callable[[Any, Any, Any], float]
Retraction = Callable[[Any, Any], Any]
LinearOperator = Callable[[Any, Any], Any]
UserFunction = Callable[[float, Any, float, Any, bool], None]


class TNTStatus(str, Enum):
    """Reason the trust-region method stopped."""
    GRADIENT = "gradient"
    RELATIVE_DECREASE = "relative_decrease"
    STEPSIZE = "stepsize"
    ITERATION_LIMIT = "iteration_limit"


@dataclass
class TNTParams:
    gradient_tolerance: float = constants.TNT_GRAD_NORM_TOL_DEFAULT
    relative_decrease_tolerance: float = constants.TNT_REL_FUNC_DECREASE_TOL_DEFAULT
    stepsize_tolerance: float = constants.TNT_STEPSIZE_TOL_DEFAULT
    max_iterations: int = constants.TNT_MAX_ITERATIONS_DEFAULT
    max_TPCG_iterations: int = constants.TNT_MAX_TCG_ITERATIONS_DEFAULT
    Delta0: float = constants.TNT_DELTA0
    eta1: float = constants.TNT_ETA1
    eta2: float = constants.TNT_ETA2
    gamma1: float = constants.TNT_GAMMA1
    gamma2: float = constants.TNT_GAMMA2
    kappa_fgr: float = constants.TNT_KAPPA_FGR
    theta: float = constants.TNT_THETA
    verbose: bool = False


@dataclass
class TNTResult:
    """
    Output of one trust-region run.

    objective_values / gradient_norms / time hold one entry for the initial point
    and one per outer iteration (time is seconds since the start of the run).
    """
    x: Any
    f: float
    grad_norm: float
    status: TNTStatus
    iterations: int = 0
    elapsed_time: float = 0.0
    objective_values: List[float] = field(default_factory=list)
    gradient_norms: List[float] = field(default_factory=list)
    time: List[float] = field(default_factory=list)
    inner_iterations: List[int] = field(default_factory=list)
    update_step_norms: List[float] = field(default_factory=list)


def truncated_preconditioned_cg(
    grad: Any,
    hess_op: HessianOperator,
    inner: Callable[[Any, Any], float],
    Delta: float,
    max_iterations: int,
    kappa_fgr: float = constants.TNT_KAPPA_FGR,
    theta: float = constants.TNT_THETA,
    precon: Optional[Callable[[Any], Any]] = None,
) -> Tuple[Any, int, bool]:
    """
    Steihaug-Toint truncated preconditioned CG on the trust-region subproblem.

    The trust region is measured in the norm induced by the preconditioner
    (||s||_M^2 tracked by recurrence). Stops on negative curvature, on reaching
    the boundary, on the residual test ||r|| <= ||r0|| min(||r0||^theta, kappa_fgr),
    or after max_iterations.

    Returns:
        (s, num_iterations, hit_boundary)
    """
    s = np.zeros_like(grad)
    r = grad
    z = precon(r) if precon is not None else r
    p = -z
    z_r = inner(z, r)
    d_M_d = z_r
    s_M_s = 0.0
    s_M_d = 0.0
    r0_norm = math.sqrt(max(inner(r, r), 0.0))
    Delta2 = Delta * Delta

    k = 0
    while k < max_iterations and d_M_d > 0.0:
        Hp = hess_op(p)
        kappa = inner(p, Hp)
        alpha = z_r / kappa if kappa > 0.0 else 0.0
        s_M_s_next = s_M_s + 2.0 * alpha * s_M_d + alpha * alpha * d_M_d
        k += 1

        if kappa <= 0.0 or s_M_s_next >= Delta2:
            # Follow p to the trust-region boundary
            sigma = (-s_M_d + math.sqrt(s_M_d * s_M_d + d_M_d * (Delta2 - s_M_s))) / d_M_d
            return s + sigma * p, k, True

        s = s + alpha * p
        s_M_s = s_M_s_next
        r = r + alpha * Hp

        r_norm = math.sqrt(max(inner(r, r), 0.0))
        if r_norm <= r0_norm * min(r0_norm ** theta, kappa_fgr):
            break

        z = precon(r) if precon is not None else r
        z_r_next = inner(z, r)
        if z_r_next <= 0.0:
            break
        beta = z_r_next / z_r
        z_r = z_r_next
        s_M_d = beta * (s_M_d + alpha * d_M_d)
        d_M_d = z_r + beta * beta * d_M_d
        p = -z + beta * p

    return s, k, False


def tnt(
    F: Objective,
    QM: QuadraticModel,
    metric: RiemannianMetric,
    retraction: Retraction,
    x0: Any,
    params: Optional[TNTParams] = None,
    precon: Optional[LinearOperator] = None,
    user_function: Optional[UserFunction] = None,
) -> TNTResult:
    """Minimize F from x0 with the Riemannian truncated-Newton trust-region method."""
    params = params if params is not None else TNTParams()
    start = time.perf_counter()

    x = x0
    f = float(F(x))
    grad, hess_op = QM(x)
    g_norm = math.sqrt(max(metric(x, grad, grad), 0.0))
    Delta = float(params.Delta0)

    result = TNTResult(x=x, f=f, grad_norm=g_norm, status=TNTStatus.ITERATION_LIMIT)
    result.objective_values.append(f)
    result.gradient_norms.append(g_norm)
    result.time.append(time.perf_counter() - start)

    if params.verbose:
        _logger.info("TNT: initial f = %.6g, |grad f| = %.6g", f, g_norm)

    iteration = 0
    while True:
        if g_norm < params.gradient_tolerance:
            result.status = TNTStatus.GRADIENT
            break
        if iteration >= params.max_iterations:
            result.status = TNTStatus.ITERATION_LIMIT
            break
        iteration += 1

        x_current = x

        def inner(v1, v2, _x=x_current):
            return metric(_x, v1, v2)

        P = (lambda v, _x=x_current: precon(_x, v)) if precon is not None else None
        h, num_inner, hit_boundary = truncated_preconditioned_cg(
            grad, hess_op, inner, Delta, params.max_TPCG_iterations,
            kappa_fgr=params.kappa_fgr, theta=params.theta, precon=P,
        )
        h_norm = math.sqrt(max(inner(h, h), 0.0))

        model_decrease = -(inner(grad, h) + 0.5 * inner(h, hess_op(h)))
        x_proposed = retraction(x, h)
        f_proposed = float(F(x_proposed))
        df = f - f_proposed

        if model_decrease > constants.TNT_MODEL_DECREASE_EPS:
            rho = df / model_decrease
        else:
            rho = -math.inf

        if rho < params.eta1:
            Delta *= params.gamma1
        elif rho > params.eta2 and hit_boundary:
            Delta *= params.gamma2

        accepted = df > 0.0 and rho > params.eta1
        f_previous = f
        if accepted:
            x = x_proposed
            f = f_proposed
            grad, hess_op = QM(x)
            g_norm = math.sqrt(max(metric(x, grad, grad), 0.0))

        elapsed = time.perf_counter() - start
        result.objective_values.append(f)
        result.gradient_norms.append(g_norm)
        result.time.append(elapsed)
        result.inner_iterations.append(num_inner)
        result.update_step_norms.append(h_norm)

        if params.verbose:
            _logger.info(
                "TNT iter %d: f = %.6g, |grad f| = %.6g, Delta = %.3g, |h| = %.3g, "
                "df = %.3g, rho = %.3g, tCG iters = %d, %s",
                iteration, f, g_norm, Delta, h_norm, df, rho, num_inner,
                "accepted" if accepted else "REJECTED",
            )

        if user_function is not None:
            user_function(elapsed, x, f, grad, accepted)

        if accepted:
            rel_decrease = df / (abs(f_previous) + np.finfo(float).eps)
            if rel_decrease < params.relative_decrease_tolerance:
                result.status = TNTStatus.RELATIVE_DECREASE
                break
        if h_norm < params.stepsize_tolerance:
            result.status = TNTStatus.STEPSIZE
            break

    result.x = x
    result.f = f
    result.grad_norm = g_norm
    result.iterations = iteration
    result.elapsed_time = time.perf_counter() - start

    if params.verbose:
        _logger.info(
            "TNT finished (%s) after %d iterations: f = %.6g, |grad f| = %.6g, %.3f s",
            result.status.value, iteration, f, g_norm, result.elapsed_time,
        )
    return result
