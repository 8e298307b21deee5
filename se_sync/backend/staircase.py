"""
Riemannian Staircase driver for SE-Sync.

Solves the semidefinite relaxation of SE(d) synchronization by optimizing the
rank-restricted problem at increasing ranks r = r0, ..., rmax:

  OPTIMIZING(r)  trust-region run from the current iterate
  CERTIFYING(r)  minimum eigenpair of S - Lambda(Yopt)
  ESCAPING(r)    lift a saddle to rank r + 1 along the negative-curvature direction
  DONE(status)   round the final iterate to a pose estimate

The terminal status is reported on the returned SESyncResult; none of the four
outcomes is raised as an exception.
"""

from __future__ import annotations

import logging
import time
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Union

import numpy as np
from threadpoolctl import threadpool_limits

from se_sync.backend.optimization.tnt import TNTParams, TNTResult, tnt
from se_sync.backend.problem.sesync_problem import SESyncProblem
from se_sync.backend.structures.measurements import RelativePoseMeasurement
from se_sync.common.param_models import Formulation, Preconditioner, SESyncOpts
from se_sync.common.results import SESyncResult, Status
from se_sync.operators.escape_saddle import escape_saddle

_logger = logging.getLogger(__name__)


class _Phase(Enum):
    OPTIMIZING = "optimizing"
    CERTIFYING = "certifying"
    ESCAPING = "escaping"
    DONE = "done"


def _resolve_options(options: Union[SESyncOpts, Dict[str, Any], None]) -> SESyncOpts:
    if options is None:
        return SESyncOpts()
    if isinstance(options, SESyncOpts):
        return options
    return SESyncOpts.from_dict(options)


def _tnt_params(opts: SESyncOpts) -> TNTParams:
    return TNTParams(
        gradient_tolerance=opts.grad_norm_tol,
        relative_decrease_tolerance=opts.rel_func_decrease_tol,
        stepsize_tolerance=opts.stepsize_tol,
        max_iterations=opts.max_iterations,
        max_TPCG_iterations=opts.max_tcg_iterations,
        verbose=opts.verbose,
    )


def _optimize(
    problem: SESyncProblem,
    Y: np.ndarray,
    params: TNTParams,
    use_preconditioner: bool,
    iterates: Optional[list],
) -> TNTResult:
    """One trust-region run at the problem's current relaxation rank."""

    def F(X):
        return problem.evaluate_objective(X)

    def QM(X):
        # Euclidean gradient is computed once per iterate and shared by the
        # Riemannian gradient and every Hessian-vector product at X.
        nablaF_X = problem.Euclidean_gradient(X)
        grad = problem.Riemannian_gradient(X, nablaF_X)

        def hess_op(dotX):
            return problem.Riemannian_Hessian_vector_product(X, nablaF_X, dotX)

        return grad, hess_op

    def metric(X, V1, V2):
        return float(np.sum(V1 * V2))

    def retraction(X, V):
        return problem.retract(X, V)

    precon = None
    if use_preconditioner:
        def precon(X, V):
            return problem.precondition(X, V)

    user_function = None
    if iterates is not None:
        def user_function(t, X, f, g, accepted):
            if accepted:
                iterates.append(np.array(X, copy=True))

    return tnt(F, QM, metric, retraction, Y, params, precon=precon, user_function=user_function)


def _initial_iterate(problem: SESyncProblem, opts: SESyncOpts, Y0: Optional[np.ndarray]) -> np.ndarray:
    if Y0 is not None:
        Y0 = np.asarray(Y0, dtype=float)
        expected = (opts.r0, problem.num_columns)
        if Y0.shape != expected:
            raise ValueError(f"Y0 must have shape {expected}, got {Y0.shape}")
        return Y0.copy()
    if opts.use_chordal_initialization:
        if opts.verbose:
            _logger.info("Computing chordal initialization")
        return problem.chordal_initialization()
    if opts.verbose:
        _logger.info("Randomly sampling a point on the Stiefel manifold")
    return problem.random_sample()


def sesync(
    measurements: Sequence[RelativePoseMeasurement],
    options: Union[SESyncOpts, Dict[str, Any], None] = None,
    Y0: Optional[np.ndarray] = None,
) -> SESyncResult:
    """
    Run SE-Sync on a set of relative pose measurements.

    Args:
        measurements: Relative pose measurements of a connected pose graph
        options: SESyncOpts (or a mapping accepted by SESyncOpts.from_dict)
        Y0: Optional initial iterate of shape (r0, N); overrides the configured
            initialization method

    Returns:
        SESyncResult with the terminal status, the final relaxed iterate, the
        per-level optimization traces and the rounded estimate xhat = [t | R].
    """
    opts = _resolve_options(options)
    with threadpool_limits(limits=opts.num_threads):
        return _run_staircase(measurements, opts, Y0)


def _run_staircase(
    measurements: Sequence[RelativePoseMeasurement],
    opts: SESyncOpts,
    Y0: Optional[np.ndarray],
) -> SESyncResult:
    start = time.perf_counter()
    result = SESyncResult()

    if opts.verbose:
        _logger.info("========= SE-Sync ==========")
        _logger.info("%s", opts.describe())
        _logger.info("Constructing SE-Sync problem instance")

    problem = SESyncProblem(
        measurements,
        formulation=opts.formulation,
        use_cholesky=opts.use_cholesky,
        preconditioner=opts.precon,
        rng=np.random.default_rng(opts.seed),
    )
    problem.set_relaxation_rank(opts.r0)

    if opts.verbose:
        _logger.info(
            "Problem: %d poses in SE(%d), %d measurements",
            problem.num_poses(), problem.dimension(), problem.num_measurements(),
        )

    init_start = time.perf_counter()
    Y = _initial_iterate(problem, opts, Y0)
    result.initialization_time = time.perf_counter() - init_start
    if opts.verbose:
        _logger.info("Elapsed computation time: %.3f seconds", result.initialization_time)

    params = _tnt_params(opts)
    use_preconditioner = opts.precon != Preconditioner.NONE
    iterates = result.iterates if opts.log_iterates else None

    r = opts.r0
    lambda_min = float("nan")
    v_min: Optional[np.ndarray] = None
    status: Optional[Status] = None
    phase = _Phase.OPTIMIZING

    while phase is not _Phase.DONE:
        if phase is _Phase.OPTIMIZING:
            if opts.verbose:
                _logger.info("====== RIEMANNIAN STAIRCASE (level r = %d) ======", r)
            tnt_result = _optimize(problem, Y, params, use_preconditioner, iterates)

            result.Yopt = tnt_result.x
            result.SDPval = tnt_result.f
            result.gradnorm = float(np.linalg.norm(problem.Riemannian_gradient(result.Yopt)))
            result.function_values.append(list(tnt_result.objective_values))
            result.gradient_norms.append(list(tnt_result.gradient_norms))
            result.elapsed_optimization_times.append(list(tnt_result.time))
            result.relaxation_ranks.append(r)

            if opts.verbose:
                _logger.info(
                    "Found first-order critical point with value F(Y) = %.6g "
                    "(|grad F(Y)| = %.3g, %d trust-region iterations, %.3f s)",
                    result.SDPval, result.gradnorm, tnt_result.iterations,
                    tnt_result.elapsed_time,
                )
            phase = _Phase.CERTIFYING

        elif phase is _Phase.CERTIFYING:
            if opts.verbose:
                _logger.info("Computing minimum eigenpair of certificate matrix S - Lambda(Y)")
            eig_start = time.perf_counter()
            converged, lambda_min, v_min = problem.compute_S_minus_Lambda_min_eig(
                result.Yopt,
                opts.min_eig_num_tol,
                opts.max_eig_iterations,
                opts.num_lanczos_vectors,
            )
            eig_time = time.perf_counter() - eig_start

            if not converged:
                _logger.warning(
                    "Minimum eigenvalue computation did not converge at rank %d "
                    "(%d iterations, %d Lanczos vectors)",
                    r, opts.max_eig_iterations, opts.num_lanczos_vectors,
                )
                status = Status.EIG_IMPRECISION
                phase = _Phase.DONE
                continue

            result.lambda_min = lambda_min
            result.v_min = v_min
            result.minimum_eigenvalues.append(lambda_min)
            result.minimum_eigenvalue_computation_times.append(eig_time)
            if opts.verbose:
                _logger.info("Minimum eigenvalue: %.6g (%.3f s)", lambda_min, eig_time)

            if lambda_min > -opts.min_eig_num_tol:
                if opts.verbose:
                    _logger.info("Found second-order critical point")
                status = Status.GLOBAL_OPT
                phase = _Phase.DONE
            else:
                phase = _Phase.ESCAPING

        elif phase is _Phase.ESCAPING:
            if opts.verbose:
                _logger.info("Saddle point detected; escaping to rank %d", r + 1)
            problem.set_relaxation_rank(r + 1)
            success, Yplus = escape_saddle(
                problem, result.Yopt, lambda_min, v_min, opts.grad_norm_tol
            )
            if not success:
                _logger.warning(
                    "Backtracking line search failed to escape from saddle point at rank %d "
                    "(lambda_min = %.6g)",
                    r, lambda_min,
                )
                status = Status.SADDLE_POINT
                phase = _Phase.DONE
            elif r + 1 > opts.rmax:
                status = Status.RS_ITER_LIMIT
                phase = _Phase.DONE
            else:
                Y = Yplus
                r += 1
                phase = _Phase.OPTIMIZING

    result.status = status if status is not None else Status.RS_ITER_LIMIT
    if opts.verbose and result.status is Status.RS_ITER_LIMIT:
        _logger.info("Reached maximum level of the Riemannian Staircase (rmax = %d)", opts.rmax)

    if opts.verbose:
        _logger.info("Rounding solution")
    result.xhat = problem.round_solution(result.Yopt)
    if problem.formulation == Formulation.SIMPLIFIED:
        result.Fxhat = problem.evaluate_objective(result.xhat[:, problem.num_poses():])
    else:
        result.Fxhat = problem.evaluate_objective(result.xhat)
    result.total_computation_time = time.perf_counter() - start

    if opts.verbose:
        _logger.info("===== END SE-SYNC =====")
        _logger.info("Status: %s", result.status.value)
        _logger.info("Value of SDP solution F(Y): %.6g", result.SDPval)
        _logger.info("Norm of Riemannian gradient grad F(Y): %.3g", result.gradnorm)
        _logger.info("Value of rounded pose estimate xhat: %.6g", result.Fxhat)
        _logger.info("Suboptimality bound of recovered pose estimate: %.6g", result.suboptimality_bound)
        _logger.info("Total elapsed computation time: %.3f seconds", result.total_computation_time)

    return result
