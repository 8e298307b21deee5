"""
Tests for SESyncProblem: derivatives, certificate eigenpair and rounding.
"""

import numpy as np
import pytest

from se_sync.backend.problem.sesync_problem import SESyncProblem
from se_sync.common.param_models import Formulation, Preconditioner


FORMULATIONS = [Formulation.SIMPLIFIED, Formulation.EXPLICIT]


def _problem(measurements, formulation, rank, **kwargs):
    problem = SESyncProblem(
        measurements, formulation=formulation, rng=np.random.default_rng(3), **kwargs
    )
    problem.set_relaxation_rank(rank)
    return problem


def _is_rotation(R, atol=1e-8):
    d = R.shape[0]
    return np.allclose(R.T @ R, np.eye(d), atol=atol) and np.linalg.det(R) > 0


def _inner(A, B):
    return float(np.sum(A * B))


class TestShapes:

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_dimensions(self, noisy_graph_3d, formulation):
        problem = _problem(noisy_graph_3d, formulation, 4)
        assert problem.num_poses() == 6
        assert problem.dimension() == 3
        assert problem.num_measurements() == len(noisy_graph_3d)
        expected_cols = 18 if formulation == Formulation.SIMPLIFIED else 24
        assert problem.num_columns == expected_cols
        assert problem.random_sample().shape == (4, expected_cols)
        assert problem.chordal_initialization().shape == (4, expected_cols)

    def test_rank_below_dimension_rejected(self, noisy_graph_3d):
        problem = SESyncProblem(noisy_graph_3d)
        with pytest.raises(ValueError):
            problem.set_relaxation_rank(2)


class TestDerivatives:

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_gradient_matches_finite_difference(self, noisy_graph_3d, formulation, rng):
        problem = _problem(noisy_graph_3d, formulation, 4)
        Y = problem.random_sample()
        V = problem.tangent_space_projection(Y, rng.standard_normal(Y.shape))
        grad = problem.Riemannian_gradient(Y)

        eps = 1e-6
        fd = (
            problem.evaluate_objective(problem.retract(Y, eps * V))
            - problem.evaluate_objective(problem.retract(Y, -eps * V))
        ) / (2.0 * eps)
        assert fd == pytest.approx(_inner(grad, V), rel=1e-5, abs=1e-6)

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_hessian_is_symmetric_on_tangent_space(self, noisy_graph_3d, formulation, rng):
        problem = _problem(noisy_graph_3d, formulation, 4)
        Y = problem.random_sample()
        nablaF = problem.Euclidean_gradient(Y)
        V1 = problem.tangent_space_projection(Y, rng.standard_normal(Y.shape))
        V2 = problem.tangent_space_projection(Y, rng.standard_normal(Y.shape))

        H1 = problem.Riemannian_Hessian_vector_product(Y, nablaF, V1)
        H2 = problem.Riemannian_Hessian_vector_product(Y, nablaF, V2)
        assert _inner(H1, V2) == pytest.approx(_inner(V1, H2), rel=1e-8, abs=1e-8)

    def test_explicit_retraction_moves_translations_freely(self, noisy_graph_3d, rng):
        problem = _problem(noisy_graph_3d, Formulation.EXPLICIT, 4)
        Y = problem.random_sample()
        V = problem.tangent_space_projection(Y, rng.standard_normal(Y.shape))
        Z = problem.retract(Y, V)

        n, d = 6, 3
        assert np.allclose(Z[:, :n], Y[:, :n] + V[:, :n])
        for i in range(n):
            block = Z[:, n + d * i:n + d * (i + 1)]
            assert np.allclose(block.T @ block, np.eye(d), atol=1e-10)

    @pytest.mark.parametrize(
        "precon", [Preconditioner.NONE, Preconditioner.JACOBI, Preconditioner.INCOMPLETE_CHOLESKY]
    )
    def test_preconditioner_returns_tangent_vector(self, noisy_graph_3d, precon, rng):
        problem = _problem(noisy_graph_3d, Formulation.SIMPLIFIED, 4, preconditioner=precon)
        Y = problem.random_sample()
        V = problem.tangent_space_projection(Y, rng.standard_normal(Y.shape))
        PV = problem.precondition(Y, V)
        assert PV.shape == V.shape
        assert np.allclose(problem.tangent_space_projection(Y, PV), PV, atol=1e-10)
        # Positive definite on the tangent space
        assert _inner(PV, V) > 0.0


class TestCertificate:

    def test_saddle_eigenpair(self, saddle_triangle_2d, saddle_point_2d):
        problem = _problem(saddle_triangle_2d, Formulation.SIMPLIFIED, 2)
        Y = saddle_point_2d
        assert problem.evaluate_objective(Y) == pytest.approx(16.0)
        assert np.allclose(problem.Riemannian_gradient(Y), 0.0, atol=1e-12)

        converged, lambda_min, v_min = problem.compute_S_minus_Lambda_min_eig(Y)
        assert converged
        assert lambda_min == pytest.approx(-3.0, abs=1e-4)
        assert np.linalg.norm(v_min) == pytest.approx(1.0)
        residual = problem.compute_S_minus_Lambda(Y).matvec(v_min) - lambda_min * v_min
        assert np.linalg.norm(residual) < 1e-3

    def test_lambda_is_block_diagonal(self, noisy_graph_3d):
        problem = _problem(noisy_graph_3d, Formulation.EXPLICIT, 3)
        Y = problem.random_sample()
        Lambda = problem.compute_Lambda(Y).toarray()
        n, d = 6, 3
        # Translation rows/columns of Lambda are zero in the explicit formulation
        assert np.allclose(Lambda[:n, :], 0.0)
        assert np.allclose(Lambda, Lambda.T)
        assert np.allclose(Lambda[n:n + d, n + d:], 0.0)

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_noise_free_optimum_is_certified(self, triangle_3d, formulation):
        problem = _problem(triangle_3d, formulation, 3)
        Y = problem.chordal_initialization()
        assert problem.evaluate_objective(Y) == pytest.approx(0.0, abs=1e-12)

        converged, lambda_min, _ = problem.compute_S_minus_Lambda_min_eig(Y)
        assert converged
        assert lambda_min > -1e-5


class TestRounding:

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_rounded_estimate_is_feasible(self, noisy_graph_3d, formulation):
        problem = _problem(noisy_graph_3d, formulation, 5)
        xhat = problem.round_solution(problem.random_sample())
        n, d = 6, 3
        assert xhat.shape == (d, n + d * n)
        for i in range(n):
            assert _is_rotation(xhat[:, n + d * i:n + d * (i + 1)], atol=1e-8)

    @pytest.mark.parametrize("formulation", FORMULATIONS)
    def test_rounding_is_deterministic(self, noisy_graph_3d, formulation):
        problem = _problem(noisy_graph_3d, formulation, 5)
        Y = problem.random_sample()
        x1 = problem.round_solution(Y)
        x2 = problem.round_solution(Y.copy())

        assert np.array_equal(x1, x2)
        if formulation == Formulation.SIMPLIFIED:
            F1, F2 = problem.evaluate_objective(x1[:, 6:]), problem.evaluate_objective(x2[:, 6:])
        else:
            F1, F2 = problem.evaluate_objective(x1), problem.evaluate_objective(x2)
        assert F1 == F2

    def test_rounding_is_idempotent_up_to_gauge(self, noisy_graph_3d):
        problem = _problem(noisy_graph_3d, Formulation.SIMPLIFIED, 5)
        n, d = 6, 3
        x1 = problem.round_solution(problem.random_sample())
        x2 = problem.round_solution(x1[:, n:])

        # Rounding a feasible estimate returns the same poses up to a global rotation
        G = x2[:, n:n + d] @ x1[:, n:n + d].T
        assert _is_rotation(G, atol=1e-8)
        assert np.allclose(x2[:, n:], G @ x1[:, n:], atol=1e-8)
        assert np.allclose(x2[:, :n], G @ x1[:, :n], atol=1e-8)
        assert problem.evaluate_objective(x2[:, n:]) == pytest.approx(
            problem.evaluate_objective(x1[:, n:])
        )

    def test_rounding_recovers_noise_free_poses(self, triangle_3d, triangle_poses_3d):
        rotations, translations = triangle_poses_3d
        problem = _problem(triangle_3d, Formulation.SIMPLIFIED, 3)
        xhat = problem.round_solution(problem.chordal_initialization())
        n = 3
        G = xhat[:, n:n + 3] @ rotations[0].T
        t_true = np.stack(translations, axis=1)
        assert np.allclose(xhat[:, n:], G @ np.hstack(rotations), atol=1e-8)
        assert np.allclose(xhat[:, :n], G @ (t_true - t_true[:, -1:]), atol=1e-8)
