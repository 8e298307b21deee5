"""
SE-Sync problem instance: the rank-restricted semidefinite relaxation

    min tr(Y S Y^T)   s.t.   Y_i in St(d, r),  i = 1..n

of the SE(d) synchronization maximum-likelihood problem, where S is the data
matrix of the chosen formulation (Q for Simplified, M for Explicit).

Provides everything the Riemannian Staircase needs: objective, Euclidean and
Riemannian gradients, Riemannian Hessian-vector products, retraction,
preconditioning, initialization, the certificate matrix S - Lambda(Y) and its
minimum eigenpair, and rounding back to SE(d).
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence, Tuple

import numpy as np
import scipy.sparse as sp
import scipy.sparse.linalg as spla
from scipy.sparse.linalg import ArpackNoConvergence, LinearOperator

from se_sync.backend.problem import data_matrices as dm
from se_sync.backend.problem import stiefel_product as stiefel
from se_sync.backend.structures.measurements import (
    RelativePoseMeasurement,
    dimension,
    num_poses,
    validate_measurements,
)
from se_sync.common import constants
from se_sync.common.geometry.so_d import project_to_SOd
from se_sync.common.param_models import Formulation, Preconditioner

_logger = logging.getLogger(__name__)


class SESyncProblem:
    """Rank-restricted SE-Sync relaxation over a product of Stiefel manifolds."""

    def __init__(
        self,
        measurements: Sequence[RelativePoseMeasurement],
        formulation: Formulation = Formulation.SIMPLIFIED,
        use_cholesky: bool = True,
        preconditioner: Preconditioner = Preconditioner.JACOBI,
        rng: Optional[np.random.Generator] = None,
    ):
        validate_measurements(measurements)
        self.measurements = list(measurements)
        self.formulation = Formulation(formulation)
        self.preconditioner = Preconditioner(preconditioner)
        self.rng = rng if rng is not None else np.random.default_rng()

        self._n = num_poses(self.measurements)
        self._d = dimension(self.measurements)
        self._r = self._d

        self.LGrho = dm.construct_rotational_connection_laplacian(self.measurements)
        self.A = dm.construct_oriented_incidence_matrix(self.measurements)
        self.Omega = dm.construct_translational_precision_matrix(self.measurements)
        self.T = dm.construct_translational_data_matrix(self.measurements)

        if self.formulation == Formulation.SIMPLIFIED:
            self.projector = dm.OrthogonalProjector(
                dm.reduced_incidence_matrix(self.A), self.Omega, use_cholesky=use_cholesky
            )
            self._sqrt_omega_T = sp.csc_matrix(
                sp.diags(np.sqrt(self.Omega.diagonal())) @ self.T
            )
            self.M = None
            precon_base = self.LGrho
        else:
            self.projector = None
            self._sqrt_omega_T = None
            self.M = dm.construct_quadratic_form_data_matrix(self.measurements)
            precon_base = self.M

        self._jacobi_precon = None
        self._ichol_precon = None
        if self.preconditioner == Preconditioner.JACOBI:
            self._jacobi_precon = 1.0 / precon_base.diagonal()
        elif self.preconditioner == Preconditioner.INCOMPLETE_CHOLESKY:
            self._ichol_precon = _regularized_ilu(precon_base)

    # =========================================================================
    # Accessors
    # =========================================================================

    def num_poses(self) -> int:
        return self._n

    def dimension(self) -> int:
        return self._d

    def num_measurements(self) -> int:
        return len(self.measurements)

    @property
    def relaxation_rank(self) -> int:
        return self._r

    def set_relaxation_rank(self, r: int) -> None:
        """Set the working rank; must precede any evaluation at that rank."""
        r = int(r)
        if r < self._d:
            raise ValueError(f"Relaxation rank must be >= dimension {self._d}, got {r}")
        self._r = r

    @property
    def rotation_offset(self) -> int:
        """Column index at which the rotational blocks of Y begin."""
        return 0 if self.formulation == Formulation.SIMPLIFIED else self._n

    @property
    def num_columns(self) -> int:
        """Number of columns N of an iterate Y (r x N)."""
        return self._d * self._n + self.rotation_offset

    # =========================================================================
    # Objective and derivatives
    # =========================================================================

    def data_matrix_product(self, Y: np.ndarray) -> np.ndarray:
        """Y @ S for the formulation's data matrix S."""
        Y = np.asarray(Y, dtype=float)
        if self.formulation == Formulation.SIMPLIFIED:
            rot = np.asarray(self.LGrho @ Y.T)
            PT = self.projector.apply(np.asarray(self._sqrt_omega_T @ Y.T))
            return (rot + np.asarray(self._sqrt_omega_T.T @ PT)).T
        return np.asarray(self.M @ Y.T).T

    def evaluate_objective(self, Y: np.ndarray) -> float:
        """F(Y) = tr(Y S Y^T)."""
        Y = np.asarray(Y, dtype=float)
        return float(np.sum(Y * self.data_matrix_product(Y)))

    def Euclidean_gradient(self, Y: np.ndarray) -> np.ndarray:
        return 2.0 * self.data_matrix_product(Y)

    def tangent_space_projection(self, Y: np.ndarray, V: np.ndarray) -> np.ndarray:
        """Orthogonal projection of V onto the tangent space at Y."""
        off = self.rotation_offset
        if off == 0:
            return stiefel.project(Y, V, self._d)
        out = np.array(V, dtype=float)
        out[:, off:] = stiefel.project(Y[:, off:], V[:, off:], self._d)
        return out

    def Riemannian_gradient(self, Y: np.ndarray, nablaF_Y: Optional[np.ndarray] = None) -> np.ndarray:
        if nablaF_Y is None:
            nablaF_Y = self.Euclidean_gradient(Y)
        return self.tangent_space_projection(Y, nablaF_Y)

    def Riemannian_Hessian_vector_product(
        self, Y: np.ndarray, nablaF_Y: np.ndarray, dotY: np.ndarray
    ) -> np.ndarray:
        """Hess F(Y)[dotY] = Proj_Y(2 dotY S - SymBlockDiagProduct(dotY, Y^T, nabla F(Y)))."""
        off = self.rotation_offset
        H = 2.0 * self.data_matrix_product(dotY)
        Y_rot = Y[:, off:]
        correction = stiefel.sym_block_diag_product(
            dotY[:, off:], Y_rot.T, nablaF_Y[:, off:], self._d
        )
        H[:, off:] = stiefel.project(Y_rot, H[:, off:] - correction, self._d)
        return H

    def retract(self, Y: np.ndarray, dotY: np.ndarray) -> np.ndarray:
        off = self.rotation_offset
        Y = np.asarray(Y, dtype=float)
        dotY = np.asarray(dotY, dtype=float)
        # Translation columns are unconstrained
        out = Y + dotY
        out[:, off:] = stiefel.retract(Y[:, off:], dotY[:, off:], self._d)
        return out

    def precondition(self, Y: np.ndarray, dotY: np.ndarray) -> np.ndarray:
        """Apply the configured preconditioner, then project onto the tangent space at Y."""
        if self._jacobi_precon is not None:
            return self.tangent_space_projection(Y, dotY * self._jacobi_precon[None, :])
        if self._ichol_precon is not None:
            return self.tangent_space_projection(Y, self._ichol_precon.solve(dotY.T).T)
        return np.array(dotY, dtype=float)

    # =========================================================================
    # Initialization
    # =========================================================================

    def random_sample(self) -> np.ndarray:
        """Random point at the current relaxation rank."""
        R = stiefel.random_sample(self._r, self._n, self._d, rng=self.rng)
        if self.formulation == Formulation.SIMPLIFIED:
            return R
        t = self.rng.standard_normal((self._r, self._n))
        return np.hstack([t, R])

    def chordal_initialization(self) -> np.ndarray:
        """Chordal estimate, zero-padded to the current relaxation rank."""
        R = dm.chordal_initialization(self.LGrho, self._d)
        if self.formulation == Formulation.SIMPLIFIED:
            X = R
        else:
            X = np.hstack([dm.recover_translations(self.A, self.Omega, self.T, R), R])
        Y = np.zeros((self._r, self.num_columns), dtype=float)
        Y[: self._d, :] = X
        return Y

    # =========================================================================
    # Certificate matrix S - Lambda(Y)
    # =========================================================================

    def compute_Lambda_blocks(self, Y: np.ndarray) -> np.ndarray:
        """(n, d, d) diagonal blocks Lambda_i = sym((S Y^T)_i Y_i)."""
        off = self.rotation_offset
        G = self.data_matrix_product(Y)
        return stiefel.sym_block_diag_products(G[:, off:].T, Y[:, off:], self._d)

    def compute_Lambda(self, Y: np.ndarray) -> sp.csc_matrix:
        """Lagrange multiplier matrix Lambda(Y) (N x N, block diagonal)."""
        blocks = sp.block_diag(list(self.compute_Lambda_blocks(Y)), format="csc")
        off = self.rotation_offset
        if off == 0:
            return blocks
        return sp.block_diag([sp.csc_matrix((off, off)), blocks], format="csc")

    def compute_S_minus_Lambda(self, Y: np.ndarray, shift: float = 0.0) -> LinearOperator:
        """Linear operator x -> (S - Lambda(Y) + shift * I) x."""
        Lambda = self.compute_Lambda(Y)
        N = self.num_columns

        def _matvec(x: np.ndarray) -> np.ndarray:
            x = np.asarray(x, dtype=float).reshape(-1)
            out = self.data_matrix_product(x[None, :])[0] - Lambda @ x
            if shift != 0.0:
                out = out + shift * x
            return out

        return LinearOperator((N, N), matvec=_matvec, dtype=float)

    def compute_S_minus_Lambda_min_eig(
        self,
        Y: np.ndarray,
        min_eigenvalue_nonnegativity_tolerance: float = constants.SESYNC_MIN_EIG_NUM_TOL_DEFAULT,
        max_iterations: int = constants.SESYNC_MAX_EIG_ITERATIONS_DEFAULT,
        num_Lanczos_vectors: int = constants.SESYNC_NUM_LANCZOS_VECTORS_DEFAULT,
    ) -> Tuple[bool, float, Optional[np.ndarray]]:
        """
        Minimum eigenpair of S - Lambda(Y).

        First estimates the largest-magnitude eigenvalue lambda_lm. If it is negative
        it is the minimum eigenvalue. Otherwise the spectrum is shifted by
        -2 lambda_lm, which makes lambda_min - 2 lambda_lm the largest-magnitude
        eigenvalue of the shifted operator (condition number <= 2), and Lanczos is
        run again from a slightly perturbed first row of Y. The relative tolerance
        of the second run is chosen so that lambda_min is resolved to the absolute
        tolerance min_eigenvalue_nonnegativity_tolerance.

        Returns:
            (converged, lambda_min, v_min); v_min is a unit vector.
        """
        N = self.num_columns
        ncv = max(2, min(int(num_Lanczos_vectors), N))
        op = self.compute_S_minus_Lambda(Y)

        # Seeded start so that a fixed rng gives a reproducible eigenpair
        try:
            lm_vals, lm_vecs = spla.eigsh(
                op, k=1, which="LM", ncv=ncv, maxiter=max_iterations,
                tol=constants.SESYNC_LM_EIG_TOL, v0=self.rng.standard_normal(N),
            )
        except ArpackNoConvergence:
            _logger.debug("Largest-magnitude eigenvalue computation did not converge")
            return False, float("nan"), None

        lambda_lm = float(lm_vals[0])
        if lambda_lm <= 0.0:
            v = lm_vecs[:, 0] / np.linalg.norm(lm_vecs[:, 0])
            return True, lambda_lm, v

        shifted = self.compute_S_minus_Lambda(Y, shift=-2.0 * lambda_lm)

        # Rows of Y lie in the null space of S - Lambda(Y) at a critical point;
        # start close to one of them, perturbed so Lanczos can leave it.
        v0 = np.asarray(Y[0, :], dtype=float).copy()
        perturbation = self.rng.standard_normal(N)
        perturbation /= np.linalg.norm(perturbation)
        v0 = v0 + constants.SESYNC_LANCZOS_INIT_PERTURBATION * np.linalg.norm(v0) * perturbation
        if not np.any(v0):
            v0 = perturbation

        try:
            _, min_vecs = spla.eigsh(
                shifted, k=1, which="LM", ncv=ncv, maxiter=max_iterations,
                tol=min_eigenvalue_nonnegativity_tolerance / lambda_lm, v0=v0,
            )
        except ArpackNoConvergence:
            _logger.debug("Shifted minimum eigenvalue computation did not converge")
            return False, float("nan"), None

        v_min = min_vecs[:, 0] / np.linalg.norm(min_vecs[:, 0])
        lambda_min = float(v_min @ op.matvec(v_min))
        return True, lambda_min, v_min

    # =========================================================================
    # Rounding
    # =========================================================================

    def round_solution(self, Y: np.ndarray) -> np.ndarray:
        """
        Round a relaxed iterate to a pose estimate X = [t | R] (d x (n + dn)).

        Takes the rank-d truncation Sigma_d V_d^T of Y, reflects it if fewer than
        half of the rotation blocks have positive determinant, projects each block
        onto SO(d), and (Simplified) recovers the optimal translations.
        """
        Y = np.asarray(Y, dtype=float)
        d, n, off = self._d, self._n, self.rotation_offset
        _, s, Vt = np.linalg.svd(Y, full_matrices=False)
        R = s[:d, None] * Vt[:d, :]

        dets = [np.linalg.det(R[:, off + d * i: off + d * (i + 1)]) for i in range(n)]
        if 2 * sum(1 for det in dets if det > 0) < n:
            reflector = np.ones(d, dtype=float)
            reflector[-1] = -1.0
            R = reflector[:, None] * R

        for i in range(n):
            cols = slice(off + d * i, off + d * (i + 1))
            R[:, cols] = project_to_SOd(R[:, cols])

        if self.formulation == Formulation.SIMPLIFIED:
            t = dm.recover_translations(self.A, self.Omega, self.T, R)
            return np.hstack([t, R])
        return R


def _regularized_ilu(S: sp.spmatrix) -> spla.SuperLU:
    """Incomplete factorization of S + lambda I with cond(S + lambda I) bounded."""
    S = sp.csc_matrix(S)
    lambda_max = float(np.max(np.asarray(abs(S).sum(axis=1)).ravel()))  # Gershgorin bound
    reg = lambda_max / constants.SESYNC_PRECON_MAX_CONDITION_NUMBER
    P = sp.csc_matrix(S + reg * sp.identity(S.shape[0], format="csc"))
    return spla.spilu(
        P,
        drop_tol=constants.SESYNC_ILU_DROP_TOL,
        fill_factor=constants.SESYNC_ILU_FILL_FACTOR,
    )
