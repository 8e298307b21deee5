"""
Sparse data matrices defining the SE-Sync quadratic forms.

For n poses in SE(d) and m measurements (index e = (i, j)):

    L(G^rho)  (dn x dn)  rotational connection Laplacian
    A         (n x m)    oriented incidence matrix, A[i, e] = -1, A[j, e] = +1
    Omega     (m x m)    diag(tau_e)
    T         (m x dn)   T[e, d*i : d*(i+1)] = -t_ij^T
    V = A Omega T, Sigma = T^T Omega T, L(W^tau) = A Omega A^T

    M = [[L(W^tau), V], [V^T, L(G^rho) + Sigma]]   (explicit formulation)
    Q = L(G^rho) + T^T Omega^1/2 Pi Omega^1/2 T     (simplified formulation)

where Pi is the orthogonal projection onto ker(Abar Omega^1/2) and Abar is A with
its last row removed. With X = [t | R], F(X) = tr(X M X^T) is exactly the
maximum-likelihood objective sum kappa ||R_j - R_i R_ij||^2 + tau ||t_j - t_i - R_i t_ij||^2.
"""

from __future__ import annotations

from typing import Sequence

import numpy as np
import scipy.linalg
import scipy.sparse as sp
import scipy.sparse.linalg as spla

from se_sync.backend.structures.measurements import (
    RelativePoseMeasurement,
    dimension,
    num_poses,
)
from se_sync.common.geometry.so_d import project_to_SOd


# =============================================================================
# Matrix construction
# =============================================================================


def construct_rotational_connection_laplacian(
    measurements: Sequence[RelativePoseMeasurement],
) -> sp.csc_matrix:
    """Rotational connection Laplacian L(G^rho) (dn x dn)."""
    n = num_poses(measurements)
    d = dimension(measurements)
    rows, cols, vals = [], [], []
    eye_idx = np.arange(d)
    block_r, block_c = np.meshgrid(eye_idx, eye_idx, indexing="ij")

    for m in measurements:
        i0, j0 = d * m.i, d * m.j
        # Diagonal blocks: kappa * I
        for k in range(d):
            rows += [i0 + k, j0 + k]
            cols += [i0 + k, j0 + k]
            vals += [m.kappa, m.kappa]
        # Off-diagonal blocks: -kappa R_ij and -kappa R_ij^T
        rows += list((i0 + block_r).ravel()) + list((j0 + block_r).ravel())
        cols += list((j0 + block_c).ravel()) + list((i0 + block_c).ravel())
        vals += list((-m.kappa * m.R).ravel()) + list((-m.kappa * m.R.T).ravel())

    return sp.csc_matrix((vals, (rows, cols)), shape=(d * n, d * n))


def construct_oriented_incidence_matrix(
    measurements: Sequence[RelativePoseMeasurement],
) -> sp.csc_matrix:
    """Oriented incidence matrix A (n x m) of the measurement graph."""
    n = num_poses(measurements)
    m_count = len(measurements)
    rows, cols, vals = [], [], []
    for e, m in enumerate(measurements):
        rows += [m.i, m.j]
        cols += [e, e]
        vals += [-1.0, 1.0]
    return sp.csc_matrix((vals, (rows, cols)), shape=(n, m_count))


def construct_translational_precision_matrix(
    measurements: Sequence[RelativePoseMeasurement],
) -> sp.csc_matrix:
    """Diagonal matrix Omega (m x m) of translational precisions."""
    return sp.diags([m.tau for m in measurements], format="csc")


def construct_translational_data_matrix(
    measurements: Sequence[RelativePoseMeasurement],
) -> sp.csc_matrix:
    """Translational data matrix T (m x dn)."""
    n = num_poses(measurements)
    d = dimension(measurements)
    rows, cols, vals = [], [], []
    for e, m in enumerate(measurements):
        for k in range(d):
            rows.append(e)
            cols.append(d * m.i + k)
            vals.append(-m.t[k])
    return sp.csc_matrix((vals, (rows, cols)), shape=(len(measurements), d * n))


def construct_quadratic_form_data_matrix(
    measurements: Sequence[RelativePoseMeasurement],
) -> sp.csc_matrix:
    """Full quadratic form M ((n + dn) x (n + dn)) of the explicit formulation."""
    LGrho = construct_rotational_connection_laplacian(measurements)
    A = construct_oriented_incidence_matrix(measurements)
    Omega = construct_translational_precision_matrix(measurements)
    T = construct_translational_data_matrix(measurements)

    LWtau = A @ Omega @ A.T
    V = A @ Omega @ T
    Sigma = T.T @ Omega @ T
    return sp.bmat([[LWtau, V], [V.T, LGrho + Sigma]], format="csc")


def reduced_incidence_matrix(A: sp.spmatrix) -> sp.csc_matrix:
    """Incidence matrix with its last row removed (full row rank when connected)."""
    return sp.csc_matrix(A)[:-1, :]


# =============================================================================
# Orthogonal projection onto ker(Abar Omega^1/2)
# =============================================================================


class OrthogonalProjector:
    """
    Applies Pi = I - Omega^1/2 Abar^T (Abar Omega Abar^T)^-1 Abar Omega^1/2.

    use_cholesky=True factors the (SPD, sparse) reduced translational Laplacian;
    otherwise a thin QR of Omega^1/2 Abar^T is used.
    """

    def __init__(self, Abar: sp.spmatrix, Omega: sp.spmatrix, use_cholesky: bool = True):
        sqrt_omega = sp.diags(np.sqrt(Omega.diagonal()), format="csc")
        self.B = sp.csc_matrix(sqrt_omega @ Abar.T)  # (m x (n-1))
        self.use_cholesky = bool(use_cholesky)
        if self.use_cholesky:
            L_red = sp.csc_matrix(self.B.T @ self.B)
            # Symmetric-mode factorization of the SPD reduced Laplacian
            self._factor = spla.splu(L_red, permc_spec="MMD_AT_PLUS_A", diag_pivot_thresh=0.0)
            self._Q = None
        else:
            self._factor = None
            self._Q, _ = scipy.linalg.qr(self.B.toarray(), mode="economic")

    def apply(self, X: np.ndarray) -> np.ndarray:
        """Pi @ X for X of shape (m,) or (m, k)."""
        X = np.asarray(X, dtype=float)
        if self.use_cholesky:
            return X - self.B @ self._factor.solve(np.asarray(self.B.T @ X))
        return X - self._Q @ (self._Q.T @ X)


# =============================================================================
# Initialization and translation recovery
# =============================================================================


def chordal_initialization(LGrho: sp.spmatrix, d: int) -> np.ndarray:
    """
    Chordal rotation estimate R (d x dn).

    Minimizes tr(R L(G^rho) R^T) over unconstrained d x d blocks with R_1 = I,
    then projects each block onto SO(d).
    """
    L = sp.csc_matrix(LGrho)
    dn = L.shape[0]
    L_rr = L[d:, d:]
    L_r1 = L[d:, :d]
    if dn == d:
        return np.eye(d, dtype=float)

    X = spla.spsolve(sp.csc_matrix(L_rr), -L_r1.toarray())
    X = np.asarray(X, dtype=float).reshape(dn - d, d)

    R = np.hstack([np.eye(d, dtype=float), X.T])
    for i in range(dn // d):
        R[:, d * i:d * (i + 1)] = project_to_SOd(R[:, d * i:d * (i + 1)])
    return R


def recover_translations(
    A: sp.spmatrix, Omega: sp.spmatrix, T: sp.spmatrix, R: np.ndarray
) -> np.ndarray:
    """
    Optimal translations t (d x n) for fixed rotations R (d x dn).

    Solves L(W^tau) t^T = -V R^T with the last translation pinned at the origin.
    """
    Abar = reduced_incidence_matrix(A)
    L_red = sp.csc_matrix(Abar @ Omega @ Abar.T)
    rhs = -(Abar @ (Omega @ (T @ R.T)))  # ((n-1) x d)
    t_red = spla.splu(L_red, permc_spec="MMD_AT_PLUS_A", diag_pivot_thresh=0.0).solve(
        np.asarray(rhs, dtype=float)
    )
    d = R.shape[0]
    return np.hstack([np.asarray(t_red).reshape(-1, d).T, np.zeros((d, 1))])
