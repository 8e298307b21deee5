"""
Product of Stiefel manifolds St(d, r)^n, realized as r x dn matrices.

Block i of Y is Y[:, d*i : d*(i+1)] (an r x d matrix with orthonormal columns).
The manifold is treated as an embedded submanifold of R^{r x dn}, so the
Riemannian metric is the Frobenius inner product.

Block kernels are JIT-compiled JAX (vmapped over the n blocks); the public
wrappers take and return NumPy arrays.
"""

from __future__ import annotations

from functools import partial
from typing import Optional

import numpy as np

from se_sync.common.jax_init import jax, jnp
from se_sync.common.jax_utils import to_jax, to_numpy


# =============================================================================
# Block layout helpers
# =============================================================================


def _to_blocks(Y: jnp.ndarray, d: int) -> jnp.ndarray:
    """(r, dn) -> (n, r, d)."""
    r = Y.shape[0]
    return Y.reshape(r, -1, d).transpose(1, 0, 2)


def _from_blocks(B: jnp.ndarray) -> jnp.ndarray:
    """(n, r, d) -> (r, dn)."""
    n, r, d = B.shape
    return B.transpose(1, 0, 2).reshape(r, n * d)


# =============================================================================
# JIT'd cores
# =============================================================================


@partial(jax.jit, static_argnames=("d",))
def _sym_block_diag_products_core(BT: jnp.ndarray, C: jnp.ndarray, d: int) -> jnp.ndarray:
    """(n, d, d) stack of sym(BT_i C_i), BT_i being the d x r block rows of BT."""
    B_b = _to_blocks(BT.T, d)
    C_b = _to_blocks(C, d)
    P = jnp.einsum("nrd,nre->nde", B_b, C_b)
    return 0.5 * (P + jnp.swapaxes(P, 1, 2))


@partial(jax.jit, static_argnames=("d",))
def _sym_block_diag_product_core(
    A: jnp.ndarray, BT: jnp.ndarray, C: jnp.ndarray, d: int
) -> jnp.ndarray:
    S = _sym_block_diag_products_core(BT, C, d)
    return _from_blocks(jnp.einsum("nrd,nde->nre", _to_blocks(A, d), S))


@partial(jax.jit, static_argnames=("d",))
def _project_core(Y: jnp.ndarray, V: jnp.ndarray, d: int) -> jnp.ndarray:
    # V_i - Y_i sym(Y_i^T V_i)
    return V - _sym_block_diag_product_core(Y, Y.T, V, d)


@partial(jax.jit, static_argnames=("d",))
def _polar_core(M: jnp.ndarray, d: int) -> jnp.ndarray:
    # Closest matrix with orthonormal columns: U V^T with M_i = U S V^T
    U, _, Vt = jnp.linalg.svd(_to_blocks(M, d), full_matrices=False)
    return _from_blocks(U @ Vt)


@partial(jax.jit, static_argnames=("d",))
def _qr_orthonormalize_core(M: jnp.ndarray, d: int) -> jnp.ndarray:
    Q, R = jnp.linalg.qr(_to_blocks(M, d))
    # Fix column signs so the factorization is unique
    signs = jnp.sign(jnp.diagonal(R, axis1=1, axis2=2))
    signs = jnp.where(signs == 0.0, 1.0, signs)
    return _from_blocks(Q * signs[:, None, :])


# =============================================================================
# Public API (NumPy in / NumPy out)
# =============================================================================


def sym_block_diag_products(BT: np.ndarray, C: np.ndarray, d: int) -> np.ndarray:
    """Stack (n, d, d) of sym(BT_i C_i)."""
    return to_numpy(_sym_block_diag_products_core(to_jax(BT), to_jax(C), d))


def sym_block_diag_product(A: np.ndarray, BT: np.ndarray, C: np.ndarray, d: int) -> np.ndarray:
    """Block-wise A_i sym(BT_i C_i), returned as an r x dn matrix."""
    return to_numpy(_sym_block_diag_product_core(to_jax(A), to_jax(BT), to_jax(C), d))


def project(Y: np.ndarray, V: np.ndarray, d: int) -> np.ndarray:
    """Orthogonal projection of V onto the tangent space at Y."""
    return to_numpy(_project_core(to_jax(Y), to_jax(V), d))


def project_to_manifold(M: np.ndarray, d: int) -> np.ndarray:
    """Block-wise polar projection of M onto St(d, r)^n."""
    return to_numpy(_polar_core(to_jax(M), d))


def retract(Y: np.ndarray, V: np.ndarray, d: int) -> np.ndarray:
    """Projection-based retraction: P_St(Y + V)."""
    return project_to_manifold(np.asarray(Y) + np.asarray(V), d)


def random_sample(
    r: int, n: int, d: int, rng: Optional[np.random.Generator] = None
) -> np.ndarray:
    """Random point of St(d, r)^n (QR of Gaussian blocks)."""
    rng = rng if rng is not None else np.random.default_rng()
    G = rng.standard_normal((r, d * n))
    return to_numpy(_qr_orthonormalize_core(to_jax(G), d))
