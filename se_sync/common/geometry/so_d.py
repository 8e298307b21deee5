"""
SO(d) projection in NumPy (d = 2 or 3).
"""

from __future__ import annotations

import numpy as np


def project_to_SOd(M: np.ndarray) -> np.ndarray:
    """
    Closest rotation (Frobenius norm) to a d x d matrix.

    R = U diag(1, ..., 1, det(U V^T)) V^T with M = U S V^T.
    """
    M = np.asarray(M, dtype=float)
    U, _, Vt = np.linalg.svd(M)
    Ddiag = np.ones(M.shape[0], dtype=float)
    Ddiag[-1] = np.sign(np.linalg.det(U @ Vt)) or 1.0
    return (U * Ddiag) @ Vt
