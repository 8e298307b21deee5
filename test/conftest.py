import os
import sys
from typing import Callable, List, Tuple

import numpy as np
import pytest
from scipy.spatial.transform import Rotation

# Ensure local package import works for pytest collection.
_TEST_DIR = os.path.dirname(__file__)
_PKG_ROOT = os.path.abspath(os.path.join(_TEST_DIR, ".."))
if _PKG_ROOT not in sys.path:
    sys.path.insert(0, _PKG_ROOT)

from se_sync.backend.structures.measurements import RelativePoseMeasurement  # noqa: E402

CONFIG_DIR = os.path.join(_PKG_ROOT, "config")


# =============================================================================
# Pose-graph builders
# =============================================================================


def random_rotation(d: int, rng: np.random.Generator) -> np.ndarray:
    """Random rotation in SO(d) (QR of a Gaussian matrix, sign-corrected)."""
    Q, Rq = np.linalg.qr(rng.standard_normal((d, d)))
    Q = Q * np.sign(np.diag(Rq))
    if np.linalg.det(Q) < 0:
        Q[:, 0] = -Q[:, 0]
    return Q


def planar_rotation(theta: float) -> np.ndarray:
    c, s = np.cos(theta), np.sin(theta)
    return np.array([[c, -s], [s, c]])


def rotvec_to_rotmat(rotvec: np.ndarray) -> np.ndarray:
    return Rotation.from_rotvec(rotvec).as_matrix()


def measurements_from_poses(
    rotations: List[np.ndarray],
    translations: List[np.ndarray],
    edges: List[Tuple[int, int]],
    kappa: float = 1.0,
    tau: float = 1.0,
    rng: np.random.Generator = None,
    rot_noise: float = 0.0,
    trans_noise: float = 0.0,
) -> List[RelativePoseMeasurement]:
    """Relative measurements i^{-1} ∘ j between ground-truth poses, optionally perturbed."""
    out = []
    for i, j in edges:
        R_ij = rotations[i].T @ rotations[j]
        t_ij = rotations[i].T @ (translations[j] - translations[i])
        if rng is not None and rot_noise > 0.0:
            d = R_ij.shape[0]
            if d == 3:
                R_ij = R_ij @ rotvec_to_rotmat(rot_noise * rng.standard_normal(3))
            else:
                R_ij = R_ij @ planar_rotation(rot_noise * rng.standard_normal())
        if rng is not None and trans_noise > 0.0:
            t_ij = t_ij + trans_noise * rng.standard_normal(t_ij.shape)
        out.append(RelativePoseMeasurement(i, j, R_ij, t_ij, kappa=kappa, tau=tau))
    return out


@pytest.fixture
def triangle_poses_3d():
    """Ground-truth poses of a 3-pose triangle in SE(3)."""
    rotations = [
        np.eye(3),
        rotvec_to_rotmat(np.array([0.1, -0.2, 0.3])),
        rotvec_to_rotmat(np.array([-0.4, 0.2, 0.1])),
    ]
    translations = [
        np.zeros(3),
        np.array([1.0, 0.0, 0.2]),
        np.array([0.5, 1.0, -0.1]),
    ]
    return rotations, translations


@pytest.fixture
def triangle_3d(triangle_poses_3d) -> List[RelativePoseMeasurement]:
    """Noise-free triangle: measurements exactly consistent with the ground truth."""
    rotations, translations = triangle_poses_3d
    return measurements_from_poses(rotations, translations, [(0, 1), (1, 2), (0, 2)])


@pytest.fixture
def noisy_graph_3d() -> List[RelativePoseMeasurement]:
    """Small SE(3) pose graph (odometry chain plus loop closures) with low noise."""
    rng = np.random.default_rng(7)
    n = 6
    rotations = [random_rotation(3, rng) for _ in range(n)]
    translations = [rng.standard_normal(3) for _ in range(n)]
    edges = [(k, k + 1) for k in range(n - 1)] + [(0, 3), (1, 4), (2, 5), (0, 5)]
    return measurements_from_poses(
        rotations, translations, edges, kappa=10.0, tau=5.0,
        rng=rng, rot_noise=0.01, trans_noise=0.01,
    )


@pytest.fixture
def saddle_triangle_2d() -> List[RelativePoseMeasurement]:
    """Planar triangle with identity relative poses (optimum: all poses equal)."""
    I2 = np.eye(2)
    zero = np.zeros(2)
    return [
        RelativePoseMeasurement(0, 1, I2, zero),
        RelativePoseMeasurement(1, 2, I2, zero),
        RelativePoseMeasurement(0, 2, I2, zero),
    ]


@pytest.fixture
def saddle_point_2d() -> np.ndarray:
    """
    Rank-2 critical point Y = [I, I, -I] of the planar triangle.

    F(Y) = 16, the Riemannian gradient vanishes, and S - Lambda(Y) = M (x) I_2 with
    M = [[0, -1, -1], [-1, 0, -1], [-1, -1, -2]], whose minimum eigenvalue is -3.
    """
    I2 = np.eye(2)
    return np.hstack([I2, I2, -I2])


@pytest.fixture
def saddle_direction_2d() -> np.ndarray:
    """Unit eigenvector of S - Lambda at saddle_point_2d for eigenvalue -3."""
    v = np.kron(np.array([1.0, 1.0, 2.0]), np.array([1.0, 0.0]))
    return v / np.linalg.norm(v)


@pytest.fixture
def tight_opts() -> Callable:
    """Factory for SESyncOpts with tight trust-region tolerances."""
    from se_sync.common.param_models import SESyncOpts

    def _make(**overrides):
        kwargs = dict(
            grad_norm_tol=1e-6,
            rel_func_decrease_tol=0.0,
            stepsize_tol=1e-10,
            seed=0,
        )
        kwargs.update(overrides)
        return SESyncOpts(**kwargs)

    return _make


# =============================================================================
# Test Utility Fixtures
# =============================================================================


@pytest.fixture
def rng():
    """Seeded generator for reproducible tests."""
    return np.random.default_rng(42)


@pytest.fixture
def default_config_path() -> str:
    path = os.path.join(CONFIG_DIR, "sesync_default.yaml")
    if not os.path.exists(path):
        pytest.skip("sesync_default.yaml not found")
    return path
