"""Pydantic option models for SE-Sync runs."""

from __future__ import annotations

from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from se_sync.common import constants


class Formulation(str, Enum):
    """Which version of the relaxation to solve."""
    SIMPLIFIED = "simplified"  # Translations analytically eliminated; Y is (r x dn)
    EXPLICIT = "explicit"  # Translations kept as variables; Y is (r x (n + dn))


class Preconditioner(str, Enum):
    """Preconditioner for the truncated conjugate-gradient inner solver."""
    NONE = "none"
    JACOBI = "jacobi"
    INCOMPLETE_CHOLESKY = "incomplete_cholesky"


class SESyncOpts(BaseModel):
    """Options for the Riemannian Staircase and its trust-region subsolver."""

    model_config = ConfigDict(extra="forbid", validate_assignment=True)

    # Staircase
    formulation: Formulation = Formulation.SIMPLIFIED
    r0: int = Field(constants.SESYNC_R0_DEFAULT, ge=1)
    rmax: int = Field(constants.SESYNC_RMAX_DEFAULT, ge=1)

    # Minimum eigenvalue computation
    max_eig_iterations: int = Field(constants.SESYNC_MAX_EIG_ITERATIONS_DEFAULT, ge=1)
    num_lanczos_vectors: int = Field(constants.SESYNC_NUM_LANCZOS_VECTORS_DEFAULT, ge=2)
    min_eig_num_tol: float = Field(constants.SESYNC_MIN_EIG_NUM_TOL_DEFAULT, gt=0.0)

    # Orthogonal projections (Simplified formulation only)
    use_cholesky: bool = True

    # Initialization and bookkeeping
    use_chordal_initialization: bool = True
    log_iterates: bool = False
    # BLAS/LAPACK threads only; XLA keeps its own CPU pool (see jax_init)
    num_threads: int = Field(constants.SESYNC_NUM_THREADS_DEFAULT, ge=1)
    seed: Optional[int] = Field(None, ge=0)

    # Riemannian trust-region
    # The Explicit formulation usually needs a tighter grad_norm_tol (~1e-6) for
    # its critical points to certify at the default min_eig_num_tol
    grad_norm_tol: float = Field(constants.TNT_GRAD_NORM_TOL_DEFAULT, gt=0.0)
    rel_func_decrease_tol: float = Field(constants.TNT_REL_FUNC_DECREASE_TOL_DEFAULT, ge=0.0)
    stepsize_tol: float = Field(constants.TNT_STEPSIZE_TOL_DEFAULT, ge=0.0)
    max_iterations: int = Field(constants.TNT_MAX_ITERATIONS_DEFAULT, ge=0)
    max_tcg_iterations: int = Field(constants.TNT_MAX_TCG_ITERATIONS_DEFAULT, ge=1)
    precon: Preconditioner = Preconditioner.JACOBI

    verbose: bool = False

    @model_validator(mode="after")
    def _check_staircase_levels(self) -> "SESyncOpts":
        if self.rmax < self.r0:
            raise ValueError(f"rmax ({self.rmax}) must be >= r0 ({self.r0})")
        return self

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SESyncOpts":
        """Build options from a mapping, unwrapping an optional 'se_sync' section."""
        data = dict(data or {})
        section = data.get(constants.SESYNC_CONFIG_KEY)
        if isinstance(section, dict):
            data = section
        return cls(**data)

    @classmethod
    def from_yaml(cls, path: str) -> "SESyncOpts":
        """Load options from a YAML preset."""
        import yaml

        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data, dict):
            raise ValueError(f"SE-Sync options file must contain a mapping (from {path})")
        return cls.from_dict(data)

    def describe(self) -> str:
        """Human-readable summary of the algorithm settings."""
        lines = [
            "SE-Sync settings:",
            f" SE-Sync problem formulation: {self.formulation.value}",
            f" Initial level of Riemannian staircase: {self.r0}",
            f" Maximum level of Riemannian staircase: {self.rmax}",
            " Number of Lanczos vectors to use in minimum eigenvalue computation: "
            f"{self.num_lanczos_vectors}",
            f" Maximum number of iterations for eigenvalue computation: {self.max_eig_iterations}",
            " Tolerance for accepting an eigenvalue as numerically nonnegative in "
            f"optimality verification: {self.min_eig_num_tol}",
        ]
        if self.formulation == Formulation.SIMPLIFIED:
            lines.append(
                f" Using {'Cholesky' if self.use_cholesky else 'QR'} decomposition to compute "
                "orthogonal projections"
            )
        lines.append(
            f" Initialization method: {'chordal' if self.use_chordal_initialization else 'random'}"
        )
        if self.log_iterates:
            lines.append(" Logging entire sequence of Riemannian Staircase iterates")
        lines.append(f" Running SE-Sync with {self.num_threads} threads")
        lines += [
            "Riemannian trust-region settings:",
            f" Stopping tolerance for norm of Riemannian gradient: {self.grad_norm_tol}",
            f" Stopping tolerance for relative function decrease: {self.rel_func_decrease_tol}",
            f" Stopping tolerance for the norm of an accepted update step: {self.stepsize_tol}",
            f" Maximum number of trust-region iterations: {self.max_iterations}",
            " Maximum number of truncated conjugate gradient iterations per outer iteration: "
            f"{self.max_tcg_iterations}",
            f" Preconditioning the truncated conjugate gradient method using: {self.precon.value}",
        ]
        return "\n".join(lines)
