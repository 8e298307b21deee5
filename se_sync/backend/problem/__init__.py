"""
SE-Sync problem representation.

Modules:
- data_matrices: sparse quadratic-form construction, chordal initialization,
  translation recovery
- stiefel_product: JAX block kernels for the product of Stiefel manifolds
- sesync_problem: SESyncProblem (objective, derivatives, certificate, rounding)
"""

from se_sync.backend.problem.sesync_problem import SESyncProblem

__all__ = ["SESyncProblem"]
