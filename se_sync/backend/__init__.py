"""
SE-Sync backend.

Structure:
- structures/: RelativePoseMeasurement and measurement-graph validation
- problem/: SESyncProblem (data matrices, Stiefel-product kernels, certificate, rounding)
- optimization/: Riemannian truncated-Newton trust-region method
- staircase.py: Riemannian Staircase driver (sesync)
"""

# Lazy imports to avoid circular dependencies
__all__ = [
    "SESyncProblem",
    "sesync",
]


def __getattr__(name):
    if name == "SESyncProblem":
        from se_sync.backend.problem.sesync_problem import SESyncProblem
        return SESyncProblem
    elif name == "sesync":
        from se_sync.backend.staircase import sesync
        return sesync
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
