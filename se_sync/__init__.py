"""
SE-Sync: certifiably correct pose-graph optimization via the Riemannian Staircase.

Subpackages:
- common/: constants, JAX init, geometry, option models, result records
- backend/: measurements, problem representation, trust-region solver, staircase
- operators/: saddle escape
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "RelativePoseMeasurement",
    "SESyncOpts",
    "SESyncProblem",
    "SESyncResult",
    "Status",
    "sesync",
]

_LAZY_ATTRS: dict[str, tuple[str, str]] = {
    "RelativePoseMeasurement": ("se_sync.backend.structures.measurements", "RelativePoseMeasurement"),
    "SESyncOpts": ("se_sync.common.param_models", "SESyncOpts"),
    "SESyncProblem": ("se_sync.backend.problem.sesync_problem", "SESyncProblem"),
    "SESyncResult": ("se_sync.common.results", "SESyncResult"),
    "Status": ("se_sync.common.results", "Status"),
    "sesync": ("se_sync.backend.staircase", "sesync"),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    return getattr(import_module(module_name), attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
