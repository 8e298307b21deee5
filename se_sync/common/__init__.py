"""
Common package for SE-Sync.

Shared constants, option models, result records and geometry.

Subpackages:
- geometry/: SO(d) / SE(d) operations
"""

from __future__ import annotations

from importlib import import_module
from typing import Any

__all__ = [
    "SESyncOpts",
    "SESyncResult",
    "Status",
    "constants",
]

_LAZY_ATTRS: dict[str, tuple[str, str | None]] = {
    "SESyncOpts": ("se_sync.common.param_models", "SESyncOpts"),
    "SESyncResult": ("se_sync.common.results", "SESyncResult"),
    "Status": ("se_sync.common.results", "Status"),
    # Expose as submodule, but do not eagerly import it at package import time.
    "constants": ("se_sync.common.constants", None),
}


def __getattr__(name: str) -> Any:
    target = _LAZY_ATTRS.get(name)
    if target is None:
        raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
    module_name, attr_name = target
    module = import_module(module_name)
    return module if attr_name is None else getattr(module, attr_name)


def __dir__() -> list[str]:
    return sorted(set(globals().keys()) | set(_LAZY_ATTRS.keys()))
