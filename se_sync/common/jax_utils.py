"""
JAX utility helpers for NumPy <-> JAX conversions at module boundaries.
"""

from __future__ import annotations

from typing import Any

import numpy as np

from se_sync.common.jax_init import jnp


def to_jax(value: Any, dtype=jnp.float64) -> jnp.ndarray:
    """Convert array-like input to JAX array with desired dtype."""
    return jnp.asarray(value, dtype=dtype)


def to_numpy(value: Any, dtype=float) -> np.ndarray:
    """Convert JAX/array-like input to NumPy array with desired dtype."""
    return np.array(value, dtype=dtype)
