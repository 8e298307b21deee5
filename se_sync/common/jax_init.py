"""
Common JAX Initialization Module.

This module initializes JAX once at import time.
All other modules should import JAX from here instead of importing jax directly
to ensure consistent initialization (platform selection and x64 precision).

Usage:
    from se_sync.common.jax_init import jax, jnp

    # JAX is already configured for x64 precision
    devices = jax.devices()
"""

from __future__ import annotations

import os

# Configure JAX environment variables BEFORE importing JAX.
# The block kernels are small (d x r per pose), so CPU is the default platform;
# export JAX_PLATFORMS=cuda to override.
os.environ.setdefault("JAX_PLATFORMS", "cpu")
os.environ.setdefault("XLA_PYTHON_CLIENT_PREALLOCATE", "false")
# XLA sizes its CPU thread pool itself; threadpoolctl limits set per run do not
# reach it. Bound it with XLA_FLAGS before the first import if needed.

import jax
import jax.numpy as jnp

# Stiefel projections and certificate Rayleigh quotients need double precision.
jax.config.update("jax_enable_x64", True)

__all__ = ["jax", "jnp"]
