"""
Geometry package for SE-Sync.

Usage:
    from se_sync.common.geometry import project_to_SOd
"""

from __future__ import annotations

from se_sync.common.geometry.so_d import project_to_SOd

__all__ = [
    "project_to_SOd",
]
