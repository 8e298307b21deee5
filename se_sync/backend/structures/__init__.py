"""Data structures for SE-Sync problem inputs."""

from se_sync.backend.structures.measurements import (
    RelativePoseMeasurement,
    dimension,
    num_poses,
    validate_measurements,
)

__all__ = [
    "RelativePoseMeasurement",
    "dimension",
    "num_poses",
    "validate_measurements",
]
