"""
Tests for relative pose measurements and measurement-graph validation.
"""

import numpy as np
import pytest

from se_sync.backend.structures.measurements import (
    RelativePoseMeasurement,
    dimension,
    num_poses,
    validate_measurements,
)


class TestRelativePoseMeasurement:

    def test_coerces_inputs(self):
        m = RelativePoseMeasurement(0, 2, np.eye(3).tolist(), [1, 2, 3], kappa=2, tau=3)
        assert m.R.dtype == np.float64
        assert m.t.shape == (3,)
        assert m.kappa == 2.0 and m.tau == 3.0
        assert m.dimension == 3

    def test_planar_measurement(self):
        m = RelativePoseMeasurement(1, 0, np.eye(2), np.zeros(2))
        assert m.dimension == 2

    @pytest.mark.parametrize(
        "kwargs",
        [
            dict(i=-1, j=0, R=np.eye(3), t=np.zeros(3)),
            dict(i=1, j=1, R=np.eye(3), t=np.zeros(3)),
            dict(i=0, j=1, R=np.eye(4), t=np.zeros(4)),
            dict(i=0, j=1, R=np.eye(3), t=np.zeros(2)),
            dict(i=0, j=1, R=np.eye(3), t=np.zeros(3), kappa=0.0),
            dict(i=0, j=1, R=np.eye(3), t=np.zeros(3), tau=-1.0),
        ],
    )
    def test_rejects_malformed(self, kwargs):
        with pytest.raises(ValueError):
            RelativePoseMeasurement(**kwargs)


class TestMeasurementSet:

    def test_num_poses_and_dimension(self, triangle_3d):
        assert num_poses(triangle_3d) == 3
        assert dimension(triangle_3d) == 3

    def test_mixed_dimensions_rejected(self):
        ms = [
            RelativePoseMeasurement(0, 1, np.eye(3), np.zeros(3)),
            RelativePoseMeasurement(1, 2, np.eye(2), np.zeros(2)),
        ]
        with pytest.raises(ValueError, match="mix dimensions"):
            dimension(ms)

    def test_empty_rejected(self):
        with pytest.raises(ValueError):
            validate_measurements([])

    def test_disconnected_rejected(self):
        ms = [
            RelativePoseMeasurement(0, 1, np.eye(2), np.zeros(2)),
            RelativePoseMeasurement(2, 3, np.eye(2), np.zeros(2)),
        ]
        with pytest.raises(ValueError, match="connected"):
            validate_measurements(ms)

    def test_unobserved_pose_index_rejected(self):
        # Pose 1 never appears in a measurement
        ms = [
            RelativePoseMeasurement(0, 2, np.eye(2), np.zeros(2)),
            RelativePoseMeasurement(2, 0, np.eye(2), np.zeros(2)),
        ]
        with pytest.raises(ValueError, match="2 components"):
            validate_measurements(ms)

    def test_reversed_and_repeated_edges_connect(self):
        ms = [
            RelativePoseMeasurement(1, 0, np.eye(2), np.zeros(2)),
            RelativePoseMeasurement(1, 0, np.eye(2), np.zeros(2)),
            RelativePoseMeasurement(2, 1, np.eye(2), np.zeros(2)),
        ]
        validate_measurements(ms)

    def test_connected_accepted(self, noisy_graph_3d):
        validate_measurements(noisy_graph_3d)
