"""Test pooling and unpooling kernels."""
from __future__ import annotations

import math
import unittest

import torch

from layerkit.errors import NotEnoughIndicesError
from layerkit.strategy.pooling import (
    AveragePooling2DAcceleratorStrategy,
    AveragePooling2DHostStrategy,
    MaxPooling2DAcceleratorStrategy,
    MaxPooling2DHostStrategy,
    MaxPooling2DWithIndicesAcceleratorStrategy,
    MaxPooling2DWithIndicesHostStrategy,
    MaxUnpooling2DAcceleratorStrategy,
    MaxUnpooling2DHostStrategy,
    unpooling_indices,
)


class PoolingStrategyTest(unittest.TestCase):
    """Test pooling kernels on both backends."""

    def setUp(self) -> None:
        torch.manual_seed(0)
        self.X = torch.randn(2, 5, 6, 3, dtype=torch.float64)
        self.args = ((2, 2), (2, 2), (0, 1, 1, 0))

    def test_max_pooling_backends_agree(self) -> None:
        """test max pooling forward and backward agree across backends"""
        host, accel = MaxPooling2DHostStrategy(), MaxPooling2DAcceleratorStrategy()
        Zh, mh = host.forward(self.X, *self.args)
        Za, ma = accel.forward(self.X, *self.args)
        torch.testing.assert_close(Zh, Za)
        dZ = torch.randn_like(Zh)
        dXh, _ = host.backward(self.X, Zh, dZ, mh, *self.args)
        dXa, _ = accel.backward(self.X, Za, dZ, ma, *self.args)
        torch.testing.assert_close(dXh, dXa)
        self.assertEqual(dXh.shape, self.X.shape)

    def test_average_pooling_backends_agree(self) -> None:
        """test average pooling divides by the full window area on both backends"""
        host, accel = AveragePooling2DHostStrategy(), AveragePooling2DAcceleratorStrategy()
        Zh, _ = host.forward(self.X, *self.args)
        Za, _ = accel.forward(self.X, *self.args)
        torch.testing.assert_close(Zh, Za)
        dZ = torch.randn_like(Zh)
        torch.testing.assert_close(
            host.backward(self.X, Zh, dZ, None, *self.args)[0],
            accel.backward(self.X, Za, dZ, None, *self.args)[0],
        )

    def test_indices_point_at_maxima(self) -> None:
        """test every unpooling index addresses the pooled value in the input"""
        for strategy in (MaxPooling2DWithIndicesHostStrategy(), MaxPooling2DWithIndicesAcceleratorStrategy()):
            (Z, indices, size), _ = strategy.forward(self.X, *self.args)
            self.assertEqual(indices.shape, Z.shape)
            self.assertEqual(tuple(size.tolist()), tuple(self.X.shape))
            torch.testing.assert_close(self.X.reshape(-1)[indices.reshape(-1)], Z.reshape(-1))

    def test_unpooling_places_values_at_indices(self) -> None:
        """test unpooling scatters pooled values back and gathers gradients"""
        (Z, indices, size), _ = MaxPooling2DWithIndicesHostStrategy().forward(self.X, *self.args)
        shape = tuple(size.tolist())
        for strategy in (MaxUnpooling2DHostStrategy(), MaxUnpooling2DAcceleratorStrategy()):
            U, _ = strategy.forward(Z, indices, shape)
            self.assertEqual(U.shape, self.X.shape)
            self.assertEqual(int((U != 0).sum()), Z.numel())
            torch.testing.assert_close(strategy.backward(Z, indices, U), Z)

    def test_non_finite_window_has_no_index(self) -> None:
        """test a window of NaNs cannot be unpooled"""
        X = torch.zeros(1, 2, 2, 1)
        X[0, 0, 0, 0] = math.nan
        X[0, 0, 1, 0] = math.nan
        X[0, 1, :, 0] = math.nan
        Z, _ = MaxPooling2DHostStrategy().forward(X, (2, 2), (2, 2), (0, 0, 0, 0))
        with self.assertRaises(NotEnoughIndicesError):
            unpooling_indices(X, Z, (2, 2), (2, 2), (0, 0, 0, 0))

    def test_shared_maximum_has_no_distinct_index(self) -> None:
        """test overlapping windows sharing one maximum cannot be unpooled"""
        X = torch.zeros(1, 4, 4, 1)
        X[0, 1, 1, 0] = 1.0
        for strategy in (MaxPooling2DWithIndicesHostStrategy(), MaxPooling2DWithIndicesAcceleratorStrategy()):
            with self.assertRaises(NotEnoughIndicesError):
                strategy.forward(X, (3, 3), (1, 1), (0, 0, 0, 0))

    def test_overlapping_windows_with_distinct_maxima(self) -> None:
        """test overlapping windows are fine while each has its own maximum"""
        X = torch.zeros(1, 3, 3, 1)
        X[0, 0, 0, 0], X[0, 0, 2, 0], X[0, 2, 0, 0], X[0, 2, 2, 0] = 1.0, 2.0, 3.0, 4.0
        X[0, 1, 1, 0] = -1.0
        (Z, indices, _), _ = MaxPooling2DWithIndicesHostStrategy().forward(X, (2, 2), (1, 1), (0, 0, 0, 0))
        self.assertEqual(indices.reshape(-1).tolist(), [0, 2, 6, 8])
        self.assertEqual(Z.reshape(-1).tolist(), [1.0, 2.0, 3.0, 4.0])


if __name__ == "__main__":
    unittest.main()
