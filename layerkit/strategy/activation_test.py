"""Test host and accelerator activation kernels agree."""
from __future__ import annotations

import unittest

import torch

from layerkit.strategy.activation import (
    ClippedReLUAcceleratorStrategy,
    ClippedReLUHostStrategy,
    LeakyReLUAcceleratorStrategy,
    LeakyReLUHostStrategy,
    ReLUAcceleratorStrategy,
    ReLUHostStrategy,
)


class ActivationStrategyTest(unittest.TestCase):
    """Test element-wise activations on both backends."""

    def setUp(self) -> None:
        torch.manual_seed(0)
        self.X = torch.randn(3, 4, 4, 2, dtype=torch.float64)
        self.dZ = torch.randn_like(self.X)

    def assert_agree(self, host, accel, *args) -> None:
        Zh, mh = host.forward(self.X, *args)
        Za, ma = accel.forward(self.X, *args)
        torch.testing.assert_close(Zh, Za)
        dXh, gh = host.backward(self.X, Zh, self.dZ, mh, *args)
        dXa, ga = accel.backward(self.X, Za, self.dZ, ma, *args)
        torch.testing.assert_close(dXh, dXa)
        self.assertEqual(gh, [])
        self.assertEqual(ga, [])

    def test_relu(self) -> None:
        """test relu agrees across backends"""
        self.assert_agree(ReLUHostStrategy(), ReLUAcceleratorStrategy())

    def test_leaky_relu(self) -> None:
        """test leaky relu agrees across backends"""
        self.assert_agree(LeakyReLUHostStrategy(), LeakyReLUAcceleratorStrategy(), 0.1)

    def test_clipped_relu(self) -> None:
        """test clipped relu agrees across backends"""
        self.assert_agree(ClippedReLUHostStrategy(), ClippedReLUAcceleratorStrategy(), 0.5)

    def test_clipped_relu_values(self) -> None:
        """test clipped relu saturates at the ceiling"""
        X = torch.tensor([-1.0, 0.25, 2.0])
        Z, _ = ClippedReLUHostStrategy().forward(X, 1.0)
        self.assertTrue(torch.equal(Z, torch.tensor([0.0, 0.25, 1.0])))
        dX, _ = ClippedReLUHostStrategy().backward(X, Z, torch.ones(3), None, 1.0)
        self.assertTrue(torch.equal(dX, torch.tensor([0.0, 1.0, 0.0])))


if __name__ == "__main__":
    unittest.main()
