"""Test normalization kernels and statistics merging."""
from __future__ import annotations

import unittest

import torch

from layerkit.strategy.normalization import (
    BatchNormalizationAcceleratorStrategy,
    BatchNormalizationHostStrategy,
    CrossChannelNormalizationAcceleratorStrategy,
    CrossChannelNormalizationHostStrategy,
    merge_statistics,
)


def _stats(X: torch.Tensor) -> tuple[torch.Tensor, torch.Tensor, int]:
    flat = X.reshape(-1, X.shape[-1])
    return flat.mean(dim=0), flat.var(dim=0, correction=0), flat.shape[0]


class MergeStatisticsTest(unittest.TestCase):
    """Test merging per-channel statistics of disjoint batches."""

    def setUp(self) -> None:
        torch.manual_seed(0)
        self.a = torch.randn(7, 3, dtype=torch.float64)
        self.b = torch.randn(5, 3, dtype=torch.float64) + 2.0
        self.c = torch.randn(9, 3, dtype=torch.float64) * 3.0

    def test_merge_equals_union(self) -> None:
        """test merged statistics equal statistics of the concatenation"""
        mean, var, n = merge_statistics(*_stats(self.a), *_stats(self.b))
        em, ev, en = _stats(torch.cat([self.a, self.b]))
        self.assertEqual(n, en)
        torch.testing.assert_close(mean, em)
        torch.testing.assert_close(var, ev)

    def test_merge_is_associative(self) -> None:
        """test (a + b) + c equals a + (b + c)"""
        left = merge_statistics(*merge_statistics(*_stats(self.a), *_stats(self.b)), *_stats(self.c))
        right = merge_statistics(*_stats(self.a), *merge_statistics(*_stats(self.b), *_stats(self.c)))
        self.assertEqual(left[2], right[2])
        torch.testing.assert_close(left[0], right[0])
        torch.testing.assert_close(left[1], right[1])

    def test_merge_with_empty(self) -> None:
        """test merging with zero observations returns the other side"""
        mean, var, n = _stats(self.a)
        merged = merge_statistics(torch.zeros(3), torch.zeros(3), 0, mean, var, n)
        self.assertIs(merged[0], mean)
        self.assertEqual(merged[2], n)


class BatchNormalizationStrategyTest(unittest.TestCase):
    """Test batch normalization on both backends."""

    def test_backends_agree(self) -> None:
        """test training forward and backward agree across backends"""
        torch.manual_seed(2)
        X = torch.randn(4, 3, 3, 2, dtype=torch.float64)
        dZ = torch.randn_like(X)
        offset = torch.tensor([0.1, -0.2], dtype=torch.float64)
        scale = torch.tensor([1.5, 0.5], dtype=torch.float64)
        host, accel = BatchNormalizationHostStrategy(), BatchNormalizationAcceleratorStrategy()
        Zh, mh = host.forward_train(X, offset, scale, 1e-5)
        Za, ma = accel.forward_train(X, offset, scale, 1e-5)
        torch.testing.assert_close(Zh, Za)
        torch.testing.assert_close(mh.mean, ma.mean)
        dXh, gh = host.backward(X, Zh, dZ, mh, scale, 1e-5)
        dXa, ga = accel.backward(X, Za, dZ, ma, scale, 1e-5)
        torch.testing.assert_close(dXh, dXa)
        for h, a in zip(gh, ga):
            torch.testing.assert_close(h, a)

    def test_predict_uses_trained_statistics(self) -> None:
        """test prediction normalizes with the trained mean and variance"""
        X = torch.full((2, 1, 1, 1), 3.0, dtype=torch.float64)
        one = torch.ones(1, dtype=torch.float64)
        zero = torch.zeros(1, dtype=torch.float64)
        for strategy in (BatchNormalizationHostStrategy(), BatchNormalizationAcceleratorStrategy()):
            Z = strategy.forward_predict(X, zero, one, 0.0, one, 4 * one)
            torch.testing.assert_close(Z, torch.ones_like(X))


def test_cross_channel_normalization_backends_agree() -> None:
    torch.manual_seed(3)
    X = torch.randn(2, 3, 3, 6, dtype=torch.float64)
    dZ = torch.randn_like(X)
    args = (5, 1e-4, 0.75, 2.0)
    host, accel = CrossChannelNormalizationHostStrategy(), CrossChannelNormalizationAcceleratorStrategy()
    Zh, mh = host.forward(X, *args)
    Za, ma = accel.forward(X, *args)
    torch.testing.assert_close(Zh, Za)
    torch.testing.assert_close(host.backward(X, Zh, dZ, mh, *args)[0], accel.backward(X, Za, dZ, ma, *args)[0])


def test_cross_channel_normalization_gradient() -> None:
    X = torch.randn(1, 2, 2, 4, dtype=torch.float64, requires_grad=True)
    args = (3, 0.5, 0.75, 1.0)
    strategy = CrossChannelNormalizationHostStrategy()
    Z, memory = strategy.forward(X, *args)
    dZ = torch.randn_like(Z)
    (expected,) = torch.autograd.grad(Z, X, dZ)
    dX, _ = strategy.backward(X.detach(), Z.detach(), dZ, memory.detach(), *args)
    torch.testing.assert_close(dX, expected)
