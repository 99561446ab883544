"""Test fully connected and convolution kernels."""
from __future__ import annotations

import torch

from layerkit.strategy.convolution import (
    Convolution2DAcceleratorStrategy,
    Convolution2DHostStrategy,
    TransposedConvolution2DAcceleratorStrategy,
    TransposedConvolution2DHostStrategy,
)
from layerkit.strategy.fully_connected import (
    FullyConnectedAcceleratorStrategy,
    FullyConnectedHostStrategy,
)


def _assert_pairwise_close(a: list[torch.Tensor], b: list[torch.Tensor]) -> None:
    assert len(a) == len(b)
    for x, y in zip(a, b):
        torch.testing.assert_close(x, y)


def test_fully_connected_backends_agree_on_images() -> None:
    torch.manual_seed(0)
    X = torch.randn(3, 2, 2, 4, dtype=torch.float64)
    W = torch.randn(5, 16, dtype=torch.float64)
    b = torch.randn(5, dtype=torch.float64)
    host, accel = FullyConnectedHostStrategy(), FullyConnectedAcceleratorStrategy()
    Zh, _ = host.forward(X, W, b)
    Za, _ = accel.forward(X, W, b)
    assert Zh.shape == (3, 1, 1, 5)
    torch.testing.assert_close(Zh, Za)
    dZ = torch.randn_like(Zh)
    dXh, gh = host.backward(X, Zh, dZ, None, W)
    dXa, ga = accel.backward(X, Za, dZ, None, W)
    torch.testing.assert_close(dXh, dXa)
    _assert_pairwise_close(gh, ga)


def test_fully_connected_skips_weight_gradients() -> None:
    X = torch.randn(2, 7, 3, dtype=torch.float64)
    W = torch.randn(4, 3, dtype=torch.float64)
    Z, _ = FullyConnectedHostStrategy().forward(X, W, torch.zeros(4, dtype=torch.float64))
    assert Z.shape == (2, 7, 4)
    dX, grads = FullyConnectedHostStrategy().backward(X, Z, torch.ones_like(Z), None, W, need_weight_gradients=False)
    assert grads == []
    assert dX.shape == X.shape


def test_convolution_backends_agree() -> None:
    torch.manual_seed(1)
    X = torch.randn(2, 6, 5, 3, dtype=torch.float64)
    W = torch.randn(3, 2, 3, 4, dtype=torch.float64)
    b = torch.randn(4, dtype=torch.float64)
    args = ((1, 1, 0, 1), (2, 1))
    host, accel = Convolution2DHostStrategy(), Convolution2DAcceleratorStrategy()
    Zh, _ = host.forward(X, W, b, *args)
    Za, _ = accel.forward(X, W, b, *args)
    torch.testing.assert_close(Zh, Za)
    dZ = torch.randn_like(Zh)
    dXh, gh = host.backward(X, Zh, dZ, None, W, *args)
    dXa, ga = accel.backward(X, Za, dZ, None, W, *args)
    torch.testing.assert_close(dXh, dXa)
    _assert_pairwise_close(gh, ga)


def test_transposed_convolution_backends_agree() -> None:
    torch.manual_seed(2)
    X = torch.randn(2, 3, 4, 3, dtype=torch.float64)
    W = torch.randn(3, 3, 2, 3, dtype=torch.float64)
    b = torch.randn(2, dtype=torch.float64)
    args = ((1, 0), (2, 2))
    host, accel = TransposedConvolution2DHostStrategy(), TransposedConvolution2DAcceleratorStrategy()
    Zh, _ = host.forward(X, W, b, *args)
    Za, _ = accel.forward(X, W, b, *args)
    assert Zh.shape == (2, 5, 9, 2)
    torch.testing.assert_close(Zh, Za)
    dZ = torch.randn_like(Zh)
    dXh, gh = host.backward(X, Zh, dZ, None, W, *args)
    dXa, ga = accel.backward(X, Za, dZ, None, W, *args)
    torch.testing.assert_close(dXh, dXa)
    _assert_pairwise_close(gh, ga)


def test_convolution_gradient_matches_autograd() -> None:
    X = torch.randn(1, 4, 4, 2, dtype=torch.float64, requires_grad=True)
    W = torch.randn(2, 2, 2, 3, dtype=torch.float64, requires_grad=True)
    b = torch.zeros(3, dtype=torch.float64)
    args = ((0, 0, 0, 0), (1, 1))
    Z, _ = Convolution2DHostStrategy().forward(X, W, b, *args)
    dZ = torch.randn_like(Z)
    dX_expected, dW_expected = torch.autograd.grad(Z, (X, W), dZ)
    dX, (dW, _) = Convolution2DHostStrategy().backward(X.detach(), Z.detach(), dZ, None, W.detach(), *args)
    torch.testing.assert_close(dX, dX_expected)
    torch.testing.assert_close(dW, dW_expected)
