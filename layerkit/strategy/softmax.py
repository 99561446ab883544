"""Softmax kernels over the channel (last) dimension.

The same kernels serve image outputs (N, 1, 1, K), vector outputs (N, K) and
sequence outputs (N, T, K) because channels are always last.
"""
from __future__ import annotations

import torch
from torch import Tensor

from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory, bound_away_from_zero


class SoftmaxHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        exponents = X - X.amax(dim=-1, keepdim=True)
        expX = torch.exp(exponents)
        return expX / expX.sum(dim=-1, keepdim=True), None

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory) -> Gradients:
        # Avoid 0 * Inf when upstream gradients come from a log loss.
        Z = bound_away_from_zero(Z)
        dot = (Z * dZ).sum(dim=-1, keepdim=True)
        return (dZ - dot) * Z, []


class SoftmaxAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return torch.softmax(X, dim=-1), None

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory) -> Gradients:
        Z = bound_away_from_zero(Z)
        return torch.ops.aten._softmax_backward_data(dZ, Z, -1, X.dtype), []
