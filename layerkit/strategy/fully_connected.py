"""Fully connected kernels for image and vector/sequence inputs.

Weights have shape (output_size, input_size). Image inputs (N, H, W, C) are
flattened in (H, W, C) order and produce (N, 1, 1, K); vector (N, C) and
sequence (N, T, C) inputs keep their leading dimensions.
"""
from __future__ import annotations

import torch
import torch.nn.functional as F
from torch import Tensor

from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory


def _is_image(X: Tensor) -> bool:
    return X.dim() == 4


class FullyConnectedHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor, weights: Tensor, bias: Tensor) -> tuple[Tensor, Memory]:
        if _is_image(X):
            flat = X.reshape(X.shape[0], -1)
            Z = torch.einsum("nd,kd->nk", flat, weights) + bias
            return Z.reshape(X.shape[0], 1, 1, -1), None
        return torch.einsum("...d,kd->...k", X, weights) + bias, None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        K = weights.shape[0]
        X2 = X.reshape(X.shape[0], -1) if _is_image(X) else X.reshape(-1, X.shape[-1])
        dZ2 = dZ.reshape(-1, K)
        dX = torch.einsum("mk,kd->md", dZ2, weights).reshape(X.shape)
        if not need_weight_gradients:
            return dX, []
        dW = torch.einsum("mk,md->kd", dZ2, X2)
        return dX, [dW, dZ2.sum(dim=0)]


class FullyConnectedAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor, weights: Tensor, bias: Tensor) -> tuple[Tensor, Memory]:
        if _is_image(X):
            Z = F.linear(X.reshape(X.shape[0], -1), weights, bias)
            return Z.reshape(X.shape[0], 1, 1, -1), None
        return F.linear(X, weights, bias), None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        K = weights.shape[0]
        X2 = X.reshape(X.shape[0], -1) if _is_image(X) else X.reshape(-1, X.shape[-1])
        dZ2 = dZ.reshape(-1, K)
        dX = torch.mm(dZ2, weights).reshape(X.shape)
        if not need_weight_gradients:
            return dX, []
        return dX, [torch.mm(dZ2.t(), X2), dZ2.sum(dim=0)]
