"""
normalization provides batch normalization and cross-channel (local response)
normalization kernels. Channels are always the last dimension.
"""
from __future__ import annotations

from dataclasses import dataclass

import torch
import torch.nn.functional as F
from torch import Tensor

from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory


def _reduce_dims(X: Tensor) -> list[int]:
    return list(range(X.dim() - 1))


def _broadcast(v: Tensor, X: Tensor) -> Tensor:
    return v.reshape((1,) * (X.dim() - 1) + (-1,))


@dataclass
class BatchStatistics:
    """Per-channel statistics of one batch.

    `invstd` is 1 / sqrt(var + epsilon), the form the fused kernels keep.
    """

    mean: Tensor
    invstd: Tensor

    def variance(self, epsilon: float) -> Tensor:
        return self.invstd.pow(-2) - epsilon


class BatchNormalizationHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward_train(
        self, X: Tensor, offset: Tensor, scale: Tensor, epsilon: float
    ) -> tuple[Tensor, Memory]:
        dims = _reduce_dims(X)
        mean = X.mean(dim=dims)
        var = X.var(dim=dims, correction=0)
        invstd = torch.rsqrt(var + epsilon)
        xhat = (X - _broadcast(mean, X)) * _broadcast(invstd, X)
        Z = xhat * _broadcast(scale, X) + _broadcast(offset, X)
        return Z, BatchStatistics(mean=mean, invstd=invstd)

    def forward_predict(
        self,
        X: Tensor,
        offset: Tensor,
        scale: Tensor,
        epsilon: float,
        trained_mean: Tensor,
        trained_variance: Tensor,
    ) -> Tensor:
        invstd = torch.rsqrt(trained_variance + epsilon)
        xhat = (X - _broadcast(trained_mean, X)) * _broadcast(invstd, X)
        return xhat * _broadcast(scale, X) + _broadcast(offset, X)

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        scale: Tensor,
        epsilon: float,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        stats: BatchStatistics = memory
        dims = _reduce_dims(X)
        M = X.numel() // X.shape[-1]
        xhat = (X - _broadcast(stats.mean, X)) * _broadcast(stats.invstd, X)
        d_offset = dZ.sum(dim=dims)
        d_scale = (dZ * xhat).sum(dim=dims)
        dX = (
            _broadcast(scale * stats.invstd / M, X)
            * (M * dZ - _broadcast(d_offset, X) - xhat * _broadcast(d_scale, X))
        )
        return dX, [d_offset, d_scale] if need_weight_gradients else []


class BatchNormalizationAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward_train(
        self, X: Tensor, offset: Tensor, scale: Tensor, epsilon: float
    ) -> tuple[Tensor, Memory]:
        Zc, mean, invstd = torch.ops.aten.native_batch_norm(
            X.movedim(-1, 1), scale, offset, None, None, True, 0.0, epsilon
        )
        return Zc.movedim(1, -1), BatchStatistics(mean=mean, invstd=invstd)

    def forward_predict(
        self,
        X: Tensor,
        offset: Tensor,
        scale: Tensor,
        epsilon: float,
        trained_mean: Tensor,
        trained_variance: Tensor,
    ) -> Tensor:
        Zc = F.batch_norm(
            X.movedim(-1, 1),
            trained_mean,
            trained_variance,
            weight=scale,
            bias=offset,
            training=False,
            eps=epsilon,
        )
        return Zc.movedim(1, -1)

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        scale: Tensor,
        epsilon: float,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        stats: BatchStatistics = memory
        dXc, d_scale, d_offset = torch.ops.aten.native_batch_norm_backward(
            dZ.movedim(-1, 1),
            X.movedim(-1, 1),
            scale,
            None,
            None,
            stats.mean,
            stats.invstd,
            True,
            epsilon,
            [True, need_weight_gradients, need_weight_gradients],
        )
        grads = [d_offset, d_scale] if need_weight_gradients else []
        return dXc.movedim(1, -1), grads


def merge_statistics(
    mean1: Tensor, var1: Tensor, n1: int, mean2: Tensor, var2: Tensor, n2: int
) -> tuple[Tensor, Tensor, int]:
    """
    merge_statistics combines the per-channel mean and variance of two disjoint
    sets of observations as if they had been computed over their union.
    """
    if n1 == 0:
        return mean2, var2, n2
    if n2 == 0:
        return mean1, var1, n1
    r = n2 / (n1 + n2)
    mean = (1 - r) * mean1 + r * mean2
    var = (1 - r) * (var1 + mean1**2) + r * (var2 + mean2**2) - mean**2
    return mean, var, n1 + n2


def _channel_pads(window_size: int) -> tuple[int, int]:
    return window_size // 2, (window_size - 1) // 2


def _host_window_sum(S: Tensor, before: int, after: int) -> Tensor:
    C = S.shape[-1]
    padded = F.pad(S, (before, after))
    csum = F.pad(padded.cumsum(dim=-1), (1, 0))
    size = before + after + 1
    return csum[..., size : size + C] - csum[..., :C]


def _accelerator_window_sum(S: Tensor, before: int, after: int) -> Tensor:
    size = before + after + 1
    flat = F.pad(S.reshape(-1, 1, S.shape[-1]), (before, after))
    return (F.avg_pool1d(flat, size, stride=1) * size).reshape(S.shape)


class _CrossChannelNormalization(ExecutionStrategy):
    @staticmethod
    def _window_sum(S: Tensor, before: int, after: int) -> Tensor:
        raise NotImplementedError

    def forward(
        self, X: Tensor, window_size: int, alpha: float, beta: float, k: float
    ) -> tuple[Tensor, Memory]:
        before, after = _channel_pads(window_size)
        D = k + (alpha / window_size) * self._window_sum(X * X, before, after)
        return X * D.pow(-beta), D

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        window_size: int,
        alpha: float,
        beta: float,
        k: float,
    ) -> Gradients:
        D: Tensor = memory
        before, after = _channel_pads(window_size)
        # Each channel's window sum involves the transposed window.
        inner = self._window_sum(dZ * X * D.pow(-beta - 1), after, before)
        dX = dZ * D.pow(-beta) - (2 * alpha * beta / window_size) * X * inner
        return dX, []


class CrossChannelNormalizationHostStrategy(_CrossChannelNormalization):
    backend = Backend.HOST
    _window_sum = staticmethod(_host_window_sum)


class CrossChannelNormalizationAcceleratorStrategy(_CrossChannelNormalization):
    backend = Backend.ACCELERATOR
    _window_sum = staticmethod(_accelerator_window_sum)
