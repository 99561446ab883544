"""Pooling and unpooling kernels for channels-last images.

Max pooling pads with -inf so padded positions never win a window; average
pooling pads with zeros and divides by the full window area. Max pooling
with unpooling outputs additionally returns, for every output element, the
linear index into the flattened input of the element that produced it.
"""
from __future__ import annotations

import math

import torch
import torch.nn.functional as F
from torch import Tensor

from layerkit.errors import NotEnoughIndicesError
from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory
from layerkit.strategy.spatial import (
    Padding4,
    output_extent,
    pad_spatial,
    to_nchw,
    to_nhwc,
    unpad_spatial,
    window,
)


def _output_hw(padded: Tensor, pool: tuple[int, int], stride: tuple[int, int]) -> tuple[int, int]:
    return (
        output_extent(padded.shape[1], pool[0], stride[0]),
        output_extent(padded.shape[2], pool[1], stride[1]),
    )


def _window_stack(Xp: Tensor, pool: tuple[int, int], stride: tuple[int, int]) -> Tensor:
    """(N, Ho, Wo, C, pool_h * pool_w) view of every window, row-major."""
    Ho, Wo = _output_hw(Xp, pool, stride)
    patches = [
        Xp[:, window(i, Ho, stride[0]), window(j, Wo, stride[1]), :]
        for i in range(pool[0])
        for j in range(pool[1])
    ]
    return torch.stack(patches, dim=-1)


def unpooling_indices(
    X: Tensor, Z: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
) -> Tensor:
    """Linear indices into X.flatten() of each window's maximum.

    The first position in a window equal to the pooled value is chosen, so
    windows whose maximum is NaN find no index at all. Every output needs an
    input element of its own: overlapping windows that share their maximum
    cannot be unpooled.
    """
    linear = torch.arange(X.numel(), device=X.device).reshape(X.shape)
    values = _window_stack(pad_spatial(X, padding, value=-math.inf), pool, stride)
    positions = _window_stack(pad_spatial(linear, padding, value=-1), pool, stride)
    matches = (values == Z.unsqueeze(-1)) & (positions >= 0)
    found = int(matches.any(dim=-1).sum())
    if found != Z.numel():
        raise NotEnoughIndicesError(
            f"Max pooling recovered {found} indices for {Z.numel()} outputs; "
            "a pooling window contains only non-finite values."
        )
    first = matches.to(torch.int8).argmax(dim=-1, keepdim=True)
    indices = positions.gather(-1, first).squeeze(-1)
    distinct = int(torch.unique(indices).numel())
    if distinct != indices.numel():
        raise NotEnoughIndicesError(
            f"Max pooling recovered {distinct} distinct indices for {indices.numel()} outputs; "
            "overlapping pooling windows share a maximum."
        )
    return indices


class MaxPooling2DHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(
        self, X: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
    ) -> tuple[Tensor, Memory]:
        stacked = _window_stack(pad_spatial(X, padding, value=-math.inf), pool, stride)
        Z, argmax = stacked.max(dim=-1)
        return Z, argmax

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        pool: tuple[int, int],
        stride: tuple[int, int],
        padding: Padding4,
    ) -> Gradients:
        argmax: Tensor = memory
        top, bottom, left, right = padding
        N, H, W, C = X.shape
        dXp = dZ.new_zeros((N, H + top + bottom, W + left + right, C))
        Ho, Wo = dZ.shape[1], dZ.shape[2]
        k = 0
        for i in range(pool[0]):
            for j in range(pool[1]):
                routed = torch.where(argmax == k, dZ, torch.zeros_like(dZ))
                dXp[:, window(i, Ho, stride[0]), window(j, Wo, stride[1]), :] += routed
                k += 1
        return unpad_spatial(dXp, padding), []


class MaxPooling2DAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(
        self, X: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
    ) -> tuple[Tensor, Memory]:
        Xpn = to_nchw(pad_spatial(X, padding, value=-math.inf))
        Zn, indices = F.max_pool2d(Xpn, pool, stride, return_indices=True)
        return to_nhwc(Zn), indices

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        pool: tuple[int, int],
        stride: tuple[int, int],
        padding: Padding4,
    ) -> Gradients:
        Xpn = to_nchw(pad_spatial(X, padding, value=-math.inf))
        dXpn = torch.ops.aten.max_pool2d_with_indices_backward(
            to_nchw(dZ), Xpn, list(pool), list(stride), [0, 0], [1, 1], False, memory
        )
        return unpad_spatial(to_nhwc(dXpn), padding), []


class _WithUnpoolingOutputs:
    """Adds the `indices` and `size` outputs to a max pooling strategy."""

    def forward(  # type: ignore[override]
        self, X: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
    ) -> tuple[list[Tensor], Memory]:
        Z, memory = super().forward(X, pool, stride, padding)  # type: ignore[misc]
        indices = unpooling_indices(X, Z, pool, stride, padding)
        size = torch.tensor(tuple(X.shape), dtype=torch.int64, device=X.device)
        return [Z, indices, size], memory


class MaxPooling2DWithIndicesHostStrategy(_WithUnpoolingOutputs, MaxPooling2DHostStrategy):
    pass


class MaxPooling2DWithIndicesAcceleratorStrategy(_WithUnpoolingOutputs, MaxPooling2DAcceleratorStrategy):
    pass


class AveragePooling2DHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(
        self, X: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
    ) -> tuple[Tensor, Memory]:
        stacked = _window_stack(pad_spatial(X, padding), pool, stride)
        return stacked.sum(dim=-1) / (pool[0] * pool[1]), None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        pool: tuple[int, int],
        stride: tuple[int, int],
        padding: Padding4,
    ) -> Gradients:
        top, bottom, left, right = padding
        N, H, W, C = X.shape
        dXp = dZ.new_zeros((N, H + top + bottom, W + left + right, C))
        share = dZ / (pool[0] * pool[1])
        Ho, Wo = dZ.shape[1], dZ.shape[2]
        for i in range(pool[0]):
            for j in range(pool[1]):
                dXp[:, window(i, Ho, stride[0]), window(j, Wo, stride[1]), :] += share
        return unpad_spatial(dXp, padding), []


class AveragePooling2DAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(
        self, X: Tensor, pool: tuple[int, int], stride: tuple[int, int], padding: Padding4
    ) -> tuple[Tensor, Memory]:
        Zn = F.avg_pool2d(to_nchw(pad_spatial(X, padding)), pool, stride)
        return to_nhwc(Zn), None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        pool: tuple[int, int],
        stride: tuple[int, int],
        padding: Padding4,
    ) -> Gradients:
        Xpn = to_nchw(pad_spatial(X, padding))
        dXpn = torch.ops.aten.avg_pool2d_backward(
            to_nchw(dZ), Xpn, list(pool), list(stride), [0, 0], False, True, None
        )
        return unpad_spatial(to_nhwc(dXpn), padding), []


class MaxUnpooling2DHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor, indices: Tensor, shape: tuple[int, ...]) -> tuple[Tensor, Memory]:
        Z = X.new_zeros(math.prod(shape))
        Z[indices.reshape(-1)] = X.reshape(-1)
        return Z.reshape(shape), None

    def backward(self, X: Tensor, indices: Tensor, dZ: Tensor) -> Tensor:
        return dZ.reshape(-1)[indices.reshape(-1)].reshape(X.shape)


class MaxUnpooling2DAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor, indices: Tensor, shape: tuple[int, ...]) -> tuple[Tensor, Memory]:
        Z = X.new_zeros(math.prod(shape)).scatter(0, indices.reshape(-1), X.reshape(-1))
        return Z.reshape(shape), None

    def backward(self, X: Tensor, indices: Tensor, dZ: Tensor) -> Tensor:
        return torch.gather(dZ.reshape(-1), 0, indices.reshape(-1)).reshape(X.shape)
