"""Convolution and transposed convolution kernels.

Tensors are channels-last. Convolution filters have shape
(filter_h, filter_w, in_channels, num_filters); transposed convolution
filters have shape (filter_h, filter_w, num_filters, in_channels), which is
exactly the filter of the convolution they are the adjoint of.

The host kernels loop over filter offsets and do one batched matmul per
offset. The accelerator kernels call the fused torch convolution ops.
"""
from __future__ import annotations

import torch
import torch.nn.functional as F
from torch import Tensor

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


def host_convolve(Xp: Tensor, weights: Tensor, stride: tuple[int, int]) -> Tensor:
    """Valid convolution of an already padded input."""
    N, Hp, Wp, _ = Xp.shape
    fh, fw, _, num_filters = weights.shape
    sh, sw = stride
    Ho, Wo = output_extent(Hp, fh, sh), output_extent(Wp, fw, sw)
    Z = Xp.new_zeros((N, Ho, Wo, num_filters))
    for i in range(fh):
        for j in range(fw):
            patch = Xp[:, window(i, Ho, sh), window(j, Wo, sw), :]
            Z = Z + patch @ weights[i, j]
    return Z


def host_convolve_backward_data(
    dZ: Tensor, weights: Tensor, padded_shape: torch.Size | tuple[int, ...], stride: tuple[int, int]
) -> Tensor:
    """Gradient of host_convolve with respect to its padded input."""
    fh, fw = weights.shape[0], weights.shape[1]
    sh, sw = stride
    Ho, Wo = dZ.shape[1], dZ.shape[2]
    dXp = dZ.new_zeros(padded_shape)
    for i in range(fh):
        for j in range(fw):
            dXp[:, window(i, Ho, sh), window(j, Wo, sw), :] += dZ @ weights[i, j].transpose(0, 1)
    return dXp


def host_convolve_backward_filter(
    Xp: Tensor, dZ: Tensor, filter_shape: torch.Size | tuple[int, ...], stride: tuple[int, int]
) -> Tensor:
    """Gradient of host_convolve with respect to its filters."""
    fh, fw = filter_shape[0], filter_shape[1]
    sh, sw = stride
    Ho, Wo = dZ.shape[1], dZ.shape[2]
    dW = dZ.new_zeros(filter_shape)
    for i in range(fh):
        for j in range(fw):
            patch = Xp[:, window(i, Ho, sh), window(j, Wo, sw), :]
            dW[i, j] = torch.einsum("nhwc,nhwf->cf", patch, dZ)
    return dW


def _accelerator_backward(
    Xp: Tensor, weights: Tensor, dZ: Tensor, stride: tuple[int, int], need_filter: bool
) -> tuple[Tensor, Tensor | None]:
    Xn = to_nchw(Xp)
    Wn = weights.permute(3, 2, 0, 1).contiguous()
    dZn = to_nchw(dZ)
    dXn = torch.nn.grad.conv2d_input(list(Xn.shape), Wn, dZn, stride=stride)
    dW = None
    if need_filter:
        dWn = torch.nn.grad.conv2d_weight(Xn, list(Wn.shape), dZn, stride=stride)
        dW = dWn.permute(2, 3, 1, 0).contiguous()
    return to_nhwc(dXn), dW


class Convolution2DHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(
        self, X: Tensor, weights: Tensor, bias: Tensor, padding: Padding4, stride: tuple[int, int]
    ) -> tuple[Tensor, Memory]:
        Xp = pad_spatial(X, padding)
        return host_convolve(Xp, weights, stride) + bias, None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        padding: Padding4,
        stride: tuple[int, int],
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        Xp = pad_spatial(X, padding)
        dX = unpad_spatial(host_convolve_backward_data(dZ, weights, Xp.shape, stride), padding)
        if not need_weight_gradients:
            return dX, []
        dW = host_convolve_backward_filter(Xp, dZ, weights.shape, stride)
        return dX, [dW, dZ.sum(dim=(0, 1, 2))]


class Convolution2DAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(
        self, X: Tensor, weights: Tensor, bias: Tensor, padding: Padding4, stride: tuple[int, int]
    ) -> tuple[Tensor, Memory]:
        Xp = pad_spatial(X, padding)
        Zn = F.conv2d(to_nchw(Xp), weights.permute(3, 2, 0, 1), stride=stride)
        return to_nhwc(Zn) + bias, None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        padding: Padding4,
        stride: tuple[int, int],
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        Xp = pad_spatial(X, padding)
        dXp, dW = _accelerator_backward(Xp, weights, dZ, stride, need_weight_gradients)
        dX = unpad_spatial(dXp, padding)
        if dW is None:
            return dX, []
        return dX, [dW, dZ.sum(dim=(0, 1, 2))]


def _cropping4(cropping: tuple[int, int]) -> Padding4:
    vertical, horizontal = cropping
    return (vertical, vertical, horizontal, horizontal)


def transposed_output_shape(
    X: Tensor, weights: Tensor, stride: tuple[int, int]
) -> tuple[int, int, int, int]:
    """Shape of the uncropped transposed convolution output."""
    N, H, W, _ = X.shape
    fh, fw, num_filters, _ = weights.shape
    return (N, (H - 1) * stride[0] + fh, (W - 1) * stride[1] + fw, num_filters)


class TransposedConvolution2DHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(
        self, X: Tensor, weights: Tensor, bias: Tensor, cropping: tuple[int, int], stride: tuple[int, int]
    ) -> tuple[Tensor, Memory]:
        full = host_convolve_backward_data(X, weights, transposed_output_shape(X, weights, stride), stride)
        return unpad_spatial(full, _cropping4(cropping)) + bias, None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        cropping: tuple[int, int],
        stride: tuple[int, int],
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        dZfull = pad_spatial(dZ, _cropping4(cropping))
        dX = host_convolve(dZfull, weights, stride)
        if not need_weight_gradients:
            return dX, []
        dW = host_convolve_backward_filter(dZfull, X, weights.shape, stride)
        return dX, [dW, dZ.sum(dim=(0, 1, 2))]


class TransposedConvolution2DAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(
        self, X: Tensor, weights: Tensor, bias: Tensor, cropping: tuple[int, int], stride: tuple[int, int]
    ) -> tuple[Tensor, Memory]:
        Wn = weights.permute(3, 2, 0, 1)
        full = to_nhwc(F.conv_transpose2d(to_nchw(X), Wn, stride=stride))
        return unpad_spatial(full, _cropping4(cropping)) + bias, None

    def backward(
        self,
        X: Tensor,
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        weights: Tensor,
        cropping: tuple[int, int],
        stride: tuple[int, int],
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        dZfull = pad_spatial(dZ, _cropping4(cropping))
        Wn = weights.permute(3, 2, 0, 1)
        dX = to_nhwc(F.conv2d(to_nchw(dZfull), Wn, stride=stride))
        if not need_weight_gradients:
            return dX, []
        dWn = torch.nn.grad.conv2d_weight(to_nchw(dZfull), list(Wn.shape), to_nchw(X), stride=stride)
        return dX, [dWn.permute(2, 3, 1, 0).contiguous(), dZ.sum(dim=(0, 1, 2))]
