"""
spatial provides padding and window helpers for channels-last image tensors.
"""
from __future__ import annotations

import torch.nn.functional as F
from torch import Tensor

# (top, bottom, left, right)
Padding4 = tuple[int, int, int, int]


def pad_spatial(X: Tensor, padding: Padding4, value: float = 0.0) -> Tensor:
    """
    pad_spatial pads the H and W dimensions of an (N, H, W, C) tensor.
    """
    top, bottom, left, right = padding
    if not (top or bottom or left or right):
        return X
    return F.pad(X, (0, 0, left, right, top, bottom), value=value)


def unpad_spatial(X: Tensor, padding: Padding4) -> Tensor:
    """
    unpad_spatial removes padding added by pad_spatial.
    """
    top, bottom, left, right = padding
    H, W = X.shape[1], X.shape[2]
    return X[:, top : H - bottom, left : W - right, :]


def output_extent(padded: int, window: int, stride: int) -> int:
    """
    output_extent is the number of window positions along one axis.
    """
    return (padded - window) // stride + 1


def window(offset: int, count: int, stride: int) -> slice:
    """
    window selects every input row/column that window offset `offset` touches.
    """
    return slice(offset, offset + stride * (count - 1) + 1, stride)


def to_nchw(X: Tensor) -> Tensor:
    return X.permute(0, 3, 1, 2).contiguous()


def to_nhwc(X: Tensor) -> Tensor:
    return X.permute(0, 2, 3, 1).contiguous()
