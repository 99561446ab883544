"""
padding provides the size arithmetic shared by convolution and pooling layers.
"""
from __future__ import annotations

import math

from layerkit.errors import LayerSizeError
from layerkit.shape import Size, format_size, is_valid_size
from layerkit.strategy.spatial import Padding4


def same_padding(window: tuple[int, int], stride: tuple[int, int], hw: tuple[int, int]) -> Padding4:
    """
    same_padding returns the (top, bottom, left, right) padding that makes the
    output size ceil(input / stride). Odd totals put the extra row/column at
    the bottom/right.
    """
    totals = []
    for extent, w, s in zip(hw, window, stride):
        desired = math.ceil(extent / s)
        totals.append(max((desired - 1) * s + w - extent, 0))
    th, tw = totals
    return (th // 2, th - th // 2, tw // 2, tw - tw // 2)


def resolve_padding(
    padding: str | Padding4, window: tuple[int, int], stride: tuple[int, int], size: Size
) -> Padding4:
    if padding == "same":
        return same_padding(window, stride, (size[0], size[1]))
    return padding  # type: ignore[return-value]


def check_image_size(size: object, what: str = "layer") -> None:
    if not is_valid_size(size) or len(size) != 3:  # type: ignore[arg-type]
        raise LayerSizeError(f"{what} expects an H×W×C image input, got {format_size(size)}")  # type: ignore[arg-type]


def check_window_fits(size: Size, window: tuple[int, int], padding: Padding4, what: str) -> None:
    top, bottom, left, right = padding
    padded = (size[0] + top + bottom, size[1] + left + right)
    if window[0] > padded[0] or window[1] > padded[1]:
        raise LayerSizeError(
            f"{what} of size {window[0]}×{window[1]} is larger than the padded "
            f"input of size {padded[0]}×{padded[1]}"
        )


def windowed_output_hw(
    size: Size, window: tuple[int, int], stride: tuple[int, int], padding: Padding4
) -> tuple[int, int]:
    top, bottom, left, right = padding
    return (
        (size[0] + top + bottom - window[0]) // stride[0] + 1,
        (size[1] + left + right - window[1]) // stride[1] + 1,
    )
