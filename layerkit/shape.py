"""Size vectors: the per-observation shapes that flow through analysis.

A size excludes the batch dimension (and the time dimension for sequence
data). Images have size (H, W, C), sequences (C,). `None` stands for a size
that could not be determined.
"""
from __future__ import annotations

from typing import Sequence

Size = tuple[int, ...]


def is_valid_size(size: object) -> bool:
    """True for a non-empty tuple of positive integers."""
    if not isinstance(size, tuple) or len(size) == 0:
        return False
    return all(isinstance(s, int) and not isinstance(s, bool) and s > 0 for s in size)


def as_size(value: Sequence[int] | int) -> Size:
    """Normalize an int or sequence of ints into a size tuple."""
    if isinstance(value, int):
        return (int(value),)
    return tuple(int(v) for v in value)


def pad_size(size: Size, ndims: int) -> Size:
    """Right-pad a size with trailing singleton dimensions."""
    if len(size) >= ndims:
        return size
    return size + (1,) * (ndims - len(size))


def format_size(size: Size | None) -> str:
    """Render a size the way issue messages show it, e.g. 28×28×1."""
    if size is None or len(size) == 0:
        return "(unknown)"
    return "×".join(str(s) for s in size)


def observation_shape(size: Size) -> tuple[int, ...]:
    """Shape of a single-observation tensor holding data of this size.

    Scalar sizes describe feature vectors (C,), so the tensor is (1, C);
    three-element sizes describe images, giving (1, H, W, C).
    """
    return (1, *size)
