"""Concatenation of several inputs along one size axis.

`axis` counts size dimensions from 1, so for images 1 is height, 2 width
and 3 channels. Sizes shorter than `axis` are padded with trailing
singleton dimensions before comparing them; every axis other than the
concatenation axis must then agree.
"""
from __future__ import annotations

from typing import ClassVar, Sequence

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import ConcatenationLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.shape import Size, format_size, is_valid_size, pad_size
from layerkit.strategy import Gradients, Memory


def _feature_dims(X: Tensor) -> int:
    # images carry three size dimensions, vectors and sequences one
    return 3 if X.dim() == 4 else 1


class ConcatenationLayer(Layer):
    """Joins `num_inputs` inputs along `axis`; ports are in1..inN."""

    default_name: ClassVar[str] = "concat"

    def __init__(self, config: ConcatenationLayerConfig) -> None:
        super().__init__(config)
        self.axis = config.axis
        self.num_inputs_ = config.num_inputs

    @property  # type: ignore[override]
    def input_names(self) -> Sequence[str]:
        return tuple(f"in{i}" for i in range(1, self.num_inputs_ + 1))

    def _padded(self, sizes: list[Size]) -> list[Size]:
        ndims = max(max(len(s) for s in sizes), self.axis)
        return [pad_size(tuple(s), ndims) for s in sizes]

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not isinstance(input_size, list) or len(input_size) != self.num_inputs_:
            raise LayerSizeError(f"concatenation expects {self.num_inputs_} inputs")
        for port, size in zip(self.input_names, input_size):
            if not is_valid_size(size):
                raise LayerSizeError(f"input '{port}' has invalid size {format_size(size)}")
        padded = self._padded(input_size)
        first = padded[0]
        for size in padded[1:]:
            others = [d for d in range(len(first)) if d != self.axis - 1]
            if len(size) != len(first) or any(size[d] != first[d] for d in others):
                raise LayerSizeError(
                    f"inputs must match in every dimension except dimension {self.axis}; got "
                    + ", ".join(format_size(s) for s in input_size)
                )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        padded = self._padded(input_size)
        out = list(padded[0])
        out[self.axis - 1] = sum(s[self.axis - 1] for s in padded)
        return tuple(out)

    def _expanded(self, X: list[Tensor]) -> tuple[list[Tensor], int]:
        expanded = []
        dim = 0
        for Xi in X:
            fdims = _feature_dims(Xi)
            target = max(fdims, self.axis)
            expanded.append(Xi.reshape(*Xi.shape, *(1,) * (target - fdims)))
            dim = self.axis - target - 1
        return expanded, dim

    @override
    def forward(self, X: list[Tensor]) -> tuple[Tensor, Memory]:
        expanded, dim = self._expanded(X)
        extents = [Xi.shape[dim] for Xi in expanded]
        return torch.cat(expanded, dim=dim), (dim, extents)

    @override
    def backward(
        self, X: list[Tensor], Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        if memory is None:
            expanded, dim = self._expanded(X)
            extents = [Xi.shape[dim] for Xi in expanded]
        else:
            dim, extents = memory
        pieces = torch.split(dZ, extents, dim=dim)
        return [p.reshape(Xi.shape) for p, Xi in zip(pieces, X)], []
