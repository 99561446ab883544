"""2-D max unpooling layer."""
from __future__ import annotations

from typing import ClassVar, Sequence

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import MaxUnpooling2DLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.pooling import MaxUnpooling2DAcceleratorStrategy, MaxUnpooling2DHostStrategy


class MaxUnpooling2DLayer(Layer):
    """Scatters pooled values back to the positions their maxima came from.

    Inputs are the pooled map (`in`), the `indices` and the `size` outputs
    of a max pooling layer; every other position of the output is zero.
    """

    default_name: ClassVar[str] = "maxunpool"
    input_names: ClassVar[Sequence[str]] = ("in", "indices", "size")
    is_image_specific = True
    strategies = {
        Backend.HOST: MaxUnpooling2DHostStrategy,
        Backend.ACCELERATOR: MaxUnpooling2DAcceleratorStrategy,
    }

    def __init__(self, config: MaxUnpooling2DLayerConfig) -> None:
        super().__init__(config)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not isinstance(input_size, (list, tuple)) or len(input_size) != 3:
            raise LayerSizeError("max unpooling takes the in, indices and size inputs")
        pooled, indices, size = input_size
        for port, s in zip(self.input_names, input_size):
            if not is_valid_size(s) or len(s) != 3:
                raise LayerSizeError(f"input '{port}' must be an H×W×C size, got {format_size(s)}")
        if tuple(indices) != tuple(pooled):
            raise LayerSizeError(
                f"indices of size {format_size(indices)} do not match the input of size "
                f"{format_size(pooled)}"
            )
        if size[2] != pooled[2]:
            raise LayerSizeError(
                f"unpooled size {format_size(size)} has a different number of channels "
                f"than the input of size {format_size(pooled)}"
            )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        size = input_size[2]
        return (size[0], size[1], input_size[0][2])

    @override
    def forward(self, X: list[Tensor]) -> tuple[Tensor, Memory]:
        pooled, indices, size = X
        shape = tuple(int(s) for s in size.tolist())
        return self.strategy.forward(pooled, indices, shape)

    @override
    def backward(
        self,
        X: list[Tensor],
        Z: Tensor,
        dZ: Tensor,
        memory: Memory,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        pooled, indices, size = X
        dX = self.strategy.backward(pooled, indices, dZ)
        return [dX, torch.zeros_like(indices), torch.zeros_like(size)], []
