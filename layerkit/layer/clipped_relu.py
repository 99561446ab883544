"""Clipped rectified linear unit layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import ClippedReLULayerConfig
from layerkit.layer import Layer
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.activation import ClippedReLUAcceleratorStrategy, ClippedReLUHostStrategy


class ClippedReLULayer(Layer):
    """min(max(X, 0), ceiling), element-wise."""

    default_name: ClassVar[str] = "clippedrelu"
    strategies = {
        Backend.HOST: ClippedReLUHostStrategy,
        Backend.ACCELERATOR: ClippedReLUAcceleratorStrategy,
    }

    def __init__(self, config: ClippedReLULayerConfig) -> None:
        super().__init__(config)
        self.ceiling = float(config.ceiling)

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X, self.ceiling)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(X, Z, dZ, memory, self.ceiling)
