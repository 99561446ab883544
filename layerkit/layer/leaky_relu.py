"""Leaky rectified linear unit layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import LeakyReLULayerConfig
from layerkit.layer import Layer
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.activation import LeakyReLUAcceleratorStrategy, LeakyReLUHostStrategy


class LeakyReLULayer(Layer):
    """X for positive inputs, scale * X otherwise."""

    default_name: ClassVar[str] = "leakyrelu"
    strategies = {
        Backend.HOST: LeakyReLUHostStrategy,
        Backend.ACCELERATOR: LeakyReLUAcceleratorStrategy,
    }

    def __init__(self, config: LeakyReLULayerConfig) -> None:
        super().__init__(config)
        self.scale = float(config.scale)

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X, self.scale)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(X, Z, dZ, memory, self.scale)
