"""Rectified linear unit layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import ReLULayerConfig
from layerkit.layer import Layer
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.activation import ReLUAcceleratorStrategy, ReLUHostStrategy


class ReLULayer(Layer):
    """max(X, 0), element-wise."""

    default_name: ClassVar[str] = "relu"
    strategies = {Backend.HOST: ReLUHostStrategy, Backend.ACCELERATOR: ReLUAcceleratorStrategy}

    def __init__(self, config: ReLULayerConfig) -> None:
        super().__init__(config)

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(X, Z, dZ, memory)
