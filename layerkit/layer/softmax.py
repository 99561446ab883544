"""Softmax layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import SoftmaxLayerConfig
from layerkit.layer import Layer
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.softmax import SoftmaxAcceleratorStrategy, SoftmaxHostStrategy


class SoftmaxLayer(Layer):
    """Normalizes the channel dimension into a probability distribution."""

    default_name: ClassVar[str] = "softmax"
    is_softmax = True
    strategies = {Backend.HOST: SoftmaxHostStrategy, Backend.ACCELERATOR: SoftmaxAcceleratorStrategy}

    def __init__(self, config: SoftmaxLayerConfig) -> None:
        super().__init__(config)

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(X, Z, dZ, memory)
