"""2-D average pooling layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import AveragePooling2DLayerConfig
from layerkit.layer import Layer, SizeArg
from layerkit.layer.padding import (
    check_image_size,
    check_window_fits,
    resolve_padding,
    windowed_output_hw,
)
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.pooling import AveragePooling2DAcceleratorStrategy, AveragePooling2DHostStrategy
from layerkit.strategy.spatial import Padding4


class AveragePooling2DLayer(Layer):
    """Averages each pooling window; padding counts as zeros."""

    default_name: ClassVar[str] = "avgpool"
    is_image_specific = True
    strategies = {
        Backend.HOST: AveragePooling2DHostStrategy,
        Backend.ACCELERATOR: AveragePooling2DAcceleratorStrategy,
    }

    def __init__(self, config: AveragePooling2DLayerConfig) -> None:
        super().__init__(config)
        self.config: AveragePooling2DLayerConfig = config
        self.pool_size: tuple[int, int] = tuple(config.pool_size)  # type: ignore[assignment]
        self.stride: tuple[int, int] = tuple(config.stride)  # type: ignore[assignment]
        self.padding: str | Padding4 = config.padding

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.padding != "same"

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        check_image_size(input_size, "average pooling")
        padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        check_window_fits(input_size, self.pool_size, padding, "pooling region")

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        return (*windowed_output_hw(input_size, self.pool_size, self.stride, padding), input_size[2])

    @override
    def infer_size(self, input_size: SizeArg) -> "AveragePooling2DLayer":
        if self.padding == "same":
            self.padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        return self

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X, self.pool_size, self.stride, self.padding)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(X, Z, dZ, memory, self.pool_size, self.stride, self.padding)

    @override
    def to_config(self) -> AveragePooling2DLayerConfig:
        return self.config.model_copy(update={"name": self.name, "padding": self.padding})
