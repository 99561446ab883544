"""2-D max pooling layer.

With `has_unpooling_outputs` the layer has three outputs: the pooled map
(`out`), the linear index of every window maximum into the flattened input
(`indices`) and the input shape (`size`). A MaxUnpooling2DLayer consumes
the latter two. For size propagation the `indices` output has the pooled
size and the `size` output carries the pre-pooling input size.
"""
from __future__ import annotations

from typing import ClassVar, Sequence

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import MaxPooling2DLayerConfig
from layerkit.layer import Layer, SizeArg
from layerkit.layer.padding import (
    check_image_size,
    check_window_fits,
    resolve_padding,
    windowed_output_hw,
)
from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory
from layerkit.strategy.pooling import (
    MaxPooling2DAcceleratorStrategy,
    MaxPooling2DHostStrategy,
    MaxPooling2DWithIndicesAcceleratorStrategy,
    MaxPooling2DWithIndicesHostStrategy,
)
from layerkit.strategy.spatial import Padding4


class MaxPooling2DLayer(Layer):
    """Takes the maximum over each pooling window."""

    default_name: ClassVar[str] = "maxpool"
    is_image_specific = True
    strategies = {
        Backend.HOST: MaxPooling2DHostStrategy,
        Backend.ACCELERATOR: MaxPooling2DAcceleratorStrategy,
    }
    unpooling_strategies = {
        Backend.HOST: MaxPooling2DWithIndicesHostStrategy,
        Backend.ACCELERATOR: MaxPooling2DWithIndicesAcceleratorStrategy,
    }

    def __init__(self, config: MaxPooling2DLayerConfig) -> None:
        super().__init__(config)
        self.config: MaxPooling2DLayerConfig = config
        self.pool_size: tuple[int, int] = tuple(config.pool_size)  # type: ignore[assignment]
        self.stride: tuple[int, int] = tuple(config.stride)  # type: ignore[assignment]
        self.padding: str | Padding4 = config.padding
        self.has_unpooling_outputs = config.has_unpooling_outputs

    @property  # type: ignore[override]
    def output_names(self) -> Sequence[str]:
        if self.has_unpooling_outputs:
            return ("out", "indices", "size")
        return ("out",)

    @property
    @override
    def strategy(self) -> ExecutionStrategy:
        if self.has_unpooling_outputs:
            return self.unpooling_strategies[self.placement.backend]()
        return super().strategy

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.padding != "same"

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        check_image_size(input_size, "max pooling")
        padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        check_window_fits(input_size, self.pool_size, padding, "pooling region")

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        h, w = windowed_output_hw(input_size, self.pool_size, self.stride, padding)
        pooled = (h, w, input_size[2])
        if self.has_unpooling_outputs:
            return [pooled, pooled, tuple(input_size)]
        return pooled

    @override
    def infer_size(self, input_size: SizeArg) -> "MaxPooling2DLayer":
        if self.padding == "same":
            self.padding = resolve_padding(self.padding, self.pool_size, self.stride, input_size)
        return self

    @override
    def forward(self, X: Tensor) -> tuple[Tensor | list[Tensor], Memory]:
        return self.strategy.forward(X, self.pool_size, self.stride, self.padding)

    @override
    def backward(
        self,
        X: Tensor,
        Z: Tensor | list[Tensor],
        dZ: Tensor | list[Tensor],
        memory: Memory,
        *,
        need_weight_gradients: bool = True,
    ) -> Gradients:
        if self.has_unpooling_outputs:
            # indices and size carry no gradient
            Z, dZ = Z[0], dZ[0]  # type: ignore[index]
        return self.strategy.backward(X, Z, dZ, memory, self.pool_size, self.stride, self.padding)

    @override
    def to_config(self) -> MaxPooling2DLayerConfig:
        return self.config.model_copy(update={"name": self.name, "padding": self.padding})
