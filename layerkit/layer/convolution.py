"""2-D convolution layer."""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import Convolution2DLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.layer.padding import (
    check_image_size,
    check_window_fits,
    resolve_padding,
    windowed_output_hw,
)
from layerkit.runtime.precision import Precision
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.convolution import (
    Convolution2DAcceleratorStrategy,
    Convolution2DHostStrategy,
)
from layerkit.strategy.spatial import Padding4


class Convolution2DLayer(Layer):
    """Convolves (N, H, W, C) images with `num_filters` learnable filters.

    `num_channels` and "same" padding are resolved by `infer_size` once the
    input size is known.
    """

    default_name: ClassVar[str] = "conv"
    is_image_specific = True
    strategies = {
        Backend.HOST: Convolution2DHostStrategy,
        Backend.ACCELERATOR: Convolution2DAcceleratorStrategy,
    }

    def __init__(self, config: Convolution2DLayerConfig) -> None:
        super().__init__(config)
        self.config: Convolution2DLayerConfig = config
        self.filter_size: tuple[int, int] = tuple(config.filter_size)  # type: ignore[assignment]
        self.stride: tuple[int, int] = tuple(config.stride)  # type: ignore[assignment]
        self.num_filters = config.num_filters
        self.num_channels: int | None = config.num_channels
        self.padding: str | Padding4 = config.padding
        self.add_parameter(
            "Weights",
            learn_rate_factor=config.weight_learn_rate_factor,
            l2_factor=config.weight_l2_factor,
        )
        self.add_parameter(
            "Bias",
            learn_rate_factor=config.bias_learn_rate_factor,
            l2_factor=config.bias_l2_factor,
        )

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.num_channels is not None and self.padding != "same"

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        check_image_size(input_size, "convolution")
        if self.num_channels is not None and input_size[2] != self.num_channels:
            raise LayerSizeError(
                f"expected input with {self.num_channels} channels, got {input_size[2]}"
            )
        padding = resolve_padding(self.padding, self.filter_size, self.stride, input_size)
        check_window_fits(input_size, self.filter_size, padding, "filter")

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        padding = resolve_padding(self.padding, self.filter_size, self.stride, input_size)
        h, w = windowed_output_hw(input_size, self.filter_size, self.stride, padding)
        return (h, w, self.num_filters)

    @override
    def infer_size(self, input_size: SizeArg) -> "Convolution2DLayer":
        if self.num_channels is None:
            self.num_channels = int(input_size[2])
        if self.padding == "same":
            self.padding = resolve_padding(self.padding, self.filter_size, self.stride, input_size)
        return self

    @override
    def initialize_learnable_parameters(self, dtype: torch.dtype = torch.float32) -> "Convolution2DLayer":
        precision = Precision.of(dtype)
        weights, bias = self.parameters["Weights"], self.parameters["Bias"]
        if weights.value is None:
            if self.num_channels is None:
                raise RuntimeError(f"Layer '{self.name}': number of channels is not known yet.")
            weights.value = precision.gaussian(*self.filter_size, self.num_channels, self.num_filters)
        else:
            weights.value = precision.cast(weights.value)
        bias.value = precision.zeros(self.num_filters) if bias.value is None else precision.cast(bias.value)
        return self

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(
            X,
            self.parameter_value("Weights"),
            self.parameter_value("Bias"),
            self.padding,
            self.stride,
        )

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(
            X,
            Z,
            dZ,
            memory,
            self.parameter_value("Weights"),
            self.padding,
            self.stride,
            need_weight_gradients=need_weight_gradients,
        )

    @override
    def to_config(self) -> Convolution2DLayerConfig:
        return self.config.model_copy(
            update={"name": self.name, "num_channels": self.num_channels, "padding": self.padding}
        )
