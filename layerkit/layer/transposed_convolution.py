"""2-D transposed convolution layer."""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import TransposedConvolution2DLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.layer.padding import check_image_size
from layerkit.runtime.precision import Precision
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.convolution import (
    TransposedConvolution2DAcceleratorStrategy,
    TransposedConvolution2DHostStrategy,
)


class TransposedConvolution2DLayer(Layer):
    """Upsamples images; the adjoint of a strided convolution.

    Filters are stored as (filter_h, filter_w, num_filters, num_channels).
    """

    default_name: ClassVar[str] = "transposed-conv"
    is_image_specific = True
    strategies = {
        Backend.HOST: TransposedConvolution2DHostStrategy,
        Backend.ACCELERATOR: TransposedConvolution2DAcceleratorStrategy,
    }

    def __init__(self, config: TransposedConvolution2DLayerConfig) -> None:
        super().__init__(config)
        self.config: TransposedConvolution2DLayerConfig = config
        self.filter_size: tuple[int, int] = tuple(config.filter_size)  # type: ignore[assignment]
        self.stride: tuple[int, int] = tuple(config.stride)  # type: ignore[assignment]
        self.cropping: tuple[int, int] = tuple(config.cropping)  # type: ignore[assignment]
        self.num_filters = config.num_filters
        self.num_channels: int | None = config.num_channels
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
        return self.num_channels is not None

    def _output_hw(self, input_size: SizeArg) -> tuple[int, int]:
        return (
            (input_size[0] - 1) * self.stride[0] + self.filter_size[0] - 2 * self.cropping[0],
            (input_size[1] - 1) * self.stride[1] + self.filter_size[1] - 2 * self.cropping[1],
        )

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        check_image_size(input_size, "transposed convolution")
        if self.num_channels is not None and input_size[2] != self.num_channels:
            raise LayerSizeError(
                f"expected input with {self.num_channels} channels, got {input_size[2]}"
            )
        h, w = self._output_hw(input_size)
        if h < 1 or w < 1:
            raise LayerSizeError(
                f"cropping {self.cropping[0]}×{self.cropping[1]} leaves an empty output"
            )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        return (*self._output_hw(input_size), self.num_filters)

    @override
    def infer_size(self, input_size: SizeArg) -> "TransposedConvolution2DLayer":
        if self.num_channels is None:
            self.num_channels = int(input_size[2])
        return self

    @override
    def initialize_learnable_parameters(
        self, dtype: torch.dtype = torch.float32
    ) -> "TransposedConvolution2DLayer":
        precision = Precision.of(dtype)
        weights, bias = self.parameters["Weights"], self.parameters["Bias"]
        if weights.value is None:
            if self.num_channels is None:
                raise RuntimeError(f"Layer '{self.name}': number of channels is not known yet.")
            weights.value = precision.gaussian(*self.filter_size, self.num_filters, self.num_channels)
        else:
            weights.value = precision.cast(weights.value)
        bias.value = precision.zeros(self.num_filters) if bias.value is None else precision.cast(bias.value)
        return self

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(
            X, self.parameter_value("Weights"), self.parameter_value("Bias"), self.cropping, self.stride
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
            self.cropping,
            self.stride,
            need_weight_gradients=need_weight_gradients,
        )

    @override
    def to_config(self) -> TransposedConvolution2DLayerConfig:
        return self.config.model_copy(update={"name": self.name, "num_channels": self.num_channels})
