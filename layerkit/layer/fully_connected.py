"""Fully connected layer."""
from __future__ import annotations

import math
from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import FullyConnectedLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.runtime.precision import Precision
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.fully_connected import (
    FullyConnectedAcceleratorStrategy,
    FullyConnectedHostStrategy,
)


class FullyConnectedLayer(Layer):
    """Multiplies its flattened input by a (output_size, input_size) matrix.

    Image inputs give (1, 1, output_size) outputs; vector and sequence
    inputs give (output_size,).
    """

    default_name: ClassVar[str] = "fc"
    strategies = {
        Backend.HOST: FullyConnectedHostStrategy,
        Backend.ACCELERATOR: FullyConnectedAcceleratorStrategy,
    }

    def __init__(self, config: FullyConnectedLayerConfig) -> None:
        super().__init__(config)
        self.config: FullyConnectedLayerConfig = config
        self.output_size = config.output_size
        self.input_size: int | None = config.input_size
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
        return self.input_size is not None

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size) or len(input_size) not in (1, 3):
            raise LayerSizeError(
                f"fully connected layers take image or vector input, got {format_size(input_size)}"
            )
        flat = math.prod(input_size)
        if self.input_size is not None and flat != self.input_size:
            raise LayerSizeError(
                f"expected {self.input_size} input elements, got {flat} ({format_size(input_size)})"
            )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        if len(input_size) == 3:
            return (1, 1, self.output_size)
        return (self.output_size,)

    @override
    def infer_size(self, input_size: SizeArg) -> "FullyConnectedLayer":
        if self.input_size is None:
            self.input_size = math.prod(input_size)
        return self

    @override
    def initialize_learnable_parameters(self, dtype: torch.dtype = torch.float32) -> "FullyConnectedLayer":
        precision = Precision.of(dtype)
        weights, bias = self.parameters["Weights"], self.parameters["Bias"]
        if weights.value is None:
            if self.input_size is None:
                raise RuntimeError(f"Layer '{self.name}': input size is not known yet.")
            weights.value = precision.gaussian(self.output_size, self.input_size)
        else:
            weights.value = precision.cast(weights.value)
        bias.value = precision.zeros(self.output_size) if bias.value is None else precision.cast(bias.value)
        return self

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X, self.parameter_value("Weights"), self.parameter_value("Bias"))

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(
            X, Z, dZ, memory, self.parameter_value("Weights"), need_weight_gradients=need_weight_gradients
        )

    @override
    def to_config(self) -> FullyConnectedLayerConfig:
        return self.config.model_copy(update={"name": self.name, "input_size": self.input_size})
