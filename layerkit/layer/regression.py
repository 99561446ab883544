"""Regression output layer with half mean-squared-error loss."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import RegressionOutputLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import OutputLayer, SizeArg
from layerkit.shape import format_size, is_valid_size


class RegressionOutputLayer(OutputLayer):
    """0.5 * sum((Y - T) ** 2), averaged over the mini-batch."""

    default_name: ClassVar[str] = "regressionoutput"
    is_regression = True

    def __init__(self, config: RegressionOutputLayerConfig) -> None:
        super().__init__(config)
        self.response_names = list(config.response_names)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")
        if self.response_names and input_size[-1] != len(self.response_names):
            raise LayerSizeError(
                f"expected {len(self.response_names)} responses, got an input of size "
                f"{format_size(input_size)}"
            )

    @override
    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        N = Y.shape[0]
        return 0.5 * ((Y - T) ** 2).sum() / N

    @override
    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        N = Y.shape[0]
        return (Y - T) / N
