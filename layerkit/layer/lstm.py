"""Long short-term memory layer.

The layer is stateful: hidden and cell states are DynamicParameters. After
each mini-batch the trainer asks for the final states with
`compute_state` and hands them back through `update_state`; a state whose
`remember` flag is off is reset to its initial value instead.
"""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import LSTMLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.parameter import DynamicParameter
from layerkit.runtime.precision import Precision
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.lstm import LSTMAcceleratorStrategy, LSTMHostStrategy, gate_indices


class LSTMLayer(Layer):
    """Maps (N, T, C) sequences to (N, T, H), or to (N, H) in "last" mode."""

    default_name: ClassVar[str] = "lstm"
    is_rnn = True
    strategies = {Backend.HOST: LSTMHostStrategy, Backend.ACCELERATOR: LSTMAcceleratorStrategy}
    # 2 for bidirectional layers
    num_directions: ClassVar[int] = 1

    def __init__(self, config: LSTMLayerConfig) -> None:
        super().__init__(config)
        self.config: LSTMLayerConfig = config
        self.hidden_size = config.hidden_size
        self.input_size: int | None = config.input_size
        self.return_last = config.output_mode == "last"
        self.initial_hidden_state: Tensor | None = None
        self.initial_cell_state: Tensor | None = None
        self.dynamic_parameters: dict[str, DynamicParameter] = {
            "HiddenState": DynamicParameter(remember=config.remember_hidden_state),
            "CellState": DynamicParameter(remember=config.remember_cell_state),
        }
        self.add_parameter(
            "InputWeights",
            learn_rate_factor=config.input_weights_learn_rate_factor,
            l2_factor=config.input_weights_l2_factor,
        )
        self.add_parameter(
            "RecurrentWeights",
            learn_rate_factor=config.recurrent_weights_learn_rate_factor,
            l2_factor=config.recurrent_weights_l2_factor,
        )
        self.add_parameter(
            "Bias",
            learn_rate_factor=config.bias_learn_rate_factor,
            l2_factor=config.bias_l2_factor,
        )

    @property
    def output_size(self) -> int:
        return self.num_directions * self.hidden_size

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.input_size is not None

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size) or len(input_size) != 1:
            raise LayerSizeError(
                f"recurrent layers take sequence input of size C, got {format_size(input_size)}"
            )
        if self.input_size is not None and input_size[0] != self.input_size:
            raise LayerSizeError(f"expected {self.input_size} input features, got {input_size[0]}")

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        return (self.output_size,)

    @override
    def infer_size(self, input_size: SizeArg) -> "LSTMLayer":
        if self.input_size is None:
            self.input_size = int(input_size[0])
        return self

    def _bias(self, precision: Precision) -> Tensor:
        # unit forget gate bias in every direction
        G = 4 * self.hidden_size
        bias = precision.zeros(self.num_directions * G)
        forget = gate_indices(self.hidden_size)["forget"]
        for d in range(self.num_directions):
            bias[d * G + forget.start : d * G + forget.stop] = 1
        return bias

    @override
    def initialize_learnable_parameters(self, dtype: torch.dtype = torch.float32) -> "LSTMLayer":
        precision = Precision.of(dtype)
        if self.input_size is None:
            raise RuntimeError(f"Layer '{self.name}': input size is not known yet.")
        rows = self.num_directions * 4 * self.hidden_size
        shapes = {
            "InputWeights": (rows, self.input_size),
            "RecurrentWeights": (rows, self.hidden_size),
        }
        for name, shape in shapes.items():
            param = self.parameters[name]
            param.value = precision.gaussian(*shape) if param.value is None else precision.cast(param.value)
        bias = self.parameters["Bias"]
        bias.value = self._bias(precision) if bias.value is None else precision.cast(bias.value)
        return self

    def initialize_dynamic_parameters(self, dtype: torch.dtype = torch.float32) -> "LSTMLayer":
        precision = Precision.of(dtype)
        if self.initial_hidden_state is None:
            self.initial_hidden_state = precision.zeros(self.output_size)
        if self.initial_cell_state is None:
            self.initial_cell_state = precision.zeros(self.output_size)
        self.dynamic_parameters["HiddenState"].value = precision.cast(self.initial_hidden_state)
        self.dynamic_parameters["CellState"].value = precision.cast(self.initial_cell_state)
        return self

    def _states(self, X: Tensor) -> tuple[Tensor, Tensor]:
        hidden = self.dynamic_parameters["HiddenState"].value
        cell = self.dynamic_parameters["CellState"].value
        if hidden is None or cell is None:
            self.initialize_dynamic_parameters(X.dtype)
            hidden = self.dynamic_parameters["HiddenState"].value
            cell = self.dynamic_parameters["CellState"].value
        return hidden.to(X.device), cell.to(X.device)  # type: ignore[union-attr]

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        hidden, cell = self._states(X)
        return self.strategy.forward(
            X,
            self.parameter_value("InputWeights"),
            self.parameter_value("RecurrentWeights"),
            self.parameter_value("Bias"),
            hidden,
            cell,
            self.return_last,
        )

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        hidden, cell = self._states(X)
        return self.strategy.backward(
            X,
            Z,
            dZ,
            memory,
            self.parameter_value("InputWeights"),
            self.parameter_value("RecurrentWeights"),
            hidden,
            cell,
            self.return_last,
            need_weight_gradients=need_weight_gradients,
        )

    def compute_state(self, X: Tensor, Z: Tensor, memory: Memory, propagate_state: bool) -> list[Tensor]:
        """[hidden, cell] to carry into the next mini-batch."""
        if propagate_state:
            return [memory.final_hidden_state, memory.final_cell_state]
        hidden, cell = self._states(X)
        return [hidden, cell]

    def update_state(self, state: list[Tensor]) -> None:
        hidden, cell = state
        for name, value, initial in (
            ("HiddenState", hidden, self.initial_hidden_state),
            ("CellState", cell, self.initial_cell_state),
        ):
            param = self.dynamic_parameters[name]
            param.value = value if param.remember else initial

    def reset_state(self) -> None:
        self.dynamic_parameters["HiddenState"].value = self.initial_hidden_state
        self.dynamic_parameters["CellState"].value = self.initial_cell_state

    @override
    def to_config(self) -> LSTMLayerConfig:
        return self.config.model_copy(update={"name": self.name, "input_size": self.input_size})
