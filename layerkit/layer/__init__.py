"""Layers: the units a network is assembled from.

Every layer kind lives in its own module and pairs a validated config from
`layerkit.config.layer` with one host and one accelerator execution
strategy. A layer knows its ports, can propagate sizes without touching
data, resolves late-bound hyperparameters once its input size is known, and
runs predict/forward/backward through whatever strategy its placement
selects.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any, ClassVar, Protocol, Sequence, runtime_checkable

import torch
from torch import Tensor

from layerkit.errors import LayerSizeError
from layerkit.parameter import (
    DynamicParameter,
    LearnableParameter,
    TrainingLearnableParameter,
    convert_to_prediction,
    convert_to_training,
)
from layerkit.shape import Size, format_size, is_valid_size
from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory, Mode, Placement
from layerkit.strategy.normalization import merge_statistics

if TYPE_CHECKING:
    from layerkit.config import Config

# Size(s) flowing into or out of a layer: one Size per port, bare for one port
SizeArg = Any

__all__ = [
    "Finalizable",
    "Layer",
    "InputLayer",
    "OutputLayer",
    "Stateful",
    "merge_statistics",
]


class Layer:
    """Base class for all internal layers.

    Subclasses set `default_name`, the port names, the classification tags
    used by the analyzer and `strategies`, which maps a Backend to the
    ExecutionStrategy class implementing the layer's math there.
    """

    default_name: ClassVar[str] = "layer"
    input_names: ClassVar[Sequence[str]] = ("in",)
    output_names: ClassVar[Sequence[str]] = ("out",)
    strategies: ClassVar[dict[Backend, type[ExecutionStrategy]]] = {}

    is_input_layer: ClassVar[bool] = False
    is_output_layer: ClassVar[bool] = False
    is_rnn: ClassVar[bool] = False
    is_softmax: ClassVar[bool] = False
    is_classification: ClassVar[bool] = False
    is_regression: ClassVar[bool] = False
    is_sequence_specific: ClassVar[bool] = False
    is_image_specific: ClassVar[bool] = False
    is_custom: ClassVar[bool] = False

    def __init__(self, config: "Config") -> None:
        self.config = config
        self.name: str = getattr(config, "name", "") or ""
        self.placement = Placement.host()
        self.parameters: dict[str, LearnableParameter] = {}

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # Ports

    @property
    def num_inputs(self) -> int:
        return len(self.input_names)

    @property
    def num_outputs(self) -> int:
        return len(self.output_names)

    def input_index(self, port: str) -> int | None:
        """0-based index of the named input port, None when absent."""
        try:
            return list(self.input_names).index(port)
        except ValueError:
            return None

    def output_index(self, port: str) -> int | None:
        """0-based index of the named output port, None when absent."""
        try:
            return list(self.output_names).index(port)
        except ValueError:
            return None

    # Parameters

    def add_parameter(
        self,
        name: str,
        value: Tensor | None = None,
        *,
        learn_rate_factor: float = 1.0,
        l2_factor: float = 1.0,
    ) -> LearnableParameter:
        param = TrainingLearnableParameter(
            value, learn_rate_factor=learn_rate_factor, l2_factor=l2_factor
        )
        self.parameters[name] = param
        return param

    @property
    def learnable_parameters(self) -> list[LearnableParameter]:
        return list(self.parameters.values())

    def parameter_value(self, name: str) -> Tensor:
        value = self.parameters[name].value
        if value is None:
            raise RuntimeError(
                f"Layer '{self.name}': parameter {name} is not initialized; "
                "call initialize_learnable_parameters first."
            )
        return value

    def initialize_learnable_parameters(self, dtype: torch.dtype = torch.float32) -> "Layer":
        """Allocate empty parameters and cast the rest to `dtype`."""
        return self

    def prepare_for_training(self) -> "Layer":
        converted = convert_to_training(self.learnable_parameters)
        self.parameters = dict(zip(self.parameters, converted))
        self.setup(Placement(self.placement.backend, Mode.TRAINING, self.placement.device))
        return self

    def prepare_for_prediction(self) -> "Layer":
        converted = convert_to_prediction(self.learnable_parameters)
        self.parameters = dict(zip(self.parameters, converted))
        self.setup(Placement(self.placement.backend, Mode.PREDICTION, self.placement.device))
        return self

    # Placement

    def setup(self, placement: Placement) -> "Layer":
        """Record where this layer computes and move its parameters there."""
        self.placement = placement
        for param in self.parameters.values():
            param.move_to(placement.parameter_device)
        return self

    def setup_for_host_training(self) -> "Layer":
        return self.setup(Placement.host(Mode.TRAINING))

    def setup_for_host_prediction(self) -> "Layer":
        return self.setup(Placement.host(Mode.PREDICTION))

    def setup_for_accelerator_training(self, device: str | torch.device | None = None) -> "Layer":
        return self.setup(Placement.accelerator(Mode.TRAINING, device))

    def setup_for_accelerator_prediction(self, device: str | torch.device | None = None) -> "Layer":
        return self.setup(Placement.accelerator(Mode.PREDICTION, device))

    @property
    def strategy(self) -> ExecutionStrategy:
        """The execution strategy selected by the current placement."""
        cls = self.strategies.get(self.placement.backend)
        if cls is None:
            raise NotImplementedError(
                f"{type(self).__name__} has no {self.placement.backend.value} strategy"
            )
        return cls()

    # Sizes

    @property
    def has_size_determined(self) -> bool:
        return True

    def check_input_size(self, input_size: SizeArg) -> None:
        """Raise LayerSizeError when the layer cannot take `input_size`."""
        if not is_valid_size(input_size):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")

    def is_valid_input_size(self, input_size: SizeArg) -> bool:
        try:
            self.check_input_size(input_size)
        except LayerSizeError:
            return False
        return True

    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        """Output size(s) for `input_size`; identity unless overridden."""
        self.check_input_size(input_size)
        return input_size

    def infer_size(self, input_size: SizeArg) -> "Layer":
        """Resolve hyperparameters that depend on the input size."""
        return self

    # Computation

    def predict(self, X: Any) -> Any:
        Z, _ = self.forward(X)
        return Z

    def forward(self, X: Any) -> tuple[Any, Memory]:
        raise NotImplementedError(f"{type(self).__name__}.forward")

    def backward(
        self, X: Any, Z: Any, dZ: Any, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        raise NotImplementedError(f"{type(self).__name__}.backward")

    # Conversion

    def to_config(self) -> "Config":
        """Config describing this layer, with inferred sizes filled in."""
        return self.config.model_copy(update={"name": self.name})


class InputLayer(Layer):
    """A layer that feeds data into the network and has no inputs."""

    input_names: ClassVar[Sequence[str]] = ()
    is_input_layer = True

    @property
    def input_size(self) -> Size:
        raise NotImplementedError

    def forward_propagate_size(self, input_size: SizeArg = None) -> SizeArg:
        return self.input_size

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.predict(X), None

    def predict(self, X: Tensor) -> Tensor:
        return X

    def backward(
        self, X: Any, Z: Any, dZ: Any, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return dZ, []


class OutputLayer(Layer):
    """A layer that turns network output into a loss and has no outputs."""

    output_names: ClassVar[Sequence[str]] = ()
    is_output_layer = True

    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        return None

    def predict(self, X: Tensor) -> Tensor:
        return X

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return X, None

    def backward(
        self, X: Any, Z: Any, dZ: Any, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return dZ, []

    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        raise NotImplementedError

    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        raise NotImplementedError


@runtime_checkable
class Finalizable(Protocol):
    """A layer that accumulates statistics after training, e.g. batch norm."""

    def finalize(self, X: Tensor, Z: Tensor, memory: Memory) -> Any:
        ...

    def merge_finalized(self, other: Any) -> Any:
        ...


@runtime_checkable
class Stateful(Protocol):
    """A layer carrying dynamic state between calls, e.g. recurrent layers."""

    dynamic_parameters: dict[str, DynamicParameter]

    def compute_state(self, X: Tensor, Z: Tensor, memory: Memory, propagate_state: bool) -> list[Tensor]:
        ...

    def update_state(self, state: list[Tensor]) -> None:
        ...

    def initialize_dynamic_parameters(self, dtype: torch.dtype = torch.float32) -> Any:
        ...
