"""Element-wise addition of several inputs."""
from __future__ import annotations

from typing import ClassVar, Sequence

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import AdditionLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import Gradients, Memory


class AdditionLayer(Layer):
    """Sums `num_inputs` inputs of identical size; ports are in1..inN."""

    default_name: ClassVar[str] = "addition"

    def __init__(self, config: AdditionLayerConfig) -> None:
        super().__init__(config)
        self.num_inputs_ = config.num_inputs

    @property  # type: ignore[override]
    def input_names(self) -> Sequence[str]:
        return tuple(f"in{i}" for i in range(1, self.num_inputs_ + 1))

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not isinstance(input_size, list) or len(input_size) != self.num_inputs_:
            raise LayerSizeError(f"addition expects {self.num_inputs_} inputs")
        first = input_size[0]
        for port, size in zip(self.input_names, input_size):
            if not is_valid_size(size):
                raise LayerSizeError(f"input '{port}' has invalid size {format_size(size)}")
            if tuple(size) != tuple(first):
                raise LayerSizeError(
                    "all inputs must have the same size; got "
                    + ", ".join(format_size(s) for s in input_size)
                )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        return tuple(input_size[0])

    @override
    def forward(self, X: list[Tensor]) -> tuple[Tensor, Memory]:
        Z = X[0]
        for Xi in X[1:]:
            Z = Z + Xi
        return Z, None

    @override
    def backward(
        self, X: list[Tensor], Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return [dZ] * len(X), []
