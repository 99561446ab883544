"""Per-layer analysis state: ports, connections and propagated sizes."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any

from layerkit.layer import Layer
from layerkit.shape import Size, format_size, is_valid_size

logger = logging.getLogger(__name__)


@dataclass
class Port:
    """One input or output port of an analyzed layer.

    `connections` holds the names of the ports at the other end, as
    written in the graph (`layer` or `layer/port`).
    """

    name: str
    size: Size | None = None
    connections: list[str] = field(default_factory=list)

    @property
    def is_connected(self) -> bool:
        return bool(self.connections)


class LayerAnalyzer:
    """Wraps one layer during a NetworkAnalyzer run."""

    def __init__(self, layer: Layer, original_index: int) -> None:
        self.layer = layer
        self.original_index = original_index
        self.original_name: str = layer.name
        self.inputs = [Port(name) for name in layer.input_names]
        self.outputs = [Port(name) for name in layer.output_names]
        self.size_error: BaseException | None = None

    def __repr__(self) -> str:
        return f"LayerAnalyzer({self.display_name}, {self.type})"

    @property
    def name(self) -> str:
        return self.layer.name

    @name.setter
    def name(self, value: str) -> None:
        self.layer.name = value

    @property
    def default_name(self) -> str:
        return self.layer.default_name

    @property
    def display_name(self) -> str:
        return f"'{self.name}'"

    @property
    def type(self) -> str:
        return type(self.layer).__name__

    @property
    def is_input_layer(self) -> bool:
        return self.layer.is_input_layer

    @property
    def is_output_layer(self) -> bool:
        return self.layer.is_output_layer

    @property
    def is_softmax_layer(self) -> bool:
        return self.layer.is_softmax

    @property
    def is_classification_layer(self) -> bool:
        return self.layer.is_classification

    @property
    def is_regression_layer(self) -> bool:
        return self.layer.is_regression

    @property
    def is_rnn_layer(self) -> bool:
        return self.layer.is_rnn

    @property
    def is_sequence_specific_layer(self) -> bool:
        return self.layer.is_sequence_specific

    @property
    def is_image_specific_layer(self) -> bool:
        return self.layer.is_image_specific

    @property
    def is_custom_layer(self) -> bool:
        return self.layer.is_custom

    # Sizes

    @property
    def input_sizes(self) -> list[Size | None]:
        return [port.size for port in self.inputs]

    @property
    def output_sizes(self) -> list[Size | None]:
        return [port.size for port in self.outputs]

    @property
    def input_size_argument(self) -> Any:
        """Input sizes in the form the layer's size methods take."""
        sizes = self.input_sizes
        if not sizes:
            return None
        if len(sizes) == 1:
            return sizes[0]
        return sizes

    @property
    def has_invalid_input_size(self) -> bool:
        return any(not is_valid_size(size) for size in self.input_sizes)

    @property
    def has_invalid_output_size(self) -> bool:
        if self.size_error is not None:
            return True
        return any(not is_valid_size(size) for size in self.output_sizes)

    def propagate(self) -> None:
        """Fill output sizes from the current input sizes.

        A layer that cannot produce an output size gets None on every
        output port instead of raising, so later layers are still visited.
        """
        self.size_error = None
        for port in self.outputs:
            port.size = None

        if self.is_input_layer:
            arg = None
        elif self.has_invalid_input_size:
            self.size_error = ValueError("invalid input size")
            return
        else:
            arg = self.input_size_argument

        try:
            if arg is not None:
                self.layer.infer_size(arg)
            result = self.layer.forward_propagate_size(arg)
        except Exception as e:
            # reported later by the propagation rules
            logger.debug("size propagation failed for %s: %s", self.display_name, e)
            self.size_error = e
            return

        if not self.outputs:
            return
        sizes = [result] if len(self.outputs) == 1 else list(result)
        for port, size in zip(self.outputs, sizes):
            port.size = tuple(size) if size is not None else None

    def describe_sizes(self) -> tuple[str, str]:
        """Input and output sizes rendered for tables."""
        inputs = ", ".join(format_size(s) for s in self.input_sizes) or "-"
        outputs = ", ".join(format_size(s) for s in self.output_sizes) or "-"
        return inputs, outputs
