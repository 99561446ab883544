"""Sequence input layer."""
from __future__ import annotations

from typing import ClassVar

from typing_extensions import override

from layerkit.config.layer import SequenceInputLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import InputLayer, SizeArg
from layerkit.shape import Size, format_size


class SequenceInputLayer(InputLayer):
    """Feeds (N, T, C) sequences into the network."""

    default_name: ClassVar[str] = "sequenceinput"
    is_sequence_specific = True

    def __init__(self, config: SequenceInputLayerConfig) -> None:
        super().__init__(config)
        self.config: SequenceInputLayerConfig = config

    @property
    @override
    def input_size(self) -> Size:
        return (self.config.input_size,)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if tuple(input_size or ()) != self.input_size:
            raise LayerSizeError(
                f"sequence input expects {self.config.input_size} features, "
                f"got {format_size(input_size)}"
            )
