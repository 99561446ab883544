"""Concatenation along the channel dimension."""
from __future__ import annotations

from typing import ClassVar

from layerkit.config.layer import ConcatenationLayerConfig, DepthConcatenationLayerConfig, LayerType
from layerkit.layer.concatenation import ConcatenationLayer

CHANNEL_AXIS = 3


class DepthConcatenationLayer(ConcatenationLayer):
    """Stacks image inputs of equal height and width along channels."""

    default_name: ClassVar[str] = "depthcat"

    def __init__(self, config: DepthConcatenationLayerConfig) -> None:
        super().__init__(
            ConcatenationLayerConfig(
                type=LayerType.CONCATENATION,
                name=config.name,
                axis=CHANNEL_AXIS,
                num_inputs=config.num_inputs,
            )
        )
        self.config = config
