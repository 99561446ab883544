"""Cross-channel (local response) normalization layer."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import CrossChannelNormalizationLayerConfig
from layerkit.layer import Layer, SizeArg
from layerkit.layer.padding import check_image_size
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.normalization import (
    CrossChannelNormalizationAcceleratorStrategy,
    CrossChannelNormalizationHostStrategy,
)


class CrossChannelNormalizationLayer(Layer):
    """Divides each element by a power of the energy in nearby channels:

        Z = X / (k + alpha * S / window_channel_size) ** beta

    where S is the sum of squares over `window_channel_size` channels
    centred on the element's own channel.
    """

    default_name: ClassVar[str] = "crossnorm"
    is_image_specific = True
    strategies = {
        Backend.HOST: CrossChannelNormalizationHostStrategy,
        Backend.ACCELERATOR: CrossChannelNormalizationAcceleratorStrategy,
    }

    def __init__(self, config: CrossChannelNormalizationLayerConfig) -> None:
        super().__init__(config)
        self.window_channel_size = int(config.window_channel_size)
        self.alpha = float(config.alpha)
        self.beta = float(config.beta)
        self.k = float(config.k)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        check_image_size(input_size, "cross channel normalization")

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward(X, self.window_channel_size, self.alpha, self.beta, self.k)

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(
            X, Z, dZ, memory, self.window_channel_size, self.alpha, self.beta, self.k
        )
