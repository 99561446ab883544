"""Dropout layer for regularization during training.

Dropout zeroes each element with probability `probability` during
training and rescales the survivors so the expected activation is
unchanged. Prediction passes data through untouched.
"""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import DropoutLayerConfig
from layerkit.layer import Layer
from layerkit.strategy import Gradients, Memory


class DropoutLayer(Layer):
    """Inverted dropout; the scaled mask is kept as memory for backward."""

    default_name: ClassVar[str] = "dropout"

    def __init__(self, config: DropoutLayerConfig) -> None:
        super().__init__(config)
        self.probability = float(config.probability)

    @override
    def predict(self, X: Tensor) -> Tensor:
        return X

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        mask = (torch.rand_like(X) > self.probability).to(X.dtype) / (1 - self.probability)
        return X * mask, mask

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return dZ * memory, []
