"""Bidirectional long short-term memory layer."""
from __future__ import annotations

from typing import ClassVar

from layerkit.config.layer import BiLSTMLayerConfig
from layerkit.layer.lstm import LSTMLayer
from layerkit.strategy import Backend
from layerkit.strategy.lstm import BiLSTMAcceleratorStrategy, BiLSTMHostStrategy


class BiLSTMLayer(LSTMLayer):
    """Runs one LSTM forward and one backward in time and concatenates them.

    Parameters and states stack the forward direction first; outputs have
    2 * hidden_size features.
    """

    default_name: ClassVar[str] = "bilstm"
    num_directions: ClassVar[int] = 2
    strategies = {Backend.HOST: BiLSTMHostStrategy, Backend.ACCELERATOR: BiLSTMAcceleratorStrategy}

    def __init__(self, config: BiLSTMLayerConfig) -> None:
        super().__init__(config)
