"""Batch normalization layer.

Training normalizes with the statistics of the current mini-batch. After
training the layer is finalized: per-batch statistics are accumulated into
a trained mean and variance, which prediction then uses. Finalized copies
trained on disjoint data can be merged in any order.
"""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import BatchNormalizationLayerConfig
from layerkit.errors import LayerSizeError, NotFinalizedError
from layerkit.layer import Layer, SizeArg
from layerkit.runtime.precision import Precision
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import Backend, Gradients, Memory
from layerkit.strategy.normalization import (
    BatchNormalizationAcceleratorStrategy,
    BatchNormalizationHostStrategy,
    BatchStatistics,
    merge_statistics,
)


class BatchNormalizationLayer(Layer):
    """Normalizes each channel, then applies a learnable scale and offset."""

    default_name: ClassVar[str] = "batchnorm"
    strategies = {
        Backend.HOST: BatchNormalizationHostStrategy,
        Backend.ACCELERATOR: BatchNormalizationAcceleratorStrategy,
    }

    def __init__(self, config: BatchNormalizationLayerConfig) -> None:
        super().__init__(config)
        self.config: BatchNormalizationLayerConfig = config
        self.num_channels: int | None = config.num_channels
        self.epsilon = float(config.epsilon)
        self.trained_mean: Tensor | None = None
        self.trained_variance: Tensor | None = None
        self.num_observations = 0
        self.add_parameter(
            "Offset",
            learn_rate_factor=config.offset_learn_rate_factor,
            l2_factor=config.offset_l2_factor,
        )
        self.add_parameter(
            "Scale",
            learn_rate_factor=config.scale_learn_rate_factor,
            l2_factor=config.scale_l2_factor,
        )

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.num_channels is not None

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")
        if self.num_channels is not None and input_size[-1] != self.num_channels:
            raise LayerSizeError(
                f"expected input with {self.num_channels} channels, got {input_size[-1]}"
            )

    @override
    def infer_size(self, input_size: SizeArg) -> "BatchNormalizationLayer":
        if self.num_channels is None:
            self.num_channels = int(input_size[-1])
        return self

    @override
    def initialize_learnable_parameters(
        self, dtype: torch.dtype = torch.float32
    ) -> "BatchNormalizationLayer":
        precision = Precision.of(dtype)
        if self.num_channels is None:
            raise RuntimeError(f"Layer '{self.name}': number of channels is not known yet.")
        offset, scale = self.parameters["Offset"], self.parameters["Scale"]
        offset.value = precision.zeros(self.num_channels) if offset.value is None else precision.cast(offset.value)
        scale.value = precision.ones(self.num_channels) if scale.value is None else precision.cast(scale.value)
        return self

    @property
    def is_finalized(self) -> bool:
        return self.trained_mean is not None

    @override
    def predict(self, X: Tensor) -> Tensor:
        if self.trained_mean is None or self.trained_variance is None:
            raise NotFinalizedError(
                f"Layer '{self.name}': batch normalization statistics have not been "
                "computed; finalize the layer after training."
            )
        return self.strategy.forward_predict(
            X,
            self.parameter_value("Offset"),
            self.parameter_value("Scale"),
            self.epsilon,
            self.trained_mean.to(X.device, X.dtype),
            self.trained_variance.to(X.device, X.dtype),
        )

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self.strategy.forward_train(
            X, self.parameter_value("Offset"), self.parameter_value("Scale"), self.epsilon
        )

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        return self.strategy.backward(
            X,
            Z,
            dZ,
            memory,
            self.parameter_value("Scale"),
            self.epsilon,
            need_weight_gradients=need_weight_gradients,
        )

    def finalize(self, X: Tensor, Z: Tensor, memory: Memory) -> "BatchNormalizationLayer":
        """Fold the statistics of one mini-batch into the trained statistics."""
        stats: BatchStatistics = memory
        n = X.numel() // X.shape[-1]
        mean = stats.mean.detach().to("cpu")
        var = stats.variance(self.epsilon).detach().to("cpu")
        self._merge(mean, var, n)
        return self

    def merge_finalized(self, other: "BatchNormalizationLayer") -> "BatchNormalizationLayer":
        """Combine with a copy finalized on different data."""
        if other.trained_mean is not None and other.trained_variance is not None:
            self._merge(other.trained_mean, other.trained_variance, other.num_observations)
        return self

    def _merge(self, mean: Tensor, var: Tensor, n: int) -> None:
        if self.trained_mean is None or self.trained_variance is None:
            self.trained_mean, self.trained_variance, self.num_observations = mean, var, n
            return
        self.trained_mean, self.trained_variance, self.num_observations = merge_statistics(
            self.trained_mean, self.trained_variance, self.num_observations, mean, var, n
        )

    @override
    def to_config(self) -> BatchNormalizationLayerConfig:
        return self.config.model_copy(update={"name": self.name, "num_channels": self.num_channels})
