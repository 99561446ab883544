"""Adapters that run user-authored layers behind the internal Layer API.

User code is never trusted: every call is wrapped so that an exception it
raises comes back as a UserCodeError naming the layer, and every value it
returns is checked by a CustomLayerVerifier. Sizes are found by running
ones-tensors through the layer rather than by analysis.
"""
from __future__ import annotations

import logging
from typing import Any, ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import CustomLayerConfig
from layerkit.custom.user import UserClassificationLayer, UserOutputLayer, UserRegressionLayer, is_forward_overridden
from layerkit.custom.verifier import CustomLayerVerifier
from layerkit.errors import (
    BackwardErrored,
    BackwardLossErrored,
    ForwardErrored,
    ForwardLossErrored,
    LayerkitError,
    LayerSizeError,
    PredictErrored,
)
from layerkit.layer import Layer, OutputLayer, SizeArg
from layerkit.parameter import PredictionLearnableParameter
from layerkit.runtime.precision import Precision
from layerkit.shape import Size, format_size, is_valid_size
from layerkit.strategy import Gradients, Memory

logger = logging.getLogger(__name__)


def _config_for(user_layer: object) -> CustomLayerConfig:
    cls = type(user_layer)
    return CustomLayerConfig(
        name=getattr(user_layer, "name", "") or "",
        target=f"{cls.__module__}:{cls.__qualname__}",
    )


# time steps of the sequences custom layers in sequence networks are run on
SIZING_SEQUENCE_LENGTH = 3


def probe_data(
    size: Size,
    batch_size: int = 1,
    dtype: torch.dtype = torch.float32,
    *,
    sequence_length: int | None = None,
) -> Tensor:
    """Ones-tensor holding `batch_size` observations of `size`.

    With a `sequence_length` every observation is a sequence: the tensor is
    (N, T, *size).
    """
    if sequence_length is None:
        return torch.ones((batch_size, *size), dtype=dtype)
    return torch.ones((batch_size, sequence_length, *size), dtype=dtype)


class _UserLayerAdapter:
    """Name and config plumbing shared by the adapters."""

    user_layer: Any
    is_custom = True
    # set by the analyzer when the network's input layer reads sequences
    sequence_length: int | None = None

    @property
    def name(self) -> str:
        return getattr(self.user_layer, "name", "") or ""

    @name.setter
    def name(self, value: str) -> None:
        self.user_layer.name = value

    @property
    def layer_class(self) -> str:
        return type(self.user_layer).__name__

    def _ones(self, input_size: Size, batch_size: int = 1) -> Tensor:
        return probe_data(input_size, batch_size, sequence_length=self.sequence_length)


class CustomLayer(_UserLayerAdapter, Layer):
    """Wraps a UserLayer."""

    default_name: ClassVar[str] = "layer"

    def __init__(self, user_layer: Any, verifier: CustomLayerVerifier | None = None) -> None:
        self.user_layer = user_layer
        super().__init__(_config_for(user_layer))
        declared_parameters = getattr(user_layer, "declared_parameters", [])
        self._read_only = {d.name for d in declared_parameters if d.constant}
        for declared in declared_parameters:
            self.parameters[declared.name] = PredictionLearnableParameter(
                getattr(user_layer, declared.name, None),
                learn_rate_factor=declared.learn_rate_factor,
                l2_factor=declared.l2_factor,
            )
        self.verifier = verifier or CustomLayerVerifier(self.layer_class, list(self.parameters))
        self.verifier.layer_class = self.layer_class
        self.verifier.parameter_names = list(self.parameters)
        self.is_forward_defined = is_forward_overridden(user_layer)

    def _push_parameters(self) -> None:
        # user code reads its parameters as plain attributes
        for name, param in self.parameters.items():
            if name not in self._read_only:
                setattr(self.user_layer, name, param.value)

    @override
    def initialize_learnable_parameters(self, dtype: torch.dtype = torch.float32) -> "CustomLayer":
        precision = Precision.of(dtype)
        for param in self.parameters.values():
            if param.value is not None:
                param.value = precision.cast(param.value)
        self._push_parameters()
        return self

    @override
    def predict(self, X: Tensor) -> Tensor:
        self._push_parameters()
        try:
            Z = self.user_layer.predict(X)
        except Exception as e:
            raise PredictErrored(self.name or self.layer_class, e) from e
        self.verifier.verify_predict_type(X, Z)
        return Z

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        self._push_parameters()
        error = ForwardErrored if self.is_forward_defined else PredictErrored
        try:
            Z, memory = self.user_layer.forward(X)
        except Exception as e:
            raise error(self.name or self.layer_class, e) from e
        if self.is_forward_defined:
            self.verifier.verify_forward_type(X, Z)
        else:
            self.verifier.verify_predict_type(X, Z)
        return Z, memory

    @override
    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        self._push_parameters()
        try:
            result = self.user_layer.backward(X, Z, dZ, memory)
        except Exception as e:
            raise BackwardErrored(self.name or self.layer_class, e) from e
        if isinstance(result, tuple):
            dX, dW = result[0], list(result[1:])
        else:
            dX, dW = result, []
        values = [p.value for p in self.parameters.values()]
        if need_weight_gradients:
            self.verifier.verify_backward_size(X, values, dX, dW)
            self.verifier.verify_backward_type(X, dX, dW)
            return dX, dW
        self.verifier.verify_backward_size(X, values, dX)
        self.verifier.verify_backward_type(X, dX)
        return dX, []

    def probe(self, input_size: Size, batch_size: int = 1) -> Tensor:
        """Run predict, forward and backward on ones; returns forward's output."""
        self.initialize_learnable_parameters()
        X = self._ones(input_size, batch_size)
        self.predict(X)
        Z, memory = self.forward(X)
        self.backward(X, Z, torch.ones_like(Z), memory)
        return Z

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")
        try:
            self.probe(input_size)
        except LayerkitError as e:
            raise LayerSizeError(str(e)) from e

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        if not is_valid_size(input_size):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")
        self.initialize_learnable_parameters()
        Z, _ = self.forward(self._ones(input_size))
        # sequence outputs keep their time dimension after the batch one
        observation_dims = 2 if self.sequence_length is not None and Z.dim() > 2 else 1
        size = tuple(int(s) for s in Z.shape[observation_dims:])
        logger.debug("custom layer %s maps %s to %s", self.name, input_size, size)
        return size

    @override
    def to_config(self) -> CustomLayerConfig:
        return _config_for(self.user_layer)


class _CustomOutputLayer(_UserLayerAdapter, OutputLayer):
    def __init__(self, user_layer: UserOutputLayer, verifier: CustomLayerVerifier | None = None) -> None:
        self.user_layer = user_layer
        super().__init__(_config_for(user_layer))
        self.verifier = verifier or CustomLayerVerifier(self.layer_class)
        self.verifier.layer_class = self.layer_class

    @override
    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        try:
            loss = self.user_layer.forward_loss(Y, T)
        except Exception as e:
            raise ForwardLossErrored(self.name or self.layer_class, e) from e
        self.verifier.verify_forward_loss(Y, loss)
        return loss

    @override
    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        try:
            dX = self.user_layer.backward_loss(Y, T)
        except Exception as e:
            raise BackwardLossErrored(self.name or self.layer_class, e) from e
        self.verifier.verify_backward_loss(Y, dX)
        return dX

    def probe(self, input_size: Size, batch_size: int = 1) -> None:
        Y = self._ones(input_size, batch_size)
        T = self._ones(input_size, batch_size)
        self.forward_loss(Y, T)
        self.backward_loss(Y, T)

    @override
    def to_config(self) -> CustomLayerConfig:
        return _config_for(self.user_layer)


class CustomClassificationLayer(_CustomOutputLayer):
    """Wraps a UserClassificationLayer."""

    default_name: ClassVar[str] = "classoutput"
    is_classification = True


class CustomRegressionLayer(_CustomOutputLayer):
    """Wraps a UserRegressionLayer."""

    default_name: ClassVar[str] = "regressionoutput"
    is_regression = True


def wrap_user_layer(user_layer: Any) -> Layer:
    """Internal adapter for a user-authored layer object."""
    if isinstance(user_layer, UserClassificationLayer):
        return CustomClassificationLayer(user_layer)
    if isinstance(user_layer, UserRegressionLayer):
        return CustomRegressionLayer(user_layer)
    if callable(getattr(user_layer, "predict", None)) and callable(getattr(user_layer, "backward", None)):
        return CustomLayer(user_layer)
    raise TypeError(
        f"{type(user_layer).__name__} is not a layer: subclass UserLayer, "
        "UserClassificationLayer or UserRegressionLayer"
    )
