"""Test adapters running user-authored layers."""
from __future__ import annotations

from typing import Any

import pytest
import torch
from torch import Tensor

from layerkit.custom import (
    CustomClassificationLayer,
    CustomLayer,
    UserClassificationLayer,
    UserLayer,
    probe_data,
    wrap_user_layer,
)
from layerkit.errors import BackwardErrored, BackwardLossErrored, CustomLayerVerificationError, LayerSizeError


class ScaleLayer(UserLayer):
    def __init__(self, channels: int = 3, name: str = "") -> None:
        super().__init__(name)
        self.declare_parameter("Alpha", torch.full((channels,), 2.0), learn_rate_factor=0.5)

    def predict(self, X: Tensor) -> Tensor:
        return X * self.Alpha

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Any) -> tuple[Tensor, Tensor]:
        dims = tuple(range(X.dim() - 1))
        return dZ * self.Alpha, (dZ * X).sum(dim=dims)


class FirstObservationOnly(UserLayer):
    def predict(self, X: Tensor) -> Tensor:
        return X[:1]

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Any) -> Tensor:
        return dZ


class BrokenBackward(UserLayer):
    def predict(self, X: Tensor) -> Tensor:
        return X

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Any) -> Tensor:
        raise RuntimeError("boom")


class SquaredLoss(UserClassificationLayer):
    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        return ((Y - T) ** 2).sum() / Y.shape[0]

    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        raise ValueError("not differentiable today")


def test_wrap_dispatches_by_kind() -> None:
    assert isinstance(wrap_user_layer(ScaleLayer()), CustomLayer)
    assert isinstance(wrap_user_layer(SquaredLoss()), CustomClassificationLayer)
    with pytest.raises(TypeError):
        wrap_user_layer(object())


def test_parameters_and_name_follow_the_user_layer() -> None:
    layer = CustomLayer(ScaleLayer(name="scale"))
    assert layer.is_custom
    assert layer.name == "scale"
    layer.name = "renamed"
    assert layer.user_layer.name == "renamed"
    assert list(layer.parameters) == ["Alpha"]
    assert layer.parameters["Alpha"].learn_rate_factor == 0.5
    assert layer.to_config().target.endswith(":ScaleLayer")


def test_forward_backward_through_adapter() -> None:
    layer = CustomLayer(ScaleLayer())
    X = torch.ones(4, 2, 2, 3)
    Z, memory = layer.forward(X)
    assert torch.equal(Z, torch.full_like(X, 2.0))
    dX, dW = layer.backward(X, Z, torch.ones_like(Z), memory)
    assert torch.equal(dX, torch.full_like(X, 2.0))
    assert torch.equal(dW[0], torch.full((3,), 16.0))
    _, none = layer.backward(X, Z, torch.ones_like(Z), memory, need_weight_gradients=False)
    assert none == []


def test_parameter_updates_reach_user_code() -> None:
    layer = CustomLayer(ScaleLayer())
    layer.parameters["Alpha"].value = torch.zeros(3)
    assert torch.equal(layer.predict(torch.ones(1, 3)), torch.zeros(1, 3))


def test_size_propagation_by_probing() -> None:
    layer = CustomLayer(ScaleLayer())
    assert layer.forward_propagate_size((5, 5, 3)) == (5, 5, 3)
    with pytest.raises(LayerSizeError):
        layer.check_input_size((5, 5, 4))


def test_mini_batch_probe_catches_batch_bugs() -> None:
    layer = CustomLayer(FirstObservationOnly())
    layer.probe((3,), batch_size=1)
    with pytest.raises(CustomLayerVerificationError) as excinfo:
        layer.probe((3,), batch_size=5)
    assert excinfo.value.id == "WrongSizeOfdLdX"


def test_user_exceptions_are_wrapped() -> None:
    layer = CustomLayer(BrokenBackward(name="broken"))
    X = torch.ones(2, 3)
    with pytest.raises(BackwardErrored) as excinfo:
        layer.backward(X, X, X, None)
    assert excinfo.value.layer_name == "broken"
    assert isinstance(excinfo.value.__cause__, RuntimeError)


def test_output_layer_loss_wrapping() -> None:
    layer = wrap_user_layer(SquaredLoss())
    Y = torch.ones(2, 4)
    torch.testing.assert_close(layer.forward_loss(Y, torch.zeros(2, 4)), torch.tensor(4.0))
    with pytest.raises(BackwardLossErrored):
        layer.backward_loss(Y, Y)


def test_sequence_data_keeps_time_dimension() -> None:
    assert probe_data((3,), 2, sequence_length=4).shape == (2, 4, 3)
    assert probe_data((3,), 2).shape == (2, 3)


def test_sequence_layer_sizes_exclude_time() -> None:
    layer = CustomLayer(ScaleLayer())
    layer.sequence_length = 4
    assert layer.forward_propagate_size((3,)) == (3,)
    layer.probe((3,), batch_size=5)
