"""Base classes for user-authored layers.

Subclass UserLayer and implement `predict(X)`, optionally
`forward(X) -> (Z, memory)`, and `backward(X, Z, dZ, memory) -> (dX, *dWs)`.
Learnable parameters are registered explicitly in `__init__`:

    class ScaleLayer(UserLayer):
        def __init__(self, channels: int, name: str = "") -> None:
            super().__init__(name)
            self.declare_parameter("Alpha", torch.ones(channels))

        def predict(self, X: Tensor) -> Tensor:
            return X * self.Alpha

        def backward(self, X, Z, dZ, memory) -> tuple[Tensor, Tensor]:
            return dZ * self.Alpha, (dZ * X).sum(dim=tuple(range(X.dim() - 1)))

Output layers subclass UserClassificationLayer or UserRegressionLayer and
implement `forward_loss(Y, T)` and `backward_loss(Y, T)` instead.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from torch import Tensor


@dataclass
class DeclaredParameter:
    name: str
    learn_rate_factor: float = 1.0
    l2_factor: float = 1.0
    # the attribute cannot be assigned, e.g. a property without a setter
    constant: bool = False


def _is_read_only(cls: type, name: str) -> bool:
    attr = getattr(cls, name, None)
    return isinstance(attr, property) and attr.fset is None


class _UserLayerBase:
    def __init__(self, name: str = "", description: str = "") -> None:
        self.name = name
        self.description = description

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"


class UserLayer(_UserLayerBase):
    """A layer whose math is written by the user."""

    def __init__(self, name: str = "", description: str = "") -> None:
        super().__init__(name, description)
        self._declared: dict[str, DeclaredParameter] = {}

    def declare_parameter(
        self,
        name: str,
        initial_value: Tensor | None,
        *,
        learn_rate_factor: float = 1.0,
        l2_factor: float = 1.0,
    ) -> None:
        """Register attribute `name` as a learnable parameter."""
        if not name.isidentifier():
            raise ValueError(f"learnable parameter name must be an identifier, got {name!r}")
        constant = _is_read_only(type(self), name)
        self._declared[name] = DeclaredParameter(
            name, float(learn_rate_factor), float(l2_factor), constant
        )
        if not constant:
            setattr(self, name, initial_value)

    @property
    def declared_parameters(self) -> list[DeclaredParameter]:
        return list(self._declared.values())

    @property
    def learnable_parameter_names(self) -> list[str]:
        return list(self._declared)

    def get_learn_rate_factor(self, name: str) -> float:
        return self._declared[name].learn_rate_factor

    def set_learn_rate_factor(self, name: str, factor: float) -> None:
        self._declared[name].learn_rate_factor = float(factor)

    def get_l2_factor(self, name: str) -> float:
        return self._declared[name].l2_factor

    def set_l2_factor(self, name: str, factor: float) -> None:
        self._declared[name].l2_factor = float(factor)

    def predict(self, X: Tensor) -> Tensor:
        raise NotImplementedError(f"{type(self).__name__} must implement predict")

    def forward(self, X: Tensor) -> tuple[Tensor, Any]:
        """Training-time forward; defaults to predict with no memory."""
        return self.predict(X), None

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Any) -> Any:
        raise NotImplementedError(f"{type(self).__name__} must implement backward")


class UserOutputLayer(_UserLayerBase):
    """An output layer with a user-written loss."""

    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        raise NotImplementedError(f"{type(self).__name__} must implement forward_loss")

    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        raise NotImplementedError(f"{type(self).__name__} must implement backward_loss")


class UserClassificationLayer(UserOutputLayer):
    """Classification output; the network must end in a softmax."""


class UserRegressionLayer(UserOutputLayer):
    """Regression output."""


def is_forward_overridden(user_layer: object) -> bool:
    forward = getattr(type(user_layer), "forward", None)
    return forward is not None and forward is not UserLayer.forward
