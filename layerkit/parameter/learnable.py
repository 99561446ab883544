"""Learnable parameters: weights plus their per-parameter training factors.

Two representations exist. During training a parameter holds its tensor
directly so the optimizer can update it in place on whatever device it
lives on. During prediction the value is kept on the host and mirrored
to the accelerator through a CachedParameter, which is invalidated on every
write.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Sequence

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.parameter.cached import CachedParameter


class LearnableParameter(ABC):
    """Value plus learning-rate and L2 regularization multipliers."""

    learn_rate_factor: float
    l2_factor: float

    @property
    @abstractmethod
    def value(self) -> Tensor | None:
        ...

    @value.setter
    @abstractmethod
    def value(self, value: Tensor | None) -> None:
        ...

    @abstractmethod
    def move_to(self, device: str | torch.device | None) -> None:
        """Place the value for computation on `device` (None = host)."""

    @property
    def is_empty(self) -> bool:
        return self.value is None

    def to_dict(self) -> dict[str, Any]:
        """Plain-data form, with the value on the host."""
        value = self.value
        return {
            "value": None if value is None else value.detach().to("cpu"),
            "learn_rate_factor": self.learn_rate_factor,
            "l2_factor": self.l2_factor,
        }


class TrainingLearnableParameter(LearnableParameter):
    """Holds the tensor directly, wherever the trainer placed it."""

    def __init__(
        self,
        value: Tensor | None = None,
        *,
        learn_rate_factor: float = 1.0,
        l2_factor: float = 1.0,
    ) -> None:
        self._value = value
        self.learn_rate_factor = float(learn_rate_factor)
        self.l2_factor = float(l2_factor)

    @property
    @override
    def value(self) -> Tensor | None:
        return self._value

    @value.setter
    @override
    def value(self, value: Tensor | None) -> None:
        self._value = value

    @override
    def move_to(self, device: str | torch.device | None) -> None:
        if self._value is not None:
            self._value = self._value.to(device if device is not None else "cpu")

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TrainingLearnableParameter":
        return cls(
            data["value"],
            learn_rate_factor=data["learn_rate_factor"],
            l2_factor=data["l2_factor"],
        )


class PredictionLearnableParameter(LearnableParameter):
    """Host-resident value with a lazily populated device cache."""

    def __init__(
        self,
        value: Tensor | None = None,
        *,
        learn_rate_factor: float = 1.0,
        l2_factor: float = 1.0,
        device: str | torch.device | None = None,
    ) -> None:
        self.cache = CachedParameter(value, device=device)
        self.learn_rate_factor = float(learn_rate_factor)
        self.l2_factor = float(l2_factor)

    @property
    @override
    def value(self) -> Tensor | None:
        return self.cache.value

    @value.setter
    @override
    def value(self, value: Tensor | None) -> None:
        self.cache.set_value(value)

    @property
    def host_value(self) -> Tensor | None:
        return self.cache.host_value

    @property
    def use_device(self) -> bool:
        return self.cache.device is not None

    @override
    def move_to(self, device: str | torch.device | None) -> None:
        self.cache.move_to(device)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "PredictionLearnableParameter":
        return cls(
            data["value"],
            learn_rate_factor=data["learn_rate_factor"],
            l2_factor=data["l2_factor"],
        )


def convert_to_training(params: Sequence[LearnableParameter]) -> list[LearnableParameter]:
    """Swap every parameter to the training representation."""
    return [
        p if isinstance(p, TrainingLearnableParameter)
        else TrainingLearnableParameter.from_dict(p.to_dict())
        for p in params
    ]


def convert_to_prediction(params: Sequence[LearnableParameter]) -> list[LearnableParameter]:
    """Swap every parameter to the host-cached prediction representation."""
    return [
        p if isinstance(p, PredictionLearnableParameter)
        else PredictionLearnableParameter.from_dict(p.to_dict())
        for p in params
    ]
