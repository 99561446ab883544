"""Execution strategies: the numeric kernels behind every layer.

Each numerically distinct operation has a host strategy and an accelerator
strategy. Host strategies spell the math out with plain tensor arithmetic;
accelerator strategies call fused torch primitives. Both must agree up to
floating-point reassociation, which is what lets them be swapped freely.

A layer does not mutate itself to change strategy. It records a Placement
and looks its strategy up from the placement's backend on every call.
"""
from __future__ import annotations

import enum
from abc import ABC
from dataclasses import dataclass, field
from typing import Any

import torch
from torch import Tensor

# Whatever forward computed that backward needs again
Memory = Any
Gradients = tuple[Tensor, list[Tensor]]


class Backend(str, enum.Enum):
    """Where layer kernels run."""

    HOST = "host"
    ACCELERATOR = "accelerator"


class Mode(str, enum.Enum):
    """Whether layers are being trained or used for prediction."""

    TRAINING = "training"
    PREDICTION = "prediction"


@dataclass(frozen=True, slots=True)
class Placement:
    """Backend, mode and device a layer computes with."""

    backend: Backend = Backend.HOST
    mode: Mode = Mode.PREDICTION
    device: torch.device = field(default_factory=lambda: torch.device("cpu"))

    @classmethod
    def host(cls, mode: Mode = Mode.PREDICTION) -> "Placement":
        return cls(backend=Backend.HOST, mode=mode)

    @classmethod
    def accelerator(
        cls, mode: Mode = Mode.PREDICTION, device: str | torch.device | None = None
    ) -> "Placement":
        if device is None:
            device = "cuda" if torch.cuda.is_available() else "cpu"
        return cls(backend=Backend.ACCELERATOR, mode=mode, device=torch.device(device))

    @property
    def is_training(self) -> bool:
        return self.mode is Mode.TRAINING

    @property
    def parameter_device(self) -> torch.device | None:
        """Device for parameter values, None when they stay on the host."""
        if self.backend is Backend.HOST:
            return None
        return self.device


class ExecutionStrategy(ABC):
    """Base class for forward/backward kernels.

    Concrete strategies implement `forward(X, *params) -> (Z, memory)` and
    `backward(X, Z, dZ, memory, *params, need_weight_gradients=True)
    -> (dX, dW)`. `memory` carries values from forward that backward reuses;
    `dW` is an empty list when the op has no parameters or when weight
    gradients were not requested.
    """

    backend: Backend = Backend.HOST

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


def bound_away_from_zero(x: Tensor) -> Tensor:
    """Clamp values below machine epsilon up to epsilon.

    Keeps divisions and logarithms of probabilities finite.
    """
    eps = torch.finfo(x.dtype).eps
    return x.clamp_min(eps)
