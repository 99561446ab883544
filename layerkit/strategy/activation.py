"""Element-wise activation kernels: ReLU, leaky ReLU, clipped ReLU."""
from __future__ import annotations

import torch
import torch.nn.functional as F
from torch import Tensor

from layerkit.strategy import Backend, ExecutionStrategy, Gradients, Memory


class ReLUHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return torch.where(X > 0, X, torch.zeros_like(X)), None

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory) -> Gradients:
        return torch.where(X > 0, dZ, torch.zeros_like(dZ)), []


class ReLUAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return F.relu(X), None

    def backward(self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory) -> Gradients:
        return torch.ops.aten.threshold_backward(dZ, X, 0.0), []


class LeakyReLUHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor, scale: float) -> tuple[Tensor, Memory]:
        return torch.where(X > 0, X, X * scale), None

    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, scale: float
    ) -> Gradients:
        return torch.where(X > 0, dZ, dZ * scale), []


class LeakyReLUAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor, scale: float) -> tuple[Tensor, Memory]:
        return F.leaky_relu(X, scale), None

    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, scale: float
    ) -> Gradients:
        return torch.ops.aten.leaky_relu_backward(dZ, X, scale, False), []


class ClippedReLUHostStrategy(ExecutionStrategy):
    backend = Backend.HOST

    def forward(self, X: Tensor, ceiling: float) -> tuple[Tensor, Memory]:
        Z = torch.where(X > 0, X, torch.zeros_like(X))
        return torch.where(Z > ceiling, torch.full_like(Z, ceiling), Z), None

    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, ceiling: float
    ) -> Gradients:
        blocked = (X <= 0) | (X > ceiling)
        return torch.where(blocked, torch.zeros_like(dZ), dZ), []


class ClippedReLUAcceleratorStrategy(ExecutionStrategy):
    backend = Backend.ACCELERATOR

    def forward(self, X: Tensor, ceiling: float) -> tuple[Tensor, Memory]:
        return F.hardtanh(X, 0.0, ceiling), None

    def backward(
        self, X: Tensor, Z: Tensor, dZ: Tensor, memory: Memory, ceiling: float
    ) -> Gradients:
        # Inputs equal to the ceiling still pass gradient.
        dX = torch.ops.aten.threshold_backward(dZ, X, 0.0)
        return dX.masked_fill(X > ceiling, 0.0), []
