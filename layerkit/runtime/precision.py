"""Numeric precision used for parameters and probe data."""

from __future__ import annotations

from dataclasses import dataclass

import torch
from torch import Tensor


@dataclass(frozen=True)
class Precision:
    """Casts tensors to one floating dtype and creates tensors in it."""

    dtype: torch.dtype = torch.float32

    @classmethod
    def of(cls, value: "Precision | torch.dtype | str") -> "Precision":
        if isinstance(value, Precision):
            return value
        if isinstance(value, str):
            if value not in ("single", "double", "half", "float32", "float64", "float16"):
                raise ValueError(f"unknown precision {value!r}")
            value = {
                "single": torch.float32,
                "double": torch.float64,
                "half": torch.float16,
            }.get(value) or getattr(torch, value)
        return cls(dtype=value)

    def cast(self, value: Tensor) -> Tensor:
        return value.to(self.dtype)

    def zeros(self, *shape: int) -> Tensor:
        return torch.zeros(shape, dtype=self.dtype)

    def ones(self, *shape: int) -> Tensor:
        return torch.ones(shape, dtype=self.dtype)

    def gaussian(self, *shape: int, std: float = 0.01) -> Tensor:
        """Normally distributed values with zero mean."""
        return torch.randn(shape, dtype=self.dtype) * std
