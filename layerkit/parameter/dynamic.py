"""
dynamic provides state that changes while data flows, like recurrent states.
"""
from __future__ import annotations

from typing import Any

import torch
from torch import Tensor


class DynamicParameter:
    """
    DynamicParameter holds a state value and whether it carries across calls.

    When `remember` is False the owning layer resets the value to its
    initial state between sequences.
    """

    def __init__(self, value: Tensor | None = None, *, remember: bool = False) -> None:
        self.value = value
        self.remember = bool(remember)

    def move_to(self, device: str | torch.device | None) -> None:
        if self.value is not None:
            self.value = self.value.to(device if device is not None else "cpu")

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": None if self.value is None else self.value.detach().to("cpu"),
            "remember": self.remember,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DynamicParameter":
        return cls(data["value"], remember=data["remember"])
