"""Class label encoding for classification responses."""
from __future__ import annotations

from typing import Sequence

import torch
from torch import Tensor


def one_hot(labels: Tensor, num_classes: int) -> Tensor:
    """(N,) integer labels to an (N, num_classes) float indicator matrix."""
    labels = labels.reshape(-1).long()
    if labels.numel() and (labels.min() < 0 or labels.max() >= num_classes):
        raise ValueError(f"labels must lie in [0, {num_classes}), got {int(labels.min())}..{int(labels.max())}")
    out = torch.zeros(labels.numel(), num_classes)
    out[torch.arange(labels.numel()), labels] = 1.0
    return out


def labels_from_scores(scores: Tensor, class_names: Sequence[str] | None = None) -> list[int] | list[str | None]:
    """Most likely class per row of (N, K) scores.

    Rows whose maximum is NaN have no label: None when `class_names` is
    given, -1 otherwise.
    """
    values, indices = scores.max(dim=1)
    missing = torch.isnan(values)
    if class_names is None:
        return [-1 if m else int(i) for i, m in zip(indices, missing)]
    return [None if m else class_names[int(i)] for i, m in zip(indices, missing)]
