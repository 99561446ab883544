"""Data the core consumes: mini-batch sources and label encoding."""
from __future__ import annotations

from layerkit.data.labels import labels_from_scores, one_hot
from layerkit.data.source import EndOfEpoch, MiniBatchSource, TensorMiniBatchSource

__all__ = [
    "EndOfEpoch",
    "MiniBatchSource",
    "TensorMiniBatchSource",
    "labels_from_scores",
    "one_hot",
]
