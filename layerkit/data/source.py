"""Mini-batch sources: where training and analysis get their data sizes.

Layers never inspect live data to learn their sizes. A source declares the
per-observation image size and the response size up front, and hands out
`(X, Y, indices)` mini-batches on request.
"""
from __future__ import annotations

import enum
from typing import Protocol, runtime_checkable

import torch
from torch import Tensor

from layerkit.data.labels import one_hot
from layerkit.runtime.precision import Precision
from layerkit.shape import Size


class EndOfEpoch(str, enum.Enum):
    """What happens to a last mini-batch smaller than the rest."""

    TRUNCATE_LAST = "truncateLast"
    DISCARD_LAST = "discardLast"


@runtime_checkable
class MiniBatchSource(Protocol):
    image_size: Size
    response_size: Size
    num_observations: int
    mini_batch_size: int

    @property
    def is_done(self) -> bool:
        ...

    def start(self) -> None:
        ...

    def shuffle(self) -> None:
        ...

    def next_batch(self) -> tuple[Tensor, Tensor | None, Tensor]:
        ...


class TensorMiniBatchSource:
    """Serves mini-batches from in-memory tensors.

    `data` is batch-first: (N, H, W, C) images or, with `sequence=True`,
    (N, T, C) sequences. `responses` holds either integer class labels of
    shape (N,), which are one-hot encoded for `num_classes` classes, or
    real-valued targets with the batch dimension first.
    """

    def __init__(
        self,
        data: Tensor,
        responses: Tensor | None = None,
        *,
        mini_batch_size: int = 128,
        num_classes: int | None = None,
        sequence: bool = False,
        end_of_epoch: EndOfEpoch | str = EndOfEpoch.TRUNCATE_LAST,
        precision: Precision | torch.dtype | str = torch.float32,
    ) -> None:
        if mini_batch_size <= 0:
            raise ValueError(f"mini_batch_size must be positive, got {mini_batch_size}")
        if responses is not None and responses.shape[0] != data.shape[0]:
            raise ValueError(
                f"data has {data.shape[0]} observations but responses have {responses.shape[0]}"
            )
        self.data = data
        self.responses = responses
        self.precision = Precision.of(precision)
        self.end_of_epoch = EndOfEpoch(end_of_epoch)
        self.sequence = sequence

        self.num_observations = int(data.shape[0])
        self.mini_batch_size = min(mini_batch_size, self.num_observations)
        self.image_size: Size = tuple(int(s) for s in data.shape[(2 if sequence else 1):])

        self.num_classes = num_classes
        if responses is not None and self._is_categorical and num_classes is None:
            self.num_classes = int(responses.max().item()) + 1
        self.response_size: Size = self._response_size()

        self._order = torch.arange(self.num_observations)
        self._start = 0
        self._done = self.num_observations == 0

    @property
    def _is_categorical(self) -> bool:
        return self.responses is not None and self.responses.dim() == 1 and not self.responses.is_floating_point()

    def _response_size(self) -> Size:
        if self.responses is None:
            return ()
        if self._is_categorical:
            return (int(self.num_classes or 0),)
        if self.responses.dim() == 1:
            return (1,)
        return tuple(int(s) for s in self.responses.shape[1:])

    @property
    def is_done(self) -> bool:
        return self._done

    def start(self) -> None:
        self._start = 0
        self._done = self.num_observations == 0

    def shuffle(self) -> None:
        self._order = torch.randperm(self.num_observations)

    def _read(self, indices: Tensor) -> tuple[Tensor, Tensor | None]:
        X = self.precision.cast(self.data[indices])
        if self.responses is None:
            return X, None
        if self._is_categorical:
            return X, self.precision.cast(one_hot(self.responses[indices], int(self.num_classes or 0)))
        Y = self.responses[indices]
        if Y.dim() == 1:
            Y = Y.unsqueeze(1)
        return X, self.precision.cast(Y)

    def next_batch(self) -> tuple[Tensor, Tensor | None, Tensor]:
        """The next `(X, Y, indices)`; sets `is_done` after the last batch."""
        if self._done:
            raise RuntimeError("no mini-batches left; call start() for a new epoch")
        end = min(self._start + self.mini_batch_size, self.num_observations)
        indices = self._order[self._start:end]
        X, Y = self._read(indices)

        self._start = end
        remaining = self.num_observations - end
        if remaining == 0:
            self._done = True
        elif remaining < self.mini_batch_size and self.end_of_epoch is EndOfEpoch.DISCARD_LAST:
            self._done = True
        return X, Y, indices

    def observations(self, indices: Tensor) -> tuple[Tensor, Tensor | None]:
        """Read specific observations by position in the current order."""
        return self._read(self._order[indices])
