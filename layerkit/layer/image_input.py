"""Image input layer with optional zero-centering and training augmentation.

Zero-centering subtracts an average image computed from the training data.
Augmentations only run in `forward` (training): `randfliplr` mirrors each
image left-right with probability one half and `randcrop` cuts a random
input-size window out of larger training images.
"""
from __future__ import annotations

from typing import ClassVar

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import ImageInputLayerConfig
from layerkit.errors import LayerSizeError, NotFinalizedError
from layerkit.layer import InputLayer, SizeArg
from layerkit.shape import Size, format_size, is_valid_size
from layerkit.strategy import Memory


class ImageInputLayer(InputLayer):
    """Feeds (N, H, W, C) images into the network."""

    default_name: ClassVar[str] = "imageinput"
    is_image_specific = True

    def __init__(self, config: ImageInputLayerConfig) -> None:
        super().__init__(config)
        self.config: ImageInputLayerConfig = config
        self.average_image: Tensor | None = None

    @property
    @override
    def input_size(self) -> Size:
        return tuple(self.config.input_size)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if tuple(input_size or ()) != self.input_size:
            raise LayerSizeError(
                f"image input expects {format_size(self.input_size)} images, "
                f"got {format_size(input_size)}"
            )

    def is_valid_training_image_size(self, image_size: Size) -> bool:
        """True when training images of `image_size` can feed this layer.

        With `randcrop`, training images may be larger than the input size
        and are cropped down; otherwise they must match it exactly.
        """
        if not is_valid_size(image_size) or len(image_size) != 3:
            return False
        if "randcrop" in self.config.augmentations:
            h, w, c = self.input_size
            return image_size[0] >= h and image_size[1] >= w and image_size[2] == c
        return tuple(image_size) == self.input_size

    def set_average_image(self, average: Tensor) -> None:
        if tuple(average.shape) != self.input_size:
            raise ValueError(
                f"average image must be {format_size(self.input_size)}, "
                f"got {format_size(tuple(average.shape))}"
            )
        self.average_image = average

    def compute_average_image(self, images: Tensor) -> Tensor:
        """Average (N, H, W, C) training images and keep the result."""
        self.set_average_image(images.mean(dim=0))
        return self.average_image  # type: ignore[return-value]

    def _normalize(self, X: Tensor) -> Tensor:
        if self.config.normalization != "zerocenter":
            return X
        if self.average_image is None:
            raise NotFinalizedError(
                f"Layer '{self.name}': zero-center normalization needs an average image."
            )
        return X - self.average_image.to(device=X.device, dtype=X.dtype)

    def _augment(self, X: Tensor) -> Tensor:
        if "randcrop" in self.config.augmentations:
            h, w, _ = self.input_size
            top = int(torch.randint(0, X.shape[1] - h + 1, ()))
            left = int(torch.randint(0, X.shape[2] - w + 1, ()))
            X = X[:, top : top + h, left : left + w, :]
        if "randfliplr" in self.config.augmentations:
            flip = torch.rand(X.shape[0], device=X.device) < 0.5
            X = torch.where(flip.view(-1, 1, 1, 1), X.flip(2), X)
        return X

    @override
    def predict(self, X: Tensor) -> Tensor:
        return self._normalize(X)

    @override
    def forward(self, X: Tensor) -> tuple[Tensor, Memory]:
        return self._normalize(self._augment(X)), None
