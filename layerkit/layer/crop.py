"""2-D crop layer."""
from __future__ import annotations

from typing import ClassVar, Sequence

import torch
from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import Crop2DLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import Layer, SizeArg
from layerkit.shape import Size, format_size, is_valid_size
from layerkit.strategy import Gradients, Memory


class Crop2DLayer(Layer):
    """Crops `in` to the height and width of `ref`.

    The window is centred for `location="centercrop"`; otherwise `location`
    is the 0-based (x, y) offset of its top-left corner.
    """

    default_name: ClassVar[str] = "crop"
    input_names: ClassVar[Sequence[str]] = ("in", "ref")
    is_image_specific = True

    def __init__(self, config: Crop2DLayerConfig) -> None:
        super().__init__(config)
        self.location = config.location

    def _offset(self, size: Size, ref: Size) -> tuple[int, int]:
        """(row, column) of the crop window's top-left corner."""
        if self.location == "centercrop":
            return ((size[0] - ref[0]) // 2, (size[1] - ref[1]) // 2)
        x, y = self.location
        return (y, x)

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not isinstance(input_size, list) or len(input_size) != 2:
            raise LayerSizeError("crop takes the in and ref inputs")
        size, ref = input_size
        for port, s in zip(self.input_names, input_size):
            if not is_valid_size(s) or len(s) != 3:
                raise LayerSizeError(f"input '{port}' must be an H×W×C size, got {format_size(s)}")
        top, left = self._offset(size, ref)
        if top < 0 or left < 0 or top + ref[0] > size[0] or left + ref[1] > size[1]:
            raise LayerSizeError(
                f"a {ref[0]}×{ref[1]} window at ({left}, {top}) does not fit in the "
                f"input of size {format_size(size)}"
            )

    @override
    def forward_propagate_size(self, input_size: SizeArg) -> SizeArg:
        self.check_input_size(input_size)
        size, ref = input_size
        return (ref[0], ref[1], size[2])

    @override
    def forward(self, X: list[Tensor]) -> tuple[Tensor, Memory]:
        image, ref = X
        h, w = ref.shape[1], ref.shape[2]
        top, left = self._offset(tuple(image.shape[1:]), (h, w))
        return image[:, top : top + h, left : left + w, :], (top, left)

    @override
    def backward(
        self, X: list[Tensor], Z: Tensor, dZ: Tensor, memory: Memory, *, need_weight_gradients: bool = True
    ) -> Gradients:
        image, ref = X
        top, left = memory
        dX = torch.zeros_like(image)
        dX[:, top : top + dZ.shape[1], left : left + dZ.shape[2], :] = dZ
        return [dX, torch.zeros_like(ref)], []
