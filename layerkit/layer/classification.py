"""Classification output layer with cross-entropy loss."""
from __future__ import annotations

from typing import ClassVar

from torch import Tensor
from typing_extensions import override

from layerkit.config.layer import ClassificationOutputLayerConfig
from layerkit.errors import LayerSizeError
from layerkit.layer import OutputLayer, SizeArg
from layerkit.shape import format_size, is_valid_size
from layerkit.strategy import bound_away_from_zero


class ClassificationOutputLayer(OutputLayer):
    """Cross-entropy between softmax probabilities Y and one-hot targets T.

    The loss is summed over classes (and time steps) and averaged over the
    observations of the mini-batch.
    """

    default_name: ClassVar[str] = "classoutput"
    is_classification = True

    def __init__(self, config: ClassificationOutputLayerConfig) -> None:
        super().__init__(config)
        self.config: ClassificationOutputLayerConfig = config
        self.classes = list(config.classes) if config.classes else None
        self.num_classes: int | None = config.num_classes
        if self.num_classes is None and self.classes is not None:
            self.num_classes = len(self.classes)

    @property
    @override
    def has_size_determined(self) -> bool:
        return self.num_classes is not None

    @override
    def check_input_size(self, input_size: SizeArg) -> None:
        if not is_valid_size(input_size) or len(input_size) not in (1, 3):
            raise LayerSizeError(f"invalid input size {format_size(input_size)}")
        if len(input_size) == 3 and tuple(input_size[:2]) != (1, 1):
            raise LayerSizeError(
                f"classification expects a 1×1×K input, got {format_size(input_size)}"
            )
        if self.num_classes is not None and input_size[-1] != self.num_classes:
            raise LayerSizeError(
                f"expected {self.num_classes} classes, got an input of size {format_size(input_size)}"
            )

    @override
    def infer_size(self, input_size: SizeArg) -> "ClassificationOutputLayer":
        if self.num_classes is None:
            self.num_classes = int(input_size[-1])
        return self

    @override
    def forward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        N = Y.shape[0]
        return -(T * bound_away_from_zero(Y).log()).sum() / N

    @override
    def backward_loss(self, Y: Tensor, T: Tensor) -> Tensor:
        N = Y.shape[0]
        return -(T / bound_away_from_zero(Y)) / N

    @override
    def to_config(self) -> ClassificationOutputLayerConfig:
        return self.config.model_copy(update={"name": self.name, "num_classes": self.num_classes})
