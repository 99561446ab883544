"""Layer configuration with discriminated unions.

Each layer kind (convolution, pooling, recurrent, output, ...) has its own
config class. Pydantic's discriminated unions let a graph file say
`type: Convolution2DLayer` and get the right config class back; `build()`
then turns the config into the matching layer object.
"""
from __future__ import annotations

import enum
import importlib
from typing import TYPE_CHECKING, Annotated, Any, Literal, TypeAlias

from pydantic import AfterValidator, Field

from layerkit.config import (
    Config,
    NonNegativeFloat,
    NonNegativeInt,
    PositiveFloat,
    PositiveInt,
    PositivePair,
    Probability,
)

if TYPE_CHECKING:
    from layerkit.layer import Layer


class LayerType(str, enum.Enum):
    """Enumeration of layer kinds for type-safe config parsing.

    The member name is the module under `layerkit.layer` and the value is
    the class name inside it.
    """

    IMAGE_INPUT = "ImageInputLayer"
    SEQUENCE_INPUT = "SequenceInputLayer"
    CONVOLUTION = "Convolution2DLayer"
    TRANSPOSED_CONVOLUTION = "TransposedConvolution2DLayer"
    FULLY_CONNECTED = "FullyConnectedLayer"
    RELU = "ReLULayer"
    LEAKY_RELU = "LeakyReLULayer"
    CLIPPED_RELU = "ClippedReLULayer"
    BATCH_NORMALIZATION = "BatchNormalizationLayer"
    CROSS_CHANNEL_NORMALIZATION = "CrossChannelNormalizationLayer"
    MAX_POOLING = "MaxPooling2DLayer"
    AVERAGE_POOLING = "AveragePooling2DLayer"
    MAX_UNPOOLING = "MaxUnpooling2DLayer"
    DROPOUT = "DropoutLayer"
    SOFTMAX = "SoftmaxLayer"
    ADDITION = "AdditionLayer"
    CONCATENATION = "ConcatenationLayer"
    DEPTH_CONCATENATION = "DepthConcatenationLayer"
    CROP = "Crop2DLayer"
    LSTM = "LSTMLayer"
    BILSTM = "BiLSTMLayer"
    CLASSIFICATION = "ClassificationOutputLayer"
    REGRESSION = "RegressionOutputLayer"
    CUSTOM = "CustomLayer"

    @classmethod
    def from_str(cls, s: str) -> "LayerType":
        """Convert a string to a LayerType."""
        return cls(s)

    @staticmethod
    def module_name() -> str:
        """Return the Python module containing layer implementations."""
        return "layerkit.layer"


def _padding(value: object) -> str | tuple[int, int, int, int]:
    """Normalize padding into "same" or (top, bottom, left, right)."""
    if isinstance(value, str):
        if value.lower() != "same":
            raise ValueError(f"Validation failed: padding must be 'same' or ints, got {value!r}")
        return "same"
    if isinstance(value, int):
        values: tuple[int, ...] = (value,) * 4
    else:
        values = tuple(int(v) for v in value)  # type: ignore[union-attr]
        if len(values) == 2:
            values = (values[0], values[0], values[1], values[1])
    if len(values) != 4:
        raise ValueError(
            f"Validation failed: padding needs 1, 2 or 4 values, got {values!r}"
        )
    for v in values:
        Config.check_range(v, ge=0)
    return (values[0], values[1], values[2], values[3])


def _non_negative_pair(value: object) -> tuple[int, int]:
    if isinstance(value, int):
        pair = (value, value)
    else:
        pair = tuple(int(v) for v in value)  # type: ignore[union-attr]
    if len(pair) != 2:
        raise ValueError(f"Validation failed: expected 1 or 2 values, got {pair!r}")
    for v in pair:
        Config.check_range(v, ge=0)
    return (pair[0], pair[1])


# "same", a scalar, (vertical, horizontal) or (top, bottom, left, right)
Padding = Annotated[
    int | str | tuple[int, ...] | list[int],
    AfterValidator(_padding),
]
NonNegativePair = Annotated[
    int | tuple[int, int] | list[int],
    AfterValidator(_non_negative_pair),
]


class _LayerConfigBase(Config):
    """Fields shared by every layer kind."""

    name: str = ""


class ImageInputLayerConfig(_LayerConfigBase):
    """Image input of a fixed (height, width, channels) size."""

    type: Literal[LayerType.IMAGE_INPUT] = LayerType.IMAGE_INPUT
    input_size: tuple[PositiveInt, PositiveInt, PositiveInt]
    normalization: Literal["zerocenter", "none"] = "none"
    augmentations: list[Literal["randfliplr", "randcrop"]] = Field(default_factory=list)


class SequenceInputLayerConfig(_LayerConfigBase):
    """Sequence input with a fixed number of features per time step."""

    type: Literal[LayerType.SEQUENCE_INPUT] = LayerType.SEQUENCE_INPUT
    input_size: PositiveInt


class Convolution2DLayerConfig(_LayerConfigBase):
    """2-D convolution. `num_channels=None` is inferred from the input."""

    type: Literal[LayerType.CONVOLUTION] = LayerType.CONVOLUTION
    filter_size: PositivePair
    num_filters: PositiveInt
    num_channels: PositiveInt | None = None
    stride: PositivePair = 1
    padding: Padding = 0
    weight_learn_rate_factor: NonNegativeFloat = 1.0
    weight_l2_factor: NonNegativeFloat = 1.0
    bias_learn_rate_factor: NonNegativeFloat = 1.0
    bias_l2_factor: NonNegativeFloat = 0.0


class TransposedConvolution2DLayerConfig(_LayerConfigBase):
    """2-D transposed convolution; `cropping` trims (vertical, horizontal) edges."""

    type: Literal[LayerType.TRANSPOSED_CONVOLUTION] = LayerType.TRANSPOSED_CONVOLUTION
    filter_size: PositivePair
    num_filters: PositiveInt
    num_channels: PositiveInt | None = None
    stride: PositivePair = 1
    cropping: NonNegativePair = 0
    weight_learn_rate_factor: NonNegativeFloat = 1.0
    weight_l2_factor: NonNegativeFloat = 1.0
    bias_learn_rate_factor: NonNegativeFloat = 1.0
    bias_l2_factor: NonNegativeFloat = 0.0


class FullyConnectedLayerConfig(_LayerConfigBase):
    """Fully connected layer; `input_size` is the flattened input length."""

    type: Literal[LayerType.FULLY_CONNECTED] = LayerType.FULLY_CONNECTED
    output_size: PositiveInt
    input_size: PositiveInt | None = None
    weight_learn_rate_factor: NonNegativeFloat = 1.0
    weight_l2_factor: NonNegativeFloat = 1.0
    bias_learn_rate_factor: NonNegativeFloat = 1.0
    bias_l2_factor: NonNegativeFloat = 0.0


class ReLULayerConfig(_LayerConfigBase):
    """Rectified linear unit."""

    type: Literal[LayerType.RELU] = LayerType.RELU


class LeakyReLULayerConfig(_LayerConfigBase):
    """Leaky ReLU; negative inputs are multiplied by `scale`."""

    type: Literal[LayerType.LEAKY_RELU] = LayerType.LEAKY_RELU
    scale: NonNegativeFloat = 0.01


class ClippedReLULayerConfig(_LayerConfigBase):
    """ReLU clipped from above at `ceiling`."""

    type: Literal[LayerType.CLIPPED_RELU] = LayerType.CLIPPED_RELU
    ceiling: PositiveFloat


class BatchNormalizationLayerConfig(_LayerConfigBase):
    """Per-channel batch normalization."""

    type: Literal[LayerType.BATCH_NORMALIZATION] = LayerType.BATCH_NORMALIZATION
    num_channels: PositiveInt | None = None
    epsilon: PositiveFloat = 1e-5
    offset_learn_rate_factor: NonNegativeFloat = 1.0
    offset_l2_factor: NonNegativeFloat = 0.0
    scale_learn_rate_factor: NonNegativeFloat = 1.0
    scale_l2_factor: NonNegativeFloat = 0.0


class CrossChannelNormalizationLayerConfig(_LayerConfigBase):
    """Local response normalization across neighbouring channels."""

    type: Literal[LayerType.CROSS_CHANNEL_NORMALIZATION] = (
        LayerType.CROSS_CHANNEL_NORMALIZATION
    )
    window_channel_size: Annotated[int, AfterValidator(lambda v: int(Config.check_range(v, ge=1, le=16)))]
    alpha: float = 1e-4
    beta: Annotated[float, AfterValidator(lambda v: Config.check_range(v, ge=0.01, le=10.0))] = 0.75
    k: Annotated[float, AfterValidator(lambda v: Config.check_range(v, ge=1e-5))] = 2.0


class MaxPooling2DLayerConfig(_LayerConfigBase):
    """Max pooling; `has_unpooling_outputs` adds `indices` and `size` outputs."""

    type: Literal[LayerType.MAX_POOLING] = LayerType.MAX_POOLING
    pool_size: PositivePair
    stride: PositivePair = 1
    padding: Padding = 0
    has_unpooling_outputs: bool = False


class AveragePooling2DLayerConfig(_LayerConfigBase):
    """Average pooling; padded zeros count towards the window mean."""

    type: Literal[LayerType.AVERAGE_POOLING] = LayerType.AVERAGE_POOLING
    pool_size: PositivePair
    stride: PositivePair = 1
    padding: Padding = 0


class MaxUnpooling2DLayerConfig(_LayerConfigBase):
    """Max unpooling driven by a max pooling layer's indices and size."""

    type: Literal[LayerType.MAX_UNPOOLING] = LayerType.MAX_UNPOOLING


class DropoutLayerConfig(_LayerConfigBase):
    """Dropout regularization."""

    type: Literal[LayerType.DROPOUT] = LayerType.DROPOUT
    probability: Annotated[float, AfterValidator(lambda v: Config.check_range(v, ge=0.0, lt=1.0))] = 0.5


class SoftmaxLayerConfig(_LayerConfigBase):
    """Softmax over the channel (last) dimension."""

    type: Literal[LayerType.SOFTMAX] = LayerType.SOFTMAX


class AdditionLayerConfig(_LayerConfigBase):
    """Element-wise sum of `num_inputs` inputs."""

    type: Literal[LayerType.ADDITION] = LayerType.ADDITION
    num_inputs: Annotated[int, AfterValidator(lambda v: int(Config.check_range(v, ge=2)))]


class ConcatenationLayerConfig(_LayerConfigBase):
    """Concatenation of `num_inputs` inputs along size axis `axis` (1-based)."""

    type: Literal[LayerType.CONCATENATION] = LayerType.CONCATENATION
    axis: PositiveInt
    num_inputs: Annotated[int, AfterValidator(lambda v: int(Config.check_range(v, ge=2)))]


class DepthConcatenationLayerConfig(_LayerConfigBase):
    """Concatenation along the channel axis."""

    type: Literal[LayerType.DEPTH_CONCATENATION] = LayerType.DEPTH_CONCATENATION
    num_inputs: Annotated[int, AfterValidator(lambda v: int(Config.check_range(v, ge=2)))]


class Crop2DLayerConfig(_LayerConfigBase):
    """Crop `in` to the spatial size of `ref`."""

    type: Literal[LayerType.CROP] = LayerType.CROP
    location: Literal["centercrop"] | tuple[NonNegativeInt, NonNegativeInt] = "centercrop"


class LSTMLayerConfig(_LayerConfigBase):
    """Long short-term memory layer."""

    type: Literal[LayerType.LSTM] = LayerType.LSTM
    hidden_size: PositiveInt
    input_size: PositiveInt | None = None
    output_mode: Literal["sequence", "last"] = "sequence"
    remember_cell_state: bool = False
    remember_hidden_state: bool = False
    input_weights_learn_rate_factor: NonNegativeFloat = 1.0
    input_weights_l2_factor: NonNegativeFloat = 1.0
    recurrent_weights_learn_rate_factor: NonNegativeFloat = 1.0
    recurrent_weights_l2_factor: NonNegativeFloat = 1.0
    bias_learn_rate_factor: NonNegativeFloat = 1.0
    bias_l2_factor: NonNegativeFloat = 0.0


class BiLSTMLayerConfig(LSTMLayerConfig):
    """Bidirectional LSTM; outputs have 2 * hidden_size features."""

    type: Literal[LayerType.BILSTM] = LayerType.BILSTM  # type: ignore[assignment]


class ClassificationOutputLayerConfig(_LayerConfigBase):
    """Cross-entropy classification output."""

    type: Literal[LayerType.CLASSIFICATION] = LayerType.CLASSIFICATION
    num_classes: PositiveInt | None = None
    classes: list[str] | None = None


class RegressionOutputLayerConfig(_LayerConfigBase):
    """Mean-squared-error regression output."""

    type: Literal[LayerType.REGRESSION] = LayerType.REGRESSION
    response_names: list[str] = Field(default_factory=list)


class CustomLayerConfig(_LayerConfigBase):
    """A user-authored layer, imported from `target` ("package.module:Class").

    `params` are passed to the class constructor as keyword arguments.
    """

    type: Literal[LayerType.CUSTOM] = LayerType.CUSTOM
    target: str
    params: dict[str, Any] = Field(default_factory=dict)

    def build(self) -> "Layer":
        """Import the user class, instantiate it and wrap it in an adapter."""
        from layerkit.custom import wrap_user_layer

        module_name, sep, class_name = self.target.partition(":")
        if not sep:
            module_name, _, class_name = self.target.rpartition(".")
        if not module_name or not class_name:
            raise ValueError(
                f"custom layer target must look like 'package.module:Class', got {self.target!r}"
            )
        cls = getattr(importlib.import_module(module_name), class_name)
        user_layer = cls(**self.params)
        if self.name:
            user_layer.name = self.name
        return wrap_user_layer(user_layer)


LayerConfig: TypeAlias = Annotated[
    ImageInputLayerConfig
    | SequenceInputLayerConfig
    | Convolution2DLayerConfig
    | TransposedConvolution2DLayerConfig
    | FullyConnectedLayerConfig
    | ReLULayerConfig
    | LeakyReLULayerConfig
    | ClippedReLULayerConfig
    | BatchNormalizationLayerConfig
    | CrossChannelNormalizationLayerConfig
    | MaxPooling2DLayerConfig
    | AveragePooling2DLayerConfig
    | MaxUnpooling2DLayerConfig
    | DropoutLayerConfig
    | SoftmaxLayerConfig
    | AdditionLayerConfig
    | ConcatenationLayerConfig
    | DepthConcatenationLayerConfig
    | Crop2DLayerConfig
    | LSTMLayerConfig
    | BiLSTMLayerConfig
    | ClassificationOutputLayerConfig
    | RegressionOutputLayerConfig
    | CustomLayerConfig,
    Field(discriminator="type"),
]
