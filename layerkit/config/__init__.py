"""Configuration system: turning YAML into validated Python objects.

Layer hyperparameters and whole layer graphs can be written in YAML or JSON
files and validated into Pydantic models. This keeps network descriptions
separate from code while ensuring type safety and clear error messages when
something is wrong.
"""
from __future__ import annotations

import enum
import importlib
from typing import TYPE_CHECKING, Annotated, Protocol, TypeVar, cast

from pydantic import AfterValidator, BaseModel, ConfigDict

if TYPE_CHECKING:
    from layerkit.layer import Layer


T = TypeVar("T")


class ValidationType(enum.Enum):
    """Sign constraints on numeric hyperparameters."""

    SHOULD_BE_POSITIVE = "should_be_positive"
    SHOULD_BE_NON_NEGATIVE = "should_be_non_negative"


class Config(BaseModel):
    """Base class for layer configs.

    `build()` constructs the layer a config describes; the static helpers
    validate hyperparameters with messages that name the failed constraint.
    """

    # defaults go through the same validators as user values
    model_config = ConfigDict(validate_default=True)

    def build(self) -> "Layer":
        """Construct the layer this config describes.

        The `type` member names the module under `layerkit.layer` and its
        value the class inside it.
        """

        class _BuildType(Protocol):
            value: str
            name: str

            def module_name(self) -> str:
                ...

        t = cast(_BuildType, getattr(self, "type"))
        mod = importlib.import_module(f"{t.module_name()}.{t.name.lower()}")
        return getattr(mod, t.value)(self)

    @staticmethod
    def check(value: T, validation_type: ValidationType) -> T:
        """Validate the sign of a number, raising ValueError on failure."""
        match validation_type:
            case ValidationType.SHOULD_BE_POSITIVE:
                if value <= 0:  # type: ignore[operator]
                    raise ValueError(f"Validation failed: {validation_type.name}: {value!r} <= 0")
            case ValidationType.SHOULD_BE_NON_NEGATIVE:
                if value < 0:  # type: ignore[operator]
                    raise ValueError(f"Validation failed: {validation_type.name}: {value!r} < 0")
        return value

    @staticmethod
    def check_range(
        value: float,
        *,
        ge: float | None = None,
        gt: float | None = None,
        le: float | None = None,
        lt: float | None = None,
    ) -> float:
        """Validate a number is within a range."""
        v = float(value)
        if ge is not None and v < ge:
            raise ValueError(f"Validation failed: {v} < {ge} (expected >= {ge})")
        if gt is not None and v <= gt:
            raise ValueError(f"Validation failed: {v} <= {gt} (expected > {gt})")
        if le is not None and v > le:
            raise ValueError(f"Validation failed: {v} > {le} (expected <= {le})")
        if lt is not None and v >= lt:
            raise ValueError(f"Validation failed: {v} >= {lt} (expected < {lt})")
        return v


def _expand_pair(value: int | tuple[int, ...] | list[int]) -> tuple[int, int]:
    """Expand a scalar into (v, v); pass two-element values through."""
    if isinstance(value, int):
        return (value, value)
    values = tuple(int(v) for v in value)
    if len(values) != 2:
        raise ValueError(f"Validation failed: expected 1 or 2 values, got {values!r}")
    return cast(tuple[int, int], values)


def _positive_pair(value: int | tuple[int, ...] | list[int]) -> tuple[int, int]:
    pair = _expand_pair(value)
    for v in pair:
        Config.check(v, ValidationType.SHOULD_BE_POSITIVE)
    return pair


# Type aliases for validated primitives, used in config models
PositiveInt = Annotated[
    int,
    AfterValidator(lambda v: Config.check(v, ValidationType.SHOULD_BE_POSITIVE)),
]
NonNegativeInt = Annotated[
    int,
    AfterValidator(lambda v: Config.check(v, ValidationType.SHOULD_BE_NON_NEGATIVE)),
]
PositiveFloat = Annotated[
    float,
    AfterValidator(lambda v: Config.check(v, ValidationType.SHOULD_BE_POSITIVE)),
]
NonNegativeFloat = Annotated[
    float,
    AfterValidator(lambda v: Config.check(v, ValidationType.SHOULD_BE_NON_NEGATIVE)),
]
Probability = Annotated[
    float,
    AfterValidator(lambda v: Config.check_range(v, ge=0.0, le=1.0)),
]
# Height/width hyperparameters: `3` means (3, 3)
PositivePair = Annotated[
    int | tuple[int, int] | list[int],
    AfterValidator(_positive_pair),
]
