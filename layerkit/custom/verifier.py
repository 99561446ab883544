"""Contract checks for user-authored layers.

Signature checks run before any data flows: they count the positional
arguments of each method and, where a return annotation is present, the
number of values it returns (a `tuple[...]` annotation declares one value
per element). Behavioral checks run on real or probe data and compare the
type, device and shape of what user code returned with what it was given.

Every failure raises CustomLayerVerificationError whose `id` names the
broken rule.
"""
from __future__ import annotations

import inspect
import re
import typing
from typing import Any, Callable, Sequence

from torch import Tensor

from layerkit.custom.user import UserOutputLayer
from layerkit.errors import CustomLayerVerificationError
from layerkit.shape import format_size


def describe_type(value: object) -> str:
    """Type, device and dtype of a value, as shown in error messages."""
    if isinstance(value, Tensor):
        return f"{value.device.type} {str(value.dtype).removeprefix('torch.')} tensor"
    return type(value).__name__


def _same_type(a: object, b: object) -> bool:
    return describe_type(a) == describe_type(b)


def _shape(value: object) -> str:
    if isinstance(value, Tensor):
        return format_size(tuple(value.shape)) if value.dim() else "scalar"
    return "(not a tensor)"


def positional_arity(method: Callable[..., Any]) -> tuple[int, int | None]:
    """(required, maximum) positional arguments; maximum is None for *args."""
    required = 0
    maximum: int | None = 0
    for param in inspect.signature(method).parameters.values():
        if param.kind is inspect.Parameter.VAR_POSITIONAL:
            maximum = None
        elif param.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD):
            if param.default is inspect.Parameter.empty:
                required += 1
            if maximum is not None:
                maximum += 1
    return required, maximum


_TUPLE_ANNOTATION = re.compile(r"^(?:typing\.)?(?:tuple|Tuple)\[(.*)\]$")
_UNKNOWN_ANNOTATIONS = {"Any", "typing.Any", "object", "tuple", "Tuple", "typing.Tuple"}


def _split_top_level(text: str) -> list[str]:
    parts, depth, current = [], 0, ""
    for ch in text:
        if ch == "[":
            depth += 1
        elif ch == "]":
            depth -= 1
        if ch == "," and depth == 0:
            parts.append(current)
            current = ""
        else:
            current += ch
    parts.append(current)
    return parts


def returned_count(method: Callable[..., Any]) -> int | None:
    """Number of values the return annotation declares, None when unknown."""
    annotation = inspect.signature(method).return_annotation
    if annotation is inspect.Signature.empty:
        return None
    if isinstance(annotation, str):
        text = annotation.replace(" ", "")
        if text in _UNKNOWN_ANNOTATIONS:
            return None
        match = _TUPLE_ANNOTATION.match(text)
        if match is None:
            return 1
        parts = _split_top_level(match.group(1))
        if parts[-1] == "...":
            return None
        return 0 if parts == ["()"] else len(parts)
    if annotation in (Any, object, tuple):
        return None
    if typing.get_origin(annotation) is tuple:
        args = typing.get_args(annotation)
        if len(args) == 2 and args[1] is Ellipsis:
            return None
        return 0 if args == ((),) else len(args)
    return 1


def _assert_arity(method: Callable[..., Any], name: str, index: int, expected: int, error_id: str) -> None:
    required, maximum = positional_arity(method)
    if required <= expected and (maximum is None or expected <= maximum):
        return
    actual = required if maximum is None else maximum
    raise CustomLayerVerificationError(
        error_id,
        f"Layer {index}: {name} must take {expected} input argument(s), but it takes {actual}.",
    )


def _assert_returns(
    method: Callable[..., Any], name: str, index: int, expected: int, error_id: str, detail: str = ""
) -> None:
    actual = returned_count(method)
    if actual is None or actual == expected:
        return
    raise CustomLayerVerificationError(
        error_id,
        f"Layer {index}: {name} must return {expected} value(s){detail}, "
        f"but its annotation declares {actual}.",
    )


def validate_method_signatures(user_layer: object, layer_index: int) -> None:
    """Check argument and return counts of the user layer's methods.

    `layer_index` is the 1-based position of the layer, used in messages.
    """
    if isinstance(user_layer, UserOutputLayer):
        for name, prefix in (("forward_loss", "ForwardLoss"), ("backward_loss", "BackwardLoss")):
            method = getattr(user_layer, name)
            _assert_arity(method, name, layer_index, 2, f"Wrong{prefix}Nargin")
            _assert_returns(method, name, layer_index, 1, f"Wrong{prefix}Nargout")
        return

    predict = getattr(user_layer, "predict")
    _assert_arity(predict, "predict", layer_index, 1, "WrongPredictNargin")
    _assert_returns(predict, "predict", layer_index, 1, "WrongPredictNargout")

    forward = getattr(user_layer, "forward", None)
    if forward is not None:
        _assert_arity(forward, "forward", layer_index, 1, "WrongForwardNargin")
        _assert_returns(forward, "forward", layer_index, 2, "WrongForwardNargout")

    num_params = validate_learnable_parameters(user_layer, layer_index)
    backward = getattr(user_layer, "backward")
    _assert_arity(backward, "backward", layer_index, 4, "WrongBackwardNargin")
    if num_params > 0:
        _assert_returns(
            backward,
            "backward",
            layer_index,
            1 + num_params,
            "WrongBackwardNargoutWithLearnableParams",
            f" (dX plus one gradient for each of its {num_params} learnable parameters)",
        )
    else:
        _assert_returns(backward, "backward", layer_index, 1, "WrongBackwardNargout")


def validate_learnable_parameters(user_layer: object, layer_index: int) -> int:
    """Number of declared learnable parameters; rejects constant ones."""
    declared = getattr(user_layer, "declared_parameters", [])
    for param in declared:
        if param.constant:
            raise CustomLayerVerificationError(
                "ConstantLearnableParam",
                f"Layer {layer_index}: learnable parameter '{param.name}' is read-only.",
            )
    return len(declared)


class CustomLayerVerifier:
    """Behavioral checks on the values user code returns."""

    def __init__(self, layer_class: str, parameter_names: Sequence[str] = ()) -> None:
        self.layer_class = layer_class
        self.parameter_names = list(parameter_names)

    def verify_predict_type(self, X: object, Z: object) -> None:
        if not _same_type(X, Z):
            raise CustomLayerVerificationError(
                "PredictInvalidType",
                f"{self.layer_class}: predict returned a {describe_type(Z)} "
                f"for a {describe_type(X)} input.",
            )

    def verify_forward_type(self, X: object, Z: object) -> None:
        if not _same_type(X, Z):
            raise CustomLayerVerificationError(
                "ForwardInvalidType",
                f"{self.layer_class}: forward returned a {describe_type(Z)} "
                f"for a {describe_type(X)} input.",
            )

    def verify_backward_size(
        self, X: Tensor, parameters: Sequence[Tensor | None], dX: object, dW: Sequence[object] | None = None
    ) -> None:
        if not isinstance(dX, Tensor) or tuple(dX.shape) != tuple(X.shape):
            raise CustomLayerVerificationError(
                "WrongSizeOfdLdX",
                f"{self.layer_class}: backward returned dX of size {_shape(dX)}, "
                f"expected {_shape(X)} to match the input.",
            )
        if dW is None:
            return
        for name, W, dWi in zip(self.parameter_names, parameters, dW):
            expected = tuple(W.shape) if isinstance(W, Tensor) else None
            if not isinstance(dWi, Tensor) or tuple(dWi.shape) != expected:
                raise CustomLayerVerificationError(
                    "WrongSizeOfdLdW",
                    f"{self.layer_class}: backward returned a gradient of size {_shape(dWi)} "
                    f"for learnable parameter '{name}' of size {_shape(W)}.",
                )

    def verify_backward_type(self, X: object, dX: object, dW: Sequence[object] | None = None) -> None:
        if not _same_type(X, dX):
            raise CustomLayerVerificationError(
                "dLdXInvalidType",
                f"{self.layer_class}: backward returned dX as a {describe_type(dX)} "
                f"for a {describe_type(X)} input.",
            )
        if dW is None:
            return
        for name, dWi in zip(self.parameter_names, dW):
            if not _same_type(X, dWi):
                raise CustomLayerVerificationError(
                    "dLdWInvalidType",
                    f"{self.layer_class}: backward returned the gradient of '{name}' as a "
                    f"{describe_type(dWi)} for a {describe_type(X)} input.",
                )

    def verify_forward_loss(self, Y: object, loss: object) -> None:
        if not isinstance(loss, Tensor) or loss.numel() != 1:
            raise CustomLayerVerificationError(
                "ScalarLoss",
                f"{self.layer_class}: forward_loss must return a scalar, got size {_shape(loss)}.",
            )
        if not _same_type(Y, loss):
            raise CustomLayerVerificationError(
                "LossInvalidType",
                f"{self.layer_class}: forward_loss returned a {describe_type(loss)} "
                f"for a {describe_type(Y)} input.",
            )

    def verify_backward_loss(self, Y: Tensor, dX: object) -> None:
        if not isinstance(dX, Tensor) or tuple(dX.shape) != tuple(Y.shape):
            raise CustomLayerVerificationError(
                "WrongSizeOfdLdXInBackwardLoss",
                f"{self.layer_class}: backward_loss returned size {_shape(dX)}, "
                f"expected {_shape(Y)} to match the input.",
            )
        if not _same_type(Y, dX):
            raise CustomLayerVerificationError(
                "dLdXBackwardLossInvalidType",
                f"{self.layer_class}: backward_loss returned a {describe_type(dX)} "
                f"for a {describe_type(Y)} input.",
            )
