"""Custom layer rules: method signatures first, then behavior on probe data."""
from __future__ import annotations

from layerkit.analyzer.constraint.registry import ConstraintContext, rule
from layerkit.custom.verifier import validate_method_signatures
from layerkit.errors import CustomLayerVerificationError, LayerkitError

# Observations in the second probe, catching layers that only handle one
MINI_BATCH_PROBE = 5


def _failure_id(err: LayerkitError) -> str:
    if isinstance(err, CustomLayerVerificationError):
        return f"CustomLayers:{err.id}"
    return f"CustomLayers:{type(err).__name__}"


@rule("CustomLayers", "ValidateLayer")
def validate_layer(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        if not la.is_custom_layer:
            continue

        try:
            validate_method_signatures(la.layer.user_layer, i + 1)
        except CustomLayerVerificationError as err:
            test.add_layer_error(
                i, _failure_id(err), f"Layer has an invalid method signature. {err}", cause=err
            )
            continue  # already invalid, don't run it

        if la.has_invalid_input_size:
            continue  # a probe would fail because of the input, not the layer
        size = la.input_size_argument

        for batch_size in (1, MINI_BATCH_PROBE):
            try:
                la.layer.probe(size, batch_size)
            except LayerkitError as err:
                test.add_layer_error(
                    i,
                    _failure_id(err),
                    f"Custom layer verification failed with {batch_size} observation(s). {err}",
                    cause=err,
                )
                break
