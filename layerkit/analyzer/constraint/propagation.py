"""Size propagation rules.

A layer that cannot produce an output size is reported only when its own
inputs are valid; layers starved of a valid size by an upstream failure
stay silent so the error points at its origin.
"""
from __future__ import annotations

import logging

from layerkit.analyzer.constraint.registry import ConstraintContext, rule
from layerkit.analyzer.issue import format_list
from layerkit.errors import LayerkitError
from layerkit.shape import format_size

logger = logging.getLogger(__name__)


def _generic_message(test: ConstraintContext, index: int) -> str:
    la = test.layer_analyzers[index]
    incoming = sorted(
        (c for c in test.internal_connections if c.destination == index),
        key=lambda c: c.destination_port,
    )
    items = []
    for conn in incoming:
        size = la.inputs[conn.destination_port].size if conn.destination_port < len(la.inputs) else None
        items.append(f"from {test.source_name(conn.source, conn.source_port)} (size {format_size(size)})")
    message = "Input size mismatch. Size of input to this layer is different from the expected input size."
    if items:
        message += "\n" + format_list("Inputs to this layer:", items)
    return message


@rule("Propagation", "InvalidLayerSize")
def invalid_layer_size(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        if not la.has_invalid_output_size or la.has_invalid_input_size:
            continue
        if la.is_custom_layer:
            continue  # CustomLayers verifies these with probe data

        id, message = "Propagation:InvalidLayerSize", _generic_message(test, i)
        if la.is_input_layer:
            test.add_layer_error(
                i, "Propagation:InvalidLayerSizeWithCause", f"Invalid input size: {la.size_error}"
            )
            continue
        arg = la.input_size_argument
        try:
            la.layer.infer_size(arg)
            la.layer.check_input_size(arg)
        except LayerkitError as err:
            # our own size errors carry a more useful diagnostic
            id, message = "Propagation:InvalidLayerSizeWithCause", f"Invalid input size: {err}"
        except Exception as err:  # noqa: BLE001
            # not ours; the generic message applies
            logger.debug("size check of %s raised %r", la.display_name, err)
        test.add_layer_error(i, id, message, cause=la.size_error)
