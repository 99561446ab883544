"""Rules for networks with sequence and recurrent layers."""
from __future__ import annotations

from layerkit.analyzer.constraint.registry import ConstraintContext, rule
from layerkit.analyzer.issue import format_list


def _described(test: ConstraintContext, indices: list[int]) -> list[str]:
    return [f"{test.layer_analyzers[i].display_name} ({test.layer_analyzers[i].type})" for i in indices]


@rule("LSTM", "RecurrentAndImageLayers")
def recurrent_and_image_layers(test: ConstraintContext) -> None:
    recurrent = [i for i, la in enumerate(test.layer_analyzers) if la.is_rnn_layer]
    image = [i for i, la in enumerate(test.layer_analyzers) if la.is_image_specific_layer]
    if recurrent and image:
        test.add_network_error(
            sorted(recurrent + image),
            "LSTM:RecurrentAndImageLayers",
            "Recurrent layers cannot be combined with image-specific layers.\n"
            + format_list("Image layers:", _described(test, image))
            + "\n"
            + format_list("Recurrent layers:", _described(test, recurrent)),
        )


@rule("LSTM", "SequenceInputAndImageLayers")
def sequence_input_and_image_layers(test: ConstraintContext) -> None:
    layers = test.layer_analyzers
    if any(la.is_rnn_layer for la in layers):
        return  # RecurrentAndImageLayers covers it
    sequence = [i for i, la in enumerate(layers) if la.is_sequence_specific_layer]
    image = [i for i, la in enumerate(layers) if la.is_image_specific_layer]
    if sequence and image:
        test.add_network_error(
            sorted(sequence + image),
            "LSTM:SequenceInputAndImageLayers",
            "Sequence input layers cannot be combined with image-specific layers.\n"
            + format_list("Image layers:", _described(test, image)),
        )
