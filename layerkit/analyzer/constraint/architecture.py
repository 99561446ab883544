"""Architecture rules: input/output layers, connectivity, output heads."""
from __future__ import annotations

import networkx as nx

from layerkit.analyzer.constraint.registry import ConstraintContext, rule
from layerkit.analyzer.issue import format_list


def _one_of_a_kind(test: ConstraintContext, kind: str, indices: list[int]) -> None:
    family = kind.capitalize()
    if not indices:
        test.add_network_error(
            [], f"Architecture:Missing{family}Layer", f"Missing {kind} layer. The network must have one {kind} layer."
        )
    elif len(indices) > 1:
        names = [test.layer_analyzers[i].display_name for i in indices]
        test.add_network_error(
            indices,
            f"Architecture:One{family}Layer",
            f"Too many {kind} layers. The network must have one {kind} layer.\n"
            + format_list(f"Detected {kind} layers:", names),
        )


@rule("Architecture", "OneInputLayer")
def one_input_layer(test: ConstraintContext) -> None:
    inputs = [i for i, la in enumerate(test.layer_analyzers) if la.is_input_layer]
    _one_of_a_kind(test, "input", inputs)


@rule("Architecture", "OneOutputLayer")
def one_output_layer(test: ConstraintContext) -> None:
    outputs = [i for i, la in enumerate(test.layer_analyzers) if la.is_output_layer]
    _one_of_a_kind(test, "output", outputs)


@rule("Architecture", "ConnectedComponents")
def connected_components(test: ConstraintContext) -> None:
    graph = nx.Graph()
    graph.add_nodes_from(range(len(test.layer_analyzers)))
    graph.add_edges_from((c.source, c.destination) for c in test.internal_connections)

    # largest first, ties by leading layer
    components = sorted(nx.connected_components(graph), key=lambda c: (-len(c), min(c)))
    if len(components) <= 1:
        return

    groups = [c for c in components if len(c) > 1]
    isolated = [min(c) for c in components if len(c) == 1]

    if len(groups) > 1:
        leading = [min(c) for c in groups]
        items = [
            f"{test.layer_analyzers[min(c)].display_name} ({len(c)} layers)" for c in groups
        ]
        test.add_network_error(
            leading,
            "Architecture:MultipleComponents",
            "Network is not connected. All layers must belong to a single component.\n"
            + format_list("Components, by their first layer:", items),
        )
    if isolated:
        names = [test.layer_analyzers[i].display_name for i in isolated]
        test.add_network_error(
            isolated,
            "Architecture:DisconnectedLayers",
            "Network has layers that are not connected to any other layer.\n"
            + format_list("Disconnected layers:", names),
        )


@rule("Architecture", "ClassificationMustBePrecededBySoftmax")
def classification_after_softmax(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        if not la.is_classification_layer:
            continue
        offending = [s for s in test.sources_of(i) if not test.layer_analyzers[s].is_softmax_layer]
        if offending:
            test.add_layer_error(
                i,
                "Architecture:ClassificationMustBePrecededBySoftmax",
                "Incorrect network structure. The layer before a classification layer must be a softmax layer.",
            )


@rule("Architecture", "RegressionMustNotBePrecededBySoftmax")
def regression_not_after_softmax(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        if not la.is_regression_layer:
            continue
        if any(test.layer_analyzers[s].is_softmax_layer for s in test.sources_of(i)):
            test.add_layer_error(
                i,
                "Architecture:RegressionMustNotBePrecededBySoftmax",
                "Incorrect network structure. A regression layer must not follow a softmax layer.",
            )
