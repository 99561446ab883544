"""Connection rules: invalid ports, cycles, missing inputs, unused outputs."""
from __future__ import annotations

from layerkit.analyzer.constraint.registry import ConstraintContext, rule
from layerkit.analyzer.issue import format_list


@rule("Connections", "ConnectionsToInvalidPorts")
def connections_to_invalid_ports(test: ConstraintContext) -> None:
    # series networks can wire a layer with no output before another
    # layer, or a layer with no input after one
    layers = test.layer_analyzers
    num_inputs = sum(la.is_input_layer for la in layers)
    num_outputs = sum(la.is_output_layer for la in layers)

    for conn in test.internal_connections:
        src, dst = layers[conn.source], layers[conn.destination]

        if dst.is_input_layer and num_inputs > 1:
            pass  # OneInputLayer reports this
        elif dst.is_input_layer:
            test.add_layer_error(
                conn.destination,
                "Connections:ConnectionsToInputLayer",
                "Invalid connection. An input layer cannot have inputs.",
            )
        elif not dst.inputs:
            test.add_layer_error(
                conn.destination,
                "Connections:ConnectionsToInvalidPort",
                "Invalid connection. This layer has no inputs but is connected from "
                f"{test.source_name(conn.source, conn.source_port)}.",
            )

        if src.is_output_layer and num_outputs > 1:
            pass  # OneOutputLayer reports this
        elif src.is_output_layer:
            test.add_layer_error(
                conn.source,
                "Connections:ConnectionsFromOutputLayer",
                "Invalid connection. An output layer cannot have outputs.",
            )
        elif not src.outputs:
            test.add_layer_error(
                conn.source,
                "Connections:ConnectionsFromInvalidPort",
                "Invalid connection. This layer has no outputs but is connected to "
                f"{test.destination_name(conn.destination, conn.destination_port)}.",
            )


@rule("Connections", "ConnectionCycles")
def connection_cycles(test: ConstraintContext) -> None:
    # layers are pseudo-topologically sorted: an acyclic connection always
    # goes from a lower to a higher index
    for conn in test.internal_connections:
        if conn.source < conn.destination:
            continue
        test.add_network_error(
            [conn.source, conn.destination],
            "Connections:ConnectionCycle",
            f"Connection from {test.source_name(conn.source, conn.source_port)} to "
            f"{test.destination_name(conn.destination, conn.destination_port)} creates a cycle.",
        )


@rule("Connections", "MissingConnections")
def missing_connections(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        missing_inputs = [p.name for p in la.inputs if not p.is_connected]
        unused_outputs = [p.name for p in la.outputs if not p.is_connected]

        if len(missing_inputs) == len(la.inputs) and len(unused_outputs) == len(la.outputs):
            continue  # disconnected layer, ConnectedComponents reports this

        if missing_inputs:
            message = "Missing input. Each layer input must be connected to the output of another layer."
            if len(la.inputs) > 1:
                message += "\n" + format_list("Unconnected inputs:", missing_inputs)
            test.add_layer_error(i, "Connections:MissingInputs", message)

        if unused_outputs:
            message = "Unused output. Each layer output must be connected to the input of another layer."
            if len(la.outputs) > 1:
                message += "\n" + format_list("Unconnected outputs:", unused_outputs)
            test.add_layer_error(i, "Connections:UnusedOutputs", message)
