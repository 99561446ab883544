"""NetworkAnalyzer: static analysis of a layer graph.

Construction runs the whole analysis. Layers are wrapped in
LayerAnalyzers and given unique names, connections are resolved to
the internal (source, source port, destination, destination port) form,
layers are put in pseudo-topological order and sizes are propagated
through them. Finally every registered constraint rule runs and appends
its issues.
"""
from __future__ import annotations

import logging
from collections import Counter
from typing import Any, Iterable, Sequence

import networkx as nx
import torch

from layerkit.analyzer.constraint import Connection, ConstraintContext, apply_rules
from layerkit.analyzer.graph import LayerGraph
from layerkit.analyzer.issue import Issue, Severity
from layerkit.analyzer.layer import LayerAnalyzer
from layerkit.console import logger as console
from layerkit.custom.adapter import SIZING_SEQUENCE_LENGTH
from layerkit.data import MiniBatchSource
from layerkit.errors import NetworkAnalysisError
from layerkit.layer import Layer
from layerkit.shape import format_size

logger = logging.getLogger(__name__)

_ON_STACK, _DONE = 1, 2


def _duplicates(names: Sequence[str]) -> set[str]:
    return {name for name, count in Counter(names).items() if count > 1}


def _make_unique(names: Sequence[str], avoid: set[str], taken: set[str]) -> list[str]:
    """Suffix `_1`, `_2`, ... to every name in `avoid`, skipping taken ones."""
    counters: dict[str, int] = {}
    result = []
    for name in names:
        if name not in avoid:
            result.append(name)
            continue
        k = counters.get(name, 0)
        while True:
            k += 1
            candidate = f"{name}_{k}"
            if candidate not in taken:
                break
        counters[name] = k
        taken.add(candidate)
        result.append(candidate)
    return result


def deduce_names(analyzers: Sequence[LayerAnalyzer]) -> None:
    """Give unnamed layers their default name and make all names unique."""
    current = [la.name for la in analyzers]
    if "" not in current and not _duplicates(current):
        return

    named = [la for la in analyzers if la.original_name]
    unnamed = [la for la in analyzers if not la.original_name]
    original = [la.original_name for la in named]
    taken = set(original)

    new_named = _make_unique(original, _duplicates(original), taken)
    defaults = [la.default_name for la in unnamed]
    taken |= set(new_named)
    new_unnamed = _make_unique(defaults, _duplicates(defaults) | taken, taken | set(defaults))

    for la, name in zip(named, new_named):
        la.name = name
    for la, name in zip(unnamed, new_unnamed):
        la.name = name


def pseudo_topological_order(edges: Iterable[tuple[int, int]], num_layers: int) -> list[int]:
    """Topological order of a graph made acyclic by dropping back edges.

    The depth-first search that finds back edges starts from the layers
    without inputs (or layer 0 when there are none) and restarts from the
    first unvisited layer. For a DAG this is a plain topological sort;
    ties always go to the lower original index.
    """
    graph = nx.DiGraph()
    graph.add_nodes_from(range(num_layers))
    graph.add_edges_from(set(edges))

    roots = [n for n in range(num_layers) if graph.in_degree(n) == 0] or [0]
    state: dict[int, int] = {}
    back_edges = []
    for root in [*roots, *range(num_layers)]:
        if root in state:
            continue
        state[root] = _ON_STACK
        stack = [(root, iter(sorted(graph.successors(root))))]
        while stack:
            node, children = stack[-1]
            for child in children:
                if child not in state:
                    state[child] = _ON_STACK
                    stack.append((child, iter(sorted(graph.successors(child)))))
                    break
                if state[child] == _ON_STACK:
                    back_edges.append((node, child))
            else:
                state[node] = _DONE
                stack.pop()

    graph.remove_edges_from(back_edges)
    return list(nx.lexicographical_topological_sort(graph))


def _squeezed(size: Sequence[int]) -> tuple[int, ...]:
    # a 1×1×K image output and a K-vector response hold the same values
    size = tuple(size)
    while len(size) > 1 and size[0] == 1:
        size = size[1:]
    return size


def _split_endpoint(endpoint: str, names: set[str]) -> tuple[str, str | None]:
    # a layer name may itself contain "/", so exact names win
    if endpoint in names:
        return endpoint, None
    layer, sep, port = endpoint.rpartition("/")
    if not sep:
        return endpoint, None
    return layer, port


def to_internal_connections(
    connections: Sequence[tuple[str, str]], analyzers: Sequence[LayerAnalyzer]
) -> list[Connection]:
    """Resolve named connections against layer names and port tables."""
    index = {la.name: i for i, la in enumerate(analyzers)}
    names = set(index)
    result: list[Connection] = []
    taken: dict[tuple[int, int], str] = {}
    for source, destination in connections:
        src_name, src_port = _split_endpoint(source, names)
        dst_name, dst_port = _split_endpoint(destination, names)
        for name, endpoint in ((src_name, source), (dst_name, destination)):
            if name not in index:
                raise ValueError(f"connection endpoint '{endpoint}' names no layer in the graph")
        src, dst = index[src_name], index[dst_name]

        src_index = 0
        if src_port is not None:
            found = analyzers[src].layer.output_index(src_port)
            if found is None:
                raise ValueError(f"layer '{src_name}' has no output port '{src_port}'")
            src_index = found
        dst_index = 0
        if dst_port is not None:
            found = analyzers[dst].layer.input_index(dst_port)
            if found is None:
                raise ValueError(f"layer '{dst_name}' has no input port '{dst_port}'")
            dst_index = found
        conn = Connection(src, src_index, dst, dst_index)
        if conn in result:
            raise ValueError(f"connection from '{source}' to '{destination}' already exists")
        if (dst, dst_index) in taken:
            raise ValueError(
                f"'{destination}' is already connected to '{taken[dst, dst_index]}'; "
                "a layer input takes a single connection"
            )
        taken[dst, dst_index] = source
        result.append(conn)
    return result


class NetworkAnalyzer:
    """Analyze a LayerGraph (or a list of layers) and collect its Issues.

    `families` limits the constraint rules run at construction; by default
    every registered family runs.
    """

    def __init__(self, network: LayerGraph | Iterable[Any], families: Sequence[str] | None = None) -> None:
        graph = network if isinstance(network, LayerGraph) else LayerGraph(network)
        analyzers = [LayerAnalyzer(layer, i) for i, layer in enumerate(graph.layers)]
        deduce_names(analyzers)

        if graph.connections is None:
            named = [(a.name, b.name) for a, b in zip(analyzers, analyzers[1:])]
            internal = [Connection(i, 0, i + 1, 0) for i in range(len(analyzers) - 1)]
        else:
            named = list(graph.connections)
            internal = to_internal_connections(named, analyzers)

        order = pseudo_topological_order(((c.source, c.destination) for c in internal), len(analyzers))
        position = {original: i for i, original in enumerate(order)}
        self.layer_analyzers: list[LayerAnalyzer] = [analyzers[i] for i in order]

        edges = sorted(
            (
                Connection(position[c.source], c.source_port, position[c.destination], c.destination_port),
                pair,
            )
            for c, pair in zip(internal, named)
        )
        self._edges: list[tuple[Connection, tuple[str, str]]] = edges
        logger.debug("analyzing %d layers, %d connections", len(self.layer_analyzers), len(edges))

        self._set_observation_layout()
        self._propagate_sizes()
        self.issues: list[Issue] = self.applied(families)

    def _set_observation_layout(self) -> None:
        # custom layers are sized by running data, which must match the input layer's layout
        sequence = any(la.is_sequence_specific_layer for la in self.layer_analyzers)
        for la in self.layer_analyzers:
            if la.is_custom_layer:
                la.layer.sequence_length = SIZING_SEQUENCE_LENGTH if sequence else None

    def _propagate_sizes(self) -> None:
        for i, la in enumerate(self.layer_analyzers):
            for conn, (source, destination) in self._edges:
                if conn.destination != i:
                    continue
                src = self.layer_analyzers[conn.source]
                if la.inputs:
                    la.inputs[conn.destination_port].connections.append(source)
                if src.outputs:
                    src.outputs[conn.source_port].connections.append(destination)
                if la.inputs and src.outputs:
                    la.inputs[conn.destination_port].size = src.outputs[conn.source_port].size
            la.propagate()

    # Results

    @property
    def connections(self) -> list[tuple[str, str]]:
        """Named connections, in the row order of `internal_connections`."""
        return [pair for _, pair in self._edges]

    @property
    def internal_connection_list(self) -> list[Connection]:
        return [conn for conn, _ in self._edges]

    @property
    def internal_connections(self) -> torch.Tensor:
        """N×4 long tensor with rows (source, source port, destination, destination port)."""
        rows = [list(conn) for conn in self.internal_connection_list]
        return torch.tensor(rows, dtype=torch.long).reshape(-1, 4)

    @property
    def sorted_layers(self) -> list[Layer]:
        return [la.layer for la in self.layer_analyzers]

    @property
    def errors(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Issue]:
        return [issue for issue in self.issues if issue.severity is Severity.WARNING]

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)

    @property
    def is_series_network(self) -> bool:
        """True when every layer feeds exactly the next one through port 0."""
        n = len(self.layer_analyzers)
        conns = self.internal_connection_list
        return len(conns) == n - 1 and all(
            conn == Connection(i, 0, i + 1, 0) for i, conn in enumerate(conns)
        )

    def applied(self, families: Sequence[str] | None = None) -> list[Issue]:
        """Issues found by the rules of `families` (all when None)."""
        context = ConstraintContext(self.layer_analyzers, self.connections, self.internal_connection_list)
        return apply_rules(context, families)

    def check_data(self, source: MiniBatchSource) -> list[Issue]:
        """Compare the network's input and response sizes with a data source.

        The issues found are added to `issues` and returned.
        """
        context = ConstraintContext(self.layer_analyzers, self.connections, self.internal_connection_list)
        inputs = [i for i, la in enumerate(self.layer_analyzers) if la.is_input_layer]
        outputs = [i for i, la in enumerate(self.layer_analyzers) if la.is_output_layer]

        if len(inputs) == 1:
            i = inputs[0]
            expected = self.layer_analyzers[i].output_sizes[0]
            actual = tuple(source.image_size)
            if expected is not None and actual != tuple(expected):
                context.add_layer_error(
                    i,
                    "Data:InputSizeMismatch",
                    f"The data has observations of size {format_size(actual)}, "
                    f"but the input layer expects {format_size(expected)}.",
                )
        if len(outputs) == 1:
            i = outputs[0]
            la = self.layer_analyzers[i]
            expected = la.input_sizes[0] if la.input_sizes else None
            response = tuple(source.response_size)
            if expected is not None and _squeezed(response) != _squeezed(expected):
                context.add_layer_error(
                    i,
                    "Data:ResponseSizeMismatch",
                    f"The responses have size {format_size(response)}, "
                    f"but the output layer receives {format_size(expected)}.",
                )
        self.issues.extend(context.issues)
        return context.issues

    # Reporting

    def throw_issues_if_any(self) -> None:
        """Log warnings, then raise NetworkAnalysisError if there are errors."""
        for issue in self.warnings:
            console.warning(issue.describe())
        if self.errors:
            raise NetworkAnalysisError(self.errors)

    def report(self) -> None:
        if not self.issues:
            console.success(f"No issues found in {len(self.layer_analyzers)} layers")
            return
        console.issues(self.issues)

    def summary(self) -> None:
        """Print the sorted layers with their propagated sizes."""
        rows = []
        for i, la in enumerate(self.layer_analyzers):
            inputs, outputs = la.describe_sizes()
            rows.append([str(i), la.name, la.type, inputs, outputs])
        console.table(
            title="Layers",
            columns=["#", "Name", "Type", "Input sizes", "Output sizes"],
            rows=rows,
        )
