"""Test NetworkAnalyzer construction: names, ordering, connections, sizes."""
from __future__ import annotations

import unittest

import pytest
import torch

from layerkit.analyzer import LayerGraph, NetworkAnalyzer, pseudo_topological_order
from layerkit.config.layer import (
    AdditionLayerConfig,
    ClassificationOutputLayerConfig,
    FullyConnectedLayerConfig,
    ImageInputLayerConfig,
    RegressionOutputLayerConfig,
    ReLULayerConfig,
    SoftmaxLayerConfig,
)
from layerkit.data import TensorMiniBatchSource
from layerkit.errors import NetworkAnalysisError


def _classifier(**names: str) -> list:
    return [
        ImageInputLayerConfig(input_size=(4, 4, 1), name=names.get("input", "")),
        FullyConnectedLayerConfig(output_size=3, name=names.get("fc", "")),
        SoftmaxLayerConfig(name=names.get("softmax", "")),
        ClassificationOutputLayerConfig(name=names.get("output", "")),
    ]


class PseudoTopologicalOrderTest(unittest.TestCase):
    """Test ordering of possibly cyclic graphs."""

    def test_dag(self) -> None:
        """test a DAG is topologically sorted with ties to the lower index"""
        order = pseudo_topological_order([(3, 1), (1, 0), (3, 2), (2, 0)], 4)
        self.assertEqual(order, [3, 1, 2, 0])

    def test_disconnected_layers_keep_their_order(self) -> None:
        """test layers without connections stay in their original order"""
        self.assertEqual(pseudo_topological_order([], 3), [0, 1, 2])

    def test_cycle_is_broken_once(self) -> None:
        """test a cycle is ordered by dropping its back edge"""
        self.assertEqual(pseudo_topological_order([(0, 1), (1, 2), (2, 1)], 3), [0, 1, 2])

    def test_cycle_without_roots(self) -> None:
        """test a pure cycle starts from layer 0"""
        self.assertEqual(pseudo_topological_order([(0, 1), (1, 0)], 2), [0, 1])


class NameDeductionTest(unittest.TestCase):
    """Test unique names are deduced before analysis."""

    def test_unnamed_layers_get_default_names(self) -> None:
        """test every unnamed layer gets its kind's default name"""
        analyzer = NetworkAnalyzer(_classifier())
        names = [la.name for la in analyzer.layer_analyzers]
        self.assertEqual(names, ["imageinput", "fc", "softmax", "classoutput"])

    def test_duplicate_names_are_suffixed(self) -> None:
        """test duplicated names become name_1, name_2 and warn"""
        layers = [
            ImageInputLayerConfig(input_size=(2, 2, 1), name="in"),
            ReLULayerConfig(name="act"),
            ReLULayerConfig(name="act"),
            ReLULayerConfig(),
        ]
        analyzer = NetworkAnalyzer(layers, families=["Names"])
        names = [la.name for la in analyzer.layer_analyzers]
        self.assertEqual(names, ["in", "act_1", "act_2", "relu"])
        self.assertEqual([i.id for i in analyzer.warnings], ["Names:DuplicatedNames"] * 2)

    def test_default_names_avoid_taken_names(self) -> None:
        """test a default name already in use gets a suffix"""
        layers = [
            ImageInputLayerConfig(input_size=(2, 2, 1)),
            ReLULayerConfig(name="relu"),
            ReLULayerConfig(),
            ReLULayerConfig(),
        ]
        analyzer = NetworkAnalyzer(layers, families=[])
        names = [la.name for la in analyzer.layer_analyzers]
        self.assertEqual(names, ["imageinput", "relu", "relu_1", "relu_2"])


class ConnectionsTest(unittest.TestCase):
    """Test the internal connection matrix."""

    def test_series_network(self) -> None:
        """test a layer list is wired in series"""
        analyzer = NetworkAnalyzer(_classifier())
        self.assertTrue(analyzer.is_series_network)
        matrix = analyzer.internal_connections
        self.assertEqual(matrix.dtype, torch.long)
        self.assertEqual(matrix.tolist(), [[0, 0, 1, 0], [1, 0, 2, 0], [2, 0, 3, 0]])
        self.assertEqual(analyzer.issues, [])

    def test_ports_resolve_to_indices(self) -> None:
        """test layer/port endpoints resolve to port indices"""
        graph = LayerGraph(
            [
                ImageInputLayerConfig(input_size=(2, 2, 1), name="in"),
                ReLULayerConfig(name="relu"),
                AdditionLayerConfig(num_inputs=2, name="add"),
            ],
            [("in", "relu"), ("in", "add/in1"), ("relu", "add/in2")],
        )
        analyzer = NetworkAnalyzer(graph, families=[])
        self.assertFalse(analyzer.is_series_network)
        self.assertEqual(
            analyzer.internal_connections.tolist(),
            [[0, 0, 1, 0], [0, 0, 2, 0], [1, 0, 2, 1]],
        )
        add = analyzer.layer_analyzers[2]
        self.assertEqual(add.output_sizes, [(2, 2, 1)])

    def test_unknown_port(self) -> None:
        """test connecting to a port a layer does not have"""
        graph = LayerGraph(
            [ImageInputLayerConfig(input_size=(2, 2, 1), name="in"), ReLULayerConfig(name="relu")],
            [("in", "relu/in7")],
        )
        with self.assertRaises(ValueError):
            NetworkAnalyzer(graph)

    def test_input_port_takes_one_connection(self) -> None:
        """test two sources feeding the same single-input port are rejected"""
        graph = LayerGraph(
            [
                ImageInputLayerConfig(input_size=(2, 2, 1), name="in"),
                ReLULayerConfig(name="a"),
                ReLULayerConfig(name="b"),
                ReLULayerConfig(name="c"),
                RegressionOutputLayerConfig(name="out"),
            ],
            [("in", "a"), ("in", "b"), ("a", "c"), ("b", "c"), ("c", "out")],
        )
        with self.assertRaisesRegex(ValueError, "single connection"):
            NetworkAnalyzer(graph)

    def test_named_and_default_port_collide(self) -> None:
        """test 'add' and 'add/in1' address the same input"""
        graph = LayerGraph(
            [
                ImageInputLayerConfig(input_size=(2, 2, 1), name="in"),
                ReLULayerConfig(name="relu"),
                AdditionLayerConfig(num_inputs=2, name="add"),
            ],
            [("in", "add"), ("relu", "add/in1"), ("in", "relu")],
        )
        with self.assertRaises(ValueError):
            NetworkAnalyzer(graph)

    def test_repeated_connection(self) -> None:
        """test the same connection listed twice is rejected"""
        graph = LayerGraph(
            [ImageInputLayerConfig(input_size=(2, 2, 1), name="in"), ReLULayerConfig(name="relu")],
            [("in", "relu"), ("in", "relu")],
        )
        with self.assertRaisesRegex(ValueError, "already exists"):
            NetworkAnalyzer(graph)

    def test_output_port_feeds_several_layers(self) -> None:
        """test fan-out from one port is allowed"""
        graph = LayerGraph(
            [
                ImageInputLayerConfig(input_size=(2, 2, 1), name="in"),
                ReLULayerConfig(name="a"),
                ReLULayerConfig(name="b"),
                AdditionLayerConfig(num_inputs=2, name="add"),
                RegressionOutputLayerConfig(name="out"),
            ],
            [("in", "a"), ("in", "b"), ("a", "add/in1"), ("b", "add/in2"), ("add", "out")],
        )
        analyzer = NetworkAnalyzer(graph)
        self.assertEqual(analyzer.issues, [])

    def test_layers_are_sorted(self) -> None:
        """test layers listed out of order are analyzed in data-flow order"""
        graph = LayerGraph(
            [
                SoftmaxLayerConfig(name="softmax"),
                ImageInputLayerConfig(input_size=(4, 4, 1), name="input"),
                ClassificationOutputLayerConfig(name="output"),
                FullyConnectedLayerConfig(output_size=3, name="fc"),
            ],
            [("input", "fc"), ("fc", "softmax"), ("softmax", "output")],
        )
        analyzer = NetworkAnalyzer(graph)
        self.assertEqual([la.name for la in analyzer.layer_analyzers], ["input", "fc", "softmax", "output"])
        self.assertEqual([la.original_index for la in analyzer.layer_analyzers], [1, 3, 0, 2])
        self.assertEqual(analyzer.issues, [])


def test_sizes_are_propagated_and_inferred() -> None:
    analyzer = NetworkAnalyzer(_classifier())
    fc = analyzer.layer_analyzers[1]
    assert fc.input_sizes == [(4, 4, 1)]
    assert fc.output_sizes == [(1, 1, 3)]
    assert fc.layer.input_size == 16
    assert analyzer.layer_analyzers[3].layer.num_classes == 3


def test_check_data() -> None:
    analyzer = NetworkAnalyzer(_classifier())
    good = TensorMiniBatchSource(torch.zeros(6, 4, 4, 1), torch.tensor([0, 1, 2, 0, 1, 2]), num_classes=3)
    assert analyzer.check_data(good) == []
    bad = TensorMiniBatchSource(torch.zeros(6, 5, 5, 1), torch.tensor([0, 1, 2, 0, 1, 2]), num_classes=3)
    ids = [issue.id for issue in analyzer.check_data(bad)]
    assert ids == ["Data:InputSizeMismatch"]
    assert analyzer.has_errors


def test_throw_issues_if_any() -> None:
    analyzer = NetworkAnalyzer([ReLULayerConfig()])
    with pytest.raises(NetworkAnalysisError) as excinfo:
        analyzer.throw_issues_if_any()
    ids = {issue.id for issue in excinfo.value.issues}
    assert ids == {"Architecture:MissingInputLayer", "Architecture:MissingOutputLayer"}


def test_unknown_family() -> None:
    with pytest.raises(ValueError):
        NetworkAnalyzer(_classifier(), families=["Nope"])
