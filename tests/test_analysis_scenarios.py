"""End-to-end analysis of small, deliberately broken layer graphs."""
from __future__ import annotations

import pytest

from layerkit.analyzer import LayerGraph, NetworkAnalyzer
from layerkit.config.layer import (
    AdditionLayerConfig,
    ClassificationOutputLayerConfig,
    ImageInputLayerConfig,
    RegressionOutputLayerConfig,
    ReLULayerConfig,
    SoftmaxLayerConfig,
)
from layerkit.errors import NetworkAnalysisError


def _half_connected_addition() -> LayerGraph:
    return LayerGraph(
        [
            ImageInputLayerConfig(input_size=(28, 28, 1), name="input"),
            AdditionLayerConfig(num_inputs=2, name="add"),
            SoftmaxLayerConfig(name="softmax"),
            ClassificationOutputLayerConfig(num_classes=10, name="output"),
        ],
        [("input", "add/in2"), ("add", "softmax"), ("softmax", "output")],
    )


def test_unconnected_addition_input_is_reported_once() -> None:
    analyzer = NetworkAnalyzer(_half_connected_addition())

    assert [issue.id for issue in analyzer.issues] == ["Connections:MissingInputs"]
    error = analyzer.errors[0]
    assert error.layer_names == ("add",)
    assert "in1" in error.message
    assert analyzer.has_errors


def test_unconnected_addition_input_blocks_training() -> None:
    analyzer = NetworkAnalyzer(_half_connected_addition())
    with pytest.raises(NetworkAnalysisError) as excinfo:
        analyzer.throw_issues_if_any()
    assert [issue.id for issue in excinfo.value.issues] == ["Connections:MissingInputs"]


@pytest.mark.parametrize("reverse", [False, True])
def test_cycle_is_reported_once(reverse: bool) -> None:
    layers = [
        ImageInputLayerConfig(input_size=(2, 2, 1), name="input"),
        AdditionLayerConfig(num_inputs=2, name="A"),
        ReLULayerConfig(name="B"),
        RegressionOutputLayerConfig(name="output"),
    ]
    connections = [("input", "A/in1"), ("A", "B"), ("B", "A/in2"), ("B", "output")]
    if reverse:
        layers.reverse()
        connections.reverse()

    analyzer = NetworkAnalyzer(LayerGraph(layers, connections))

    cycles = [issue for issue in analyzer.issues if issue.id == "Connections:ConnectionCycle"]
    assert len(cycles) == 1
    assert set(cycles[0].layer_names) == {"A", "B"}
    assert [issue.id for issue in analyzer.errors] == ["Connections:ConnectionCycle"]
