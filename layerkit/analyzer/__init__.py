"""Static network analysis.

    from layerkit.analyzer import LayerGraph, NetworkAnalyzer

    analyzer = NetworkAnalyzer(LayerGraph.from_path(Path("network.yml")))
    analyzer.report()
    analyzer.throw_issues_if_any()
"""
from __future__ import annotations

from layerkit.analyzer.constraint import Connection, ConstraintContext, families, rule
from layerkit.analyzer.graph import LayerGraph, as_layer
from layerkit.analyzer.issue import Category, Issue, Severity
from layerkit.analyzer.layer import LayerAnalyzer, Port
from layerkit.analyzer.network import NetworkAnalyzer, deduce_names, pseudo_topological_order

__all__ = [
    "Category",
    "Connection",
    "ConstraintContext",
    "Issue",
    "LayerAnalyzer",
    "LayerGraph",
    "NetworkAnalyzer",
    "Port",
    "Severity",
    "as_layer",
    "deduce_names",
    "families",
    "pseudo_topological_order",
    "rule",
]
