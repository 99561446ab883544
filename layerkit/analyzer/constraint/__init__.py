"""Constraint rules applied by the NetworkAnalyzer.

Importing this package registers the built-in rule families in order:
Architecture, Connections, Names, LSTM, Propagation, CustomLayers. A new
rule is one decorated function in the module of its family.
"""
from layerkit.analyzer.constraint.registry import (
    RULES,
    Connection,
    ConstraintContext,
    apply_rules,
    families,
    rule,
)
from layerkit.analyzer.constraint import architecture, connections, names, lstm, propagation, custom  # noqa: E402,F401  isort:skip

__all__ = [
    "RULES",
    "Connection",
    "ConstraintContext",
    "apply_rules",
    "families",
    "rule",
]
