"""
Unit tests for graph-file variable interpolation and type normalization.
"""
from __future__ import annotations

import unittest
from typing import Any, cast

from layerkit.config.resolve import TYPE_ALIASES, Resolver, normalize_type_names


class TestResolver(unittest.TestCase):
    """Tests for Resolver variable interpolation."""

    def test_resolve_int_var(self) -> None:
        """Whole-string placeholders keep the variable's type."""
        resolver = Resolver({"classes": 10})
        self.assertEqual(resolver.resolve("${classes}"), 10)

    def test_resolve_embedded_var(self) -> None:
        """Embedded placeholders are formatted into the string."""
        resolver = Resolver({"stage": "conv", "k": 2})
        self.assertEqual(resolver.resolve("${stage}_${k}"), "conv_2")

    def test_resolve_nested(self) -> None:
        """Placeholders inside layer lists and dicts are resolved."""
        resolver = Resolver({"width": 28, "size": ["${width}", "${width}", 1]})
        result = cast(dict[str, Any], resolver.resolve({"layers": [{"input_size": "${size}"}]}))
        self.assertEqual(result["layers"][0]["input_size"], [28, 28, 1])

    def test_unknown_var(self) -> None:
        """Referencing an undefined variable fails."""
        with self.assertRaises(ValueError):
            Resolver({}).resolve("${missing}")

    def test_cycle(self) -> None:
        """Variables referring to each other fail instead of recursing."""
        resolver = Resolver({"a": "${b}", "b": "${a}"})
        with self.assertRaises(ValueError) as ctx:
            resolver.resolve("${a}")
        self.assertIn("Cycle", str(ctx.exception))


class TestNormalizeTypeNames(unittest.TestCase):
    """Tests for layer type shorthand."""

    def test_aliases(self) -> None:
        """Shorthand names become layer class names, case-insensitively."""
        payload = {"layers": [{"type": "Conv"}, {"type": "fc"}, {"type": "SoftmaxLayer"}]}
        result = cast(dict[str, Any], normalize_type_names(payload))
        self.assertEqual(
            [layer["type"] for layer in result["layers"]],
            ["Convolution2DLayer", "FullyConnectedLayer", "SoftmaxLayer"],
        )

    def test_every_alias_names_a_layer_type(self) -> None:
        """Every alias targets a known layer type."""
        from layerkit.config.layer import LayerType

        values = {t.value for t in LayerType}
        for alias, target in TYPE_ALIASES.items():
            self.assertIn(target, values, alias)


if __name__ == "__main__":
    unittest.main()
