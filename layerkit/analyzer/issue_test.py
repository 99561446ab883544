"""Test issue rendering."""
from __future__ import annotations

import unittest

from layerkit.analyzer.issue import Category, Issue, Severity, format_list


class FormatListTest(unittest.TestCase):
    """Test lists embedded in issue messages."""

    def test_short_list(self) -> None:
        """test lists up to the limit are shown in full"""
        text = format_list("Layers:", ["a", "b", "c", "d", "e"])
        self.assertEqual(text.splitlines(), ["Layers:", "    a", "    b", "    c", "    d", "    e"])

    def test_truncated_list(self) -> None:
        """test longer lists end with a count of the hidden items"""
        text = format_list("Layers:", [str(i) for i in range(8)])
        lines = text.splitlines()
        self.assertEqual(len(lines), 6)
        self.assertEqual(lines[-1], "    ... and 4 more")

    def test_empty_list(self) -> None:
        """test an empty list renders nothing"""
        self.assertEqual(format_list("Layers:", []), "")


def test_describe_layer_and_network_issues() -> None:
    layer_issue = Issue((1,), ("fc",), ("'fc'",), Severity.ERROR, Category.LAYER, "X:Y", "broken")
    network_issue = Issue((0, 1), ("a", "b"), ("'a'", "'b'"), Severity.ERROR, Category.NETWORK, "X:Z", "cycle")
    assert layer_issue.describe() == "Layer 'fc': broken"
    assert network_issue.describe() == "Network: cycle"
    assert layer_issue.is_error
    assert Severity.WARNING.rank < Severity.ERROR.rank
