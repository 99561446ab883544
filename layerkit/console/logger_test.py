"""
Unit tests for the console logger module.
"""
from __future__ import annotations

import io
import re
import unittest

from rich.console import Console

from layerkit.analyzer.issue import Category, Issue, Severity
from layerkit.console.logger import LAYERKIT_THEME, Logger, get_logger


def strip_ansi(text: str) -> str:
    """Remove ANSI escape codes from text."""
    ansi_escape = re.compile(r'\x1b\[[0-9;]*m')
    return ansi_escape.sub('', text)


class TestLogger(unittest.TestCase):
    """Tests for logging methods and the issue table."""

    def setUp(self) -> None:
        """Set up a logger writing to a captured console."""
        self.output = io.StringIO()
        self.logger = Logger()
        self.logger.console = Console(file=self.output, force_terminal=True, width=200, theme=LAYERKIT_THEME)

    def test_warning_includes_icon(self) -> None:
        """warning() includes the warning icon."""
        self.logger.warning("Layer 'conv' was renamed")
        output = strip_ansi(self.output.getvalue())
        self.assertIn("⚠", output)
        self.assertIn("Layer 'conv' was renamed", output)

    def test_warning_once(self) -> None:
        """warning_once() prints a key's warning a single time."""
        self.logger.warning_once("oom", "low memory")
        self.logger.warning_once("oom", "low memory")
        self.logger.warning_once("other", "something else")
        output = strip_ansi(self.output.getvalue())
        self.assertEqual(output.count("low memory"), 1)
        self.assertIn("something else", output)

    def test_issues_table_lists_warnings_first(self) -> None:
        """issues() prints one row per issue, warnings before errors."""
        error = Issue((0,), ("add",), ("'add'",), Severity.ERROR, Category.LAYER, "Connections:MissingInputs", "Missing input.")
        warning = Issue((1,), ("relu_1",), ("'relu_1'",), Severity.WARNING, Category.LAYER, "Names:DuplicatedNames", "Renamed.")
        table = self.logger.issues([error, warning])
        self.assertEqual(table.row_count, 2)
        output = strip_ansi(self.output.getvalue())
        self.assertLess(output.index("Names:DuplicatedNames"), output.index("Connections:MissingInputs"))


class TestGetLogger(unittest.TestCase):
    """Tests for the module-level singleton."""

    def test_singleton(self) -> None:
        """get_logger() returns the same instance every time."""
        self.assertIs(get_logger(), get_logger())


if __name__ == "__main__":
    unittest.main()
