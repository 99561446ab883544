from __future__ import annotations

import io
import sys
import tempfile
import tomllib
import unittest
from contextlib import redirect_stderr
from pathlib import Path

from layerkit.__main__ import main
from layerkit.cli import CLI
from layerkit.command import AnalyzeCommand, SummaryCommand

GOOD_GRAPH = """\
name: mnist
vars:
  classes: 10
layers:
  - {type: imageinput, name: input, input_size: [28, 28, 1]}
  - {type: fc, name: fc, output_size: "${classes}"}
  - {type: softmax, name: prob}
  - {type: classoutput, name: output}
"""

BROKEN_GRAPH = """\
layers:
  - {type: imageinput, name: input, input_size: [28, 28, 1]}
  - {type: addition, name: add, num_inputs: 2}
  - {type: softmax, name: prob}
  - {type: classoutput, name: output}
connections:
  - {source: input, destination: add/in2}
  - {source: add, destination: prob}
  - {source: prob, destination: output}
"""


class CLITest(unittest.TestCase):
    def setUp(self) -> None:
        self.tmp = tempfile.TemporaryDirectory()
        self.addCleanup(self.tmp.cleanup)
        self.root = Path(self.tmp.name)

    def write(self, name: str, text: str) -> Path:
        path = self.root / name
        path.write_text(text, encoding="utf-8")
        return path

    def test_analyze_command(self) -> None:
        path = self.write("mnist.yml", GOOD_GRAPH)
        command = CLI().parse_command(["analyze", str(path), "--rules", "Architecture", "Connections"])
        self.assertIsInstance(command, AnalyzeCommand)
        assert isinstance(command, AnalyzeCommand)
        self.assertEqual(command.graph.name, "mnist")
        self.assertEqual(command.rules, ["Architecture", "Connections"])
        self.assertEqual(command.graph.layers[1].output_size, 10)

    def test_summary_command(self) -> None:
        path = self.write("mnist.yaml", GOOD_GRAPH)
        command = CLI().parse_command(["summary", str(path)])
        self.assertIsInstance(command, SummaryCommand)
        self.assertEqual(len(command.graph.layers), 4)

    def test_no_command(self) -> None:
        with redirect_stderr(io.StringIO()), self.assertRaises(SystemExit):
            CLI().parse_command([])

    def test_unsupported_suffix(self) -> None:
        path = self.write("mnist.txt", GOOD_GRAPH)
        with self.assertRaises(ValueError):
            CLI().parse_command(["analyze", str(path)])

    def test_main_clean_graph(self) -> None:
        path = self.write("mnist.yml", GOOD_GRAPH)
        main(["analyze", str(path)])

    def test_main_summary(self) -> None:
        path = self.write("mnist.yml", GOOD_GRAPH)
        main(["summary", str(path)])

    def test_main_exits_on_errors(self) -> None:
        path = self.write("broken.yml", BROKEN_GRAPH)
        with self.assertRaises(SystemExit) as ctx:
            main(["analyze", str(path)])
        self.assertEqual(ctx.exception.code, 1)

    def test_main_reports_bad_files(self) -> None:
        path = self.write("empty.yml", "")
        stderr = io.StringIO()
        with redirect_stderr(stderr), self.assertRaises(SystemExit) as ctx:
            main(["analyze", str(path)])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("empty", stderr.getvalue())


class ConsoleScriptTest(unittest.TestCase):
    def test_pyproject_declares_console_script(self) -> None:
        root = Path(__file__).resolve().parents[1]
        data = tomllib.loads((root / "pyproject.toml").read_text(encoding="utf-8"))
        scripts = data.get("project", {}).get("scripts", {})
        self.assertEqual(scripts.get("layerkit"), "layerkit.__main__:main")

    def test_module_entrypoint_is_importable(self) -> None:
        self.assertTrue(callable(main))
        self.assertIn("layerkit", sys.modules)


if __name__ == "__main__":
    unittest.main()
