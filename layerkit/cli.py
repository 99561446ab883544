"""Command-line interface for layerkit.

Commands:
- analyze: Run every constraint rule over a graph file and print the issues
- summary: Print the graph's layers in analysis order with their sizes
"""
from __future__ import annotations

import argparse
from pathlib import Path

from layerkit.command import AnalyzeCommand, Command, SummaryCommand
from layerkit.config.graph import GraphConfig


class _Args(argparse.Namespace):
    """Typed namespace for CLI arguments."""

    command: str | None = None
    graph: Path | None = None
    rules: list[str] | None = None


class CLI(argparse.ArgumentParser):
    """Subcommands for analyzing layer graph files."""

    def __init__(self) -> None:
        super().__init__(
            prog="layerkit",
            description="Layerkit - layer execution and static network analysis.",
        )

        _ = self.add_argument(
            "--version",
            action="version",
            version="%(prog)s 0.1.0",
            help="Show the version and exit.",
        )

        subparsers = self.add_subparsers(
            dest="command",
            parser_class=argparse.ArgumentParser,
        )

        analyze_parser = subparsers.add_parser(
            "analyze",
            help="Analyze a graph file and print the issues found.",
        )
        _ = analyze_parser.add_argument(
            "graph",
            type=Path,
            help="Graph path (.json, .yml, or .yaml).",
        )
        _ = analyze_parser.add_argument(
            "--rules",
            nargs="+",
            default=None,
            metavar="FAMILY",
            help=" ".join(
                [
                    "Only run these rule families,",
                    "e.g. Architecture Connections.",
                    "All families run by default.",
                ]
            ),
        )

        summary_parser = subparsers.add_parser(
            "summary",
            help="List the layers of a graph file with their propagated sizes.",
        )
        _ = summary_parser.add_argument(
            "graph",
            type=Path,
            help="Graph path (.json, .yml, or .yaml).",
        )

    def parse_command(self, argv: list[str] | None = None) -> Command:
        """Parse CLI arguments into a typed command payload."""
        args = self.parse_args(argv, namespace=_Args())

        match args.command:
            case "analyze":
                if args.graph is None:
                    raise ValueError("analyze requires a graph path.")
                return AnalyzeCommand(graph=GraphConfig.from_path(args.graph), rules=args.rules)
            case "summary":
                if args.graph is None:
                    raise ValueError("summary requires a graph path.")
                return SummaryCommand(graph=GraphConfig.from_path(args.graph))
            case _:
                self.print_help()
                raise SystemExit(2)
