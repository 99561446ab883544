"""
__main__ provides the console-script entrypoint for the layerkit package.
"""
from __future__ import annotations

import sys
import traceback

from layerkit.analyzer import LayerGraph, NetworkAnalyzer, families
from layerkit.cli import CLI
from layerkit.command import AnalyzeCommand, SummaryCommand
from layerkit.console import logger
from layerkit.errors import LayerkitError


def main(argv: list[str] | None = None) -> None:
    """
    main is the entrypoint for the `layerkit` console script.
    """
    try:
        command = CLI().parse_command(argv)

        match command:
            case AnalyzeCommand() as c:
                analyzer = NetworkAnalyzer(LayerGraph.from_config(c.graph), families=c.rules)
                logger.header("Analysis", c.graph.name)
                logger.info(f"Rule families: {', '.join(c.rules or families())}")
                analyzer.report()
                if analyzer.has_errors:
                    logger.error(f"{len(analyzer.errors)} error(s) found")
                    sys.exit(1)
            case SummaryCommand() as c:
                analyzer = NetworkAnalyzer(LayerGraph.from_config(c.graph), families=[])
                logger.header("Summary", c.graph.name)
                logger.key_value(
                    {
                        "layers": len(analyzer.layer_analyzers),
                        "connections": len(analyzer.connections),
                        "series": analyzer.is_series_network,
                    }
                )
                analyzer.summary()
            case _:
                raise ValueError(f"Invalid command payload: {type(command)!r}")
    except SystemExit as e:
        code = int(e.code) if isinstance(e.code, int) else 1
        if code == 0:
            raise
        sys.exit(code)
    except ValueError as e:
        print(f"error: {e}", file=sys.stderr)
        print(f"details: {e!r}", file=sys.stderr)
        sys.exit(1)
    except LayerkitError as e:
        print("error while analyzing the network.", file=sys.stderr)
        print(f"details: {e!r}", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"unexpected error: {type(e).__name__}: {e}", file=sys.stderr)
        traceback.print_exc()
        sys.exit(1)


if __name__ == "__main__":
    main()
