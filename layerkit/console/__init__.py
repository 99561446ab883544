"""Rich, structured console output for layerkit.

Analysis runs report warnings, errors and layer summaries. This module
provides consistent terminal output using Rich, with semantic log levels
and structured data display.

Usage:
    from layerkit.console import logger

    logger.info("Analyzing network...")
    logger.success("No issues found")
    logger.warning("Layer 'conv' was renamed")
    logger.error("Network has errors")

    # Structured output
    logger.header("Analysis", "network.yml")
    logger.key_value({"layers": 12, "connections": 14})
    logger.issues(analyzer.issues)
"""
from layerkit.console.logger import Logger, get_logger

# Module-level singleton for convenient import
logger = get_logger()

__all__ = ["Logger", "get_logger", "logger"]
