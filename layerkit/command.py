"""Typed CLI command payloads.

Each command type represents a distinct user intent. The CLI parses arguments
into these typed objects, which are then dispatched to the appropriate handler.
"""
from __future__ import annotations

from dataclasses import dataclass

from layerkit.config.graph import GraphConfig


@dataclass(frozen=True, slots=True)
class AnalyzeCommand:
    """Request to analyze a graph file and report its issues."""

    graph: GraphConfig
    rules: list[str] | None = None


@dataclass(frozen=True, slots=True)
class SummaryCommand:
    """Request to list a graph's layers with their propagated sizes."""

    graph: GraphConfig


Command = AnalyzeCommand | SummaryCommand
