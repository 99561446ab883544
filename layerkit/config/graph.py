"""Graph files: a whole layer graph described in YAML or JSON.

A graph file lists layer configs and, optionally, connections between them.
Without a `connections` section the layers form a series network, each
layer feeding the next.

    vars:
      classes: 10
    layers:
      - {type: imageinput, name: input, input_size: [28, 28, 1]}
      - {type: conv, name: conv, filter_size: 3, num_filters: 8, padding: same}
      - {type: relu, name: relu}
      - {type: fc, name: fc, output_size: "${classes}"}
      - {type: softmax, name: prob}
      - {type: classoutput, name: output}
"""
from __future__ import annotations

import json
from pathlib import Path

import yaml
from pydantic import BaseModel, Field

from layerkit.config.layer import LayerConfig
from layerkit.config.resolve import Resolver, normalize_type_names


class ConnectionConfig(BaseModel):
    """A directed edge written as `layer` or `layer/port` on both ends."""

    source: str
    destination: str


class GraphConfig(BaseModel):
    """A validated layer graph description."""

    name: str | None = None
    layers: list[LayerConfig] = Field(min_length=1)
    connections: list[ConnectionConfig] | None = None

    @classmethod
    def from_path(cls, path: Path) -> "GraphConfig":
        """Load and validate a graph from a JSON or YAML file.

        Supports variable substitution via a `vars` section at the top level.
        Variables can be referenced as `${var_name}` throughout the file.
        """
        text = path.read_text(encoding="utf-8")
        match path.suffix.lower():
            case ".json":
                payload = json.loads(text)
            case ".yml" | ".yaml":
                payload = yaml.safe_load(text)
            case s:
                raise ValueError(f"Unsupported format '{s}'")

        if payload is None:
            raise ValueError("Graph payload is empty.")
        if not isinstance(payload, dict):
            raise ValueError(f"Graph payload must be a dict, got {type(payload)!r}")

        vars_payload = payload.pop("vars", None)
        if vars_payload is not None:
            if not isinstance(vars_payload, dict):
                raise ValueError(
                    f"Graph vars must be a dict, got {type(vars_payload)!r}"
                )
            payload = Resolver(vars_payload).resolve(payload)

        payload = normalize_type_names(payload)
        return cls.model_validate(payload)
