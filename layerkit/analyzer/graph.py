"""LayerGraph: layers plus the named connections between them."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Iterable, Sequence

from pydantic import BaseModel

from layerkit.config.graph import GraphConfig
from layerkit.custom import wrap_user_layer
from layerkit.layer import Layer


def as_layer(value: Any) -> Layer:
    """Layer for a Layer, a layer config or a user-authored layer."""
    if isinstance(value, Layer):
        return value
    if isinstance(value, BaseModel) and hasattr(value, "build"):
        return value.build()
    return wrap_user_layer(value)


class LayerGraph:
    """An ordered list of layers and their connections.

    Connections are `(source, destination)` pairs written as `layer` or
    `layer/port`. A graph built without connections is a series network:
    every layer feeds the next one.
    """

    def __init__(
        self,
        layers: Iterable[Any],
        connections: Sequence[tuple[str, str]] | None = None,
    ) -> None:
        self.layers: list[Layer] = [as_layer(layer) for layer in layers]
        if not self.layers:
            raise ValueError("a layer graph needs at least one layer")
        self.connections: list[tuple[str, str]] | None = (
            None if connections is None else [(str(s), str(d)) for s, d in connections]
        )

    def __len__(self) -> int:
        return len(self.layers)

    @property
    def is_series(self) -> bool:
        return self.connections is None

    @classmethod
    def from_layers(cls, layers: Iterable[Any]) -> "LayerGraph":
        return cls(layers)

    @classmethod
    def from_config(cls, config: GraphConfig) -> "LayerGraph":
        layers = [layer.build() for layer in config.layers]
        if config.connections is None:
            return cls(layers)
        return cls(layers, [(c.source, c.destination) for c in config.connections])

    @classmethod
    def from_path(cls, path: Path) -> "LayerGraph":
        return cls.from_config(GraphConfig.from_path(path))
