"""Mapping between internal layers and their external descriptions.

Users describe layers with configs (or hand over user-authored layer
objects); the core computes with Layer instances. InternalExternalMap turns
one into the other in both directions, so an analyzed graph, with its
inferred sizes filled in, can be handed back as configs.
"""
from __future__ import annotations

import importlib
from typing import TYPE_CHECKING, Any

from layerkit.analyzer.graph import as_layer
from layerkit.config.graph import ConnectionConfig, GraphConfig
from layerkit.config.layer import LayerType
from layerkit.custom import CustomClassificationLayer, CustomLayer, CustomRegressionLayer
from layerkit.layer import Layer

if TYPE_CHECKING:
    from layerkit.analyzer.network import NetworkAnalyzer

_CUSTOM = (CustomLayer, CustomClassificationLayer, CustomRegressionLayer)


def _layer_class(layer_type: LayerType) -> type[Layer]:
    if layer_type is LayerType.CUSTOM:
        return CustomLayer
    module = importlib.import_module(f"{layer_type.module_name()}.{layer_type.name.lower()}")
    return getattr(module, layer_type.value)


class InternalExternalMap:
    """Two-way map between Layer classes and LayerType members."""

    def __init__(self) -> None:
        self._by_type: dict[LayerType, type[Layer]] = {t: _layer_class(t) for t in LayerType}
        self._by_class: dict[type[Layer], LayerType] = {cls: t for t, cls in self._by_type.items()}
        for cls in _CUSTOM:
            self._by_class[cls] = LayerType.CUSTOM

    def layer_class(self, layer_type: LayerType) -> type[Layer]:
        return self._by_type[layer_type]

    def layer_type(self, layer: Layer | type[Layer]) -> LayerType:
        cls = layer if isinstance(layer, type) else type(layer)
        try:
            return self._by_class[cls]
        except KeyError:
            raise ValueError(f"{cls.__name__} has no external layer type") from None

    def internal(self, external: Any) -> Layer:
        """Layer for a config or a user-authored layer."""
        return as_layer(external)

    def external(self, layer: Layer) -> Any:
        """Config for a built-in layer; the user object for a custom layer."""
        if isinstance(layer, _CUSTOM):
            return layer.user_layer
        self.layer_type(layer)
        return layer.to_config()

    def graph_config(self, analyzer: "NetworkAnalyzer", name: str | None = None) -> GraphConfig:
        """GraphConfig of an analyzed network, layers in analysis order."""
        layers = [layer.to_config() for layer in analyzer.sorted_layers]
        connections = [ConnectionConfig(source=s, destination=d) for s, d in analyzer.connections]
        return GraphConfig(name=name, layers=layers, connections=connections)
