"""Rule registry and the context rules run against.

A rule is a plain function taking a ConstraintContext. Decorating it with
`@rule("Family", "Name")` registers it; rule families run in the order
their modules were imported and rules in definition order.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Callable, Iterable, NamedTuple, Sequence

from layerkit.analyzer.issue import Category, Issue, Severity

if TYPE_CHECKING:
    from layerkit.analyzer.layer import LayerAnalyzer

logger = logging.getLogger(__name__)


class Connection(NamedTuple):
    """One row of the internal connection matrix, all indices 0-based."""

    source: int
    source_port: int
    destination: int
    destination_port: int


RuleFunction = Callable[["ConstraintContext"], None]

RULES: dict[str, dict[str, RuleFunction]] = {}


def rule(family: str, name: str) -> Callable[[RuleFunction], RuleFunction]:
    """Register `fn` as rule `name` of `family`."""

    def register(fn: RuleFunction) -> RuleFunction:
        rules = RULES.setdefault(family, {})
        if name in rules:
            raise ValueError(f"rule {family}:{name} is already registered")
        rules[name] = fn
        return fn

    return register


def families() -> list[str]:
    return list(RULES)


@dataclass
class ConstraintContext:
    """What a rule sees of the network, and where its issues go."""

    layer_analyzers: list["LayerAnalyzer"]
    connections: list[tuple[str, str]]
    internal_connections: list[Connection]
    issues: list[Issue] = field(default_factory=list)

    def sources_of(self, index: int) -> list[int]:
        return [c.source for c in self.internal_connections if c.destination == index]

    def source_name(self, index: int, port: int) -> str:
        """`layer 'x'`, or `output 'p' of layer 'x'` for multi-output layers."""
        la = self.layer_analyzers[index]
        if len(la.outputs) <= 1 or port >= len(la.outputs):
            return f"layer {la.display_name}"
        return f"output '{la.outputs[port].name}' of layer {la.display_name}"

    def destination_name(self, index: int, port: int) -> str:
        la = self.layer_analyzers[index]
        if len(la.inputs) <= 1 or port >= len(la.inputs):
            return f"layer {la.display_name}"
        return f"input '{la.inputs[port].name}' of layer {la.display_name}"

    def add_issue(
        self,
        severity: Severity,
        category: Category,
        layers: Iterable[int],
        id: str,
        message: str,
        **user_data: Any,
    ) -> Issue:
        indices = tuple(dict.fromkeys(layers))
        issue = Issue(
            layer_indices=indices,
            layer_names=tuple(self.layer_analyzers[i].name for i in indices),
            display_names=tuple(self.layer_analyzers[i].display_name for i in indices),
            severity=severity,
            category=category,
            id=id,
            message=message,
            user_data=user_data,
        )
        self.issues.append(issue)
        return issue

    def add_layer_error(self, index: int, id: str, message: str, **user_data: Any) -> Issue:
        return self.add_issue(Severity.ERROR, Category.LAYER, [index], id, message, **user_data)

    def add_layer_warning(self, index: int, id: str, message: str, **user_data: Any) -> Issue:
        return self.add_issue(Severity.WARNING, Category.LAYER, [index], id, message, **user_data)

    def add_network_error(self, layers: Iterable[int], id: str, message: str, **user_data: Any) -> Issue:
        return self.add_issue(Severity.ERROR, Category.NETWORK, layers, id, message, **user_data)


def apply_rules(context: ConstraintContext, selected: Sequence[str] | None = None) -> list[Issue]:
    """Run the registered rules of the `selected` families (all by default)."""
    names = families() if selected is None else list(selected)
    for family in names:
        if family not in RULES:
            raise ValueError(f"unknown rule family '{family}'; expected one of {families()}")
        for name, fn in RULES[family].items():
            logger.debug("running rule %s:%s", family, name)
            fn(context)
    return context.issues
