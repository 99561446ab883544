"""Issues: the diagnostics a network analysis produces."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any

# Lists embedded in messages show at most this many entries
LIST_LIMIT = 5


class Severity(str, enum.Enum):
    ERROR = "Error"
    WARNING = "Warning"

    @property
    def rank(self) -> int:
        """Sort key; warnings are reported before errors."""
        return 0 if self is Severity.WARNING else 1


class Category(str, enum.Enum):
    """Whether an issue concerns one layer or the network as a whole."""

    LAYER = "Layer"
    NETWORK = "Network"


@dataclass(frozen=True)
class Issue:
    """One finding of a constraint rule.

    `layer_indices` are positions in the analyzer's sorted layer list and
    `layer_names` the matching deduced names. `id` reads `<Family>:<Rule>`.
    """

    layer_indices: tuple[int, ...]
    layer_names: tuple[str, ...]
    display_names: tuple[str, ...]
    severity: Severity
    category: Category
    id: str
    message: str
    user_data: dict[str, Any] = field(default_factory=dict, compare=False)

    @property
    def is_error(self) -> bool:
        return self.severity is Severity.ERROR

    def describe(self) -> str:
        if self.category is Category.NETWORK or not self.display_names:
            header = "Network"
        else:
            header = f"Layer {', '.join(self.display_names)}"
        return f"{header}: {self.message}"


def format_list(header: str, items: list[str], limit: int = LIST_LIMIT) -> str:
    """Header line followed by indented items, truncated past `limit`.

    A truncated list shows `limit - 1` items and a final "... and N more".
    """
    if not items:
        return ""
    shown = items
    if len(items) > limit:
        shown = items[: limit - 1] + [f"... and {len(items) - limit + 1} more"]
    return "\n".join([header, *(f"    {item}" for item in shown)])
