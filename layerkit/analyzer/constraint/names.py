"""Name rules."""
from __future__ import annotations

from layerkit.analyzer.constraint.registry import ConstraintContext, rule


@rule("Names", "DuplicatedNames")
def duplicated_names(test: ConstraintContext) -> None:
    for i, la in enumerate(test.layer_analyzers):
        renamed = la.name != la.original_name
        # unnamed layers were given a default name, not renamed
        if renamed and la.original_name:
            test.add_layer_warning(
                i,
                "Names:DuplicatedNames",
                f"Layer '{la.original_name}' was renamed to '{la.name}' "
                "because another layer has the same name.",
            )
