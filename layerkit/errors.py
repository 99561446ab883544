"""Exception types raised by layerkit.

Configuration and argument problems raise plain ValueError, like the rest
of the package. The classes here cover the failures callers need to tell
apart: a network that failed analysis, a layer that cannot handle its
input size, and errors that originate in user-authored layer code.
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Sequence

if TYPE_CHECKING:
    from layerkit.analyzer.issue import Issue


class LayerkitError(Exception):
    """Base class for all layerkit errors."""


class NetworkAnalysisError(LayerkitError):
    """Raised when a layer graph has one or more error-severity issues.

    The individual issues stay available on `issues` so callers can report
    every problem the analysis found, not only the first one.
    """

    def __init__(self, issues: Sequence["Issue"]) -> None:
        self.issues = list(issues)
        lines = [f"Network: {len(self.issues)} error(s) found."]
        lines.extend(f"  {issue.describe()}" for issue in self.issues)
        super().__init__("\n".join(lines))


class LayerSizeError(LayerkitError, ValueError):
    """A layer cannot accept the input size it was given."""


class NotFinalizedError(LayerkitError):
    """Prediction was requested from a layer that still needs statistics."""


class NotEnoughIndicesError(LayerkitError):
    """Max pooling could not locate one index per pooling window.

    Happens when an entire pooling window holds non-finite values.
    """


class CustomLayerVerificationError(LayerkitError):
    """A custom layer broke its contract.

    `id` is the short verification failure name, e.g. `WrongBackwardNargout`.
    """

    def __init__(self, id: str, message: str) -> None:
        self.id = id
        super().__init__(message)


class UserCodeError(LayerkitError):
    """An exception escaped from user-authored layer code.

    The original exception is chained as `__cause__`; `layer_name` names the
    layer the fault belongs to.
    """

    action = "running"

    def __init__(self, layer_name: str, cause: BaseException) -> None:
        self.layer_name = layer_name
        self.cause = cause
        super().__init__(
            f"Layer '{layer_name}': error while {self.action}: "
            f"{type(cause).__name__}: {cause}"
        )


class PredictErrored(UserCodeError):
    action = "calling predict"


class ForwardErrored(UserCodeError):
    action = "calling forward"


class BackwardErrored(UserCodeError):
    action = "calling backward"


class ForwardLossErrored(UserCodeError):
    action = "calling forward_loss"


class BackwardLossErrored(UserCodeError):
    action = "calling backward_loss"
