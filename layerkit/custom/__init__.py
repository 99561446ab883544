"""Custom layers: user-authored layers behind the internal Layer API.

Users subclass UserLayer (or one of the output layer bases) and implement
plain tensor methods. `wrap_user_layer` puts an adapter around the object
that syncs learnable parameters, wraps exceptions raised by user code and
verifies what it returns.
"""
from layerkit.custom.adapter import (
    CustomClassificationLayer,
    CustomLayer,
    CustomRegressionLayer,
    probe_data,
    wrap_user_layer,
)
from layerkit.custom.user import (
    DeclaredParameter,
    UserClassificationLayer,
    UserLayer,
    UserOutputLayer,
    UserRegressionLayer,
    is_forward_overridden,
)
from layerkit.custom.verifier import CustomLayerVerifier, validate_method_signatures

__all__ = [
    "CustomClassificationLayer",
    "CustomLayer",
    "CustomLayerVerifier",
    "CustomRegressionLayer",
    "DeclaredParameter",
    "UserClassificationLayer",
    "UserLayer",
    "UserOutputLayer",
    "UserRegressionLayer",
    "is_forward_overridden",
    "probe_data",
    "validate_method_signatures",
    "wrap_user_layer",
]
