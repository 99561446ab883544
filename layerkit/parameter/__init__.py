"""Parameter containers used by layers.

- CachedParameter: host value with a lazily filled device cache
- LearnableParameter: trainable value with learn-rate and L2 factors, in a
  training and a prediction representation
- DynamicParameter: state such as recurrent cell/hidden values
"""
from layerkit.parameter.cached import CachedParameter
from layerkit.parameter.dynamic import DynamicParameter
from layerkit.parameter.learnable import (
    LearnableParameter,
    PredictionLearnableParameter,
    TrainingLearnableParameter,
    convert_to_prediction,
    convert_to_training,
)

__all__ = [
    "CachedParameter",
    "DynamicParameter",
    "LearnableParameter",
    "PredictionLearnableParameter",
    "TrainingLearnableParameter",
    "convert_to_prediction",
    "convert_to_training",
]
