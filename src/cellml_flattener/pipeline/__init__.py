from .classify import Classification, classify, classify_component, constant_value, equality_names
from .compact import Compactor, compact_model
from .flatten import Flattener, flatten_model

__all__ = [
    "Classification",
    "Compactor",
    "Flattener",
    "classify",
    "classify_component",
    "compact_model",
    "constant_value",
    "equality_names",
    "flatten_model",
]
