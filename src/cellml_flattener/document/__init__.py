"""CellML object model, MathML tree, loader and writer."""

from .loader import DocumentLoader
from .model import Component, ComponentKey, Model, Variable, VariableKey
from .writer import round_trip, write_model

__all__ = [
    "Component",
    "ComponentKey",
    "DocumentLoader",
    "Model",
    "Variable",
    "VariableKey",
    "round_trip",
    "write_model",
]
