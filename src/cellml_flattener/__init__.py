"""cellml_flattener package root.

Flattens hierarchical CellML models (imports, encapsulation, connections) into
a single self-contained CellML 1.0 model, and compacts a model's variables into
a two-component summary model.
"""

from .pipeline.compact import compact_model
from .pipeline.flatten import flatten_model

__all__ = ["compact_model", "flatten_model"]
