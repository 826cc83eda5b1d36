"""Units reduction and canonical-form equivalence across documents."""

from .canonical import UnitsCanonicalizer, equivalent
from .reduction import BUILTIN_UNITS, BaseUnitInstance, CanonicalForm, UnitsReducer

__all__ = [
    "BUILTIN_UNITS",
    "BaseUnitInstance",
    "CanonicalForm",
    "UnitsCanonicalizer",
    "UnitsReducer",
    "equivalent",
]
