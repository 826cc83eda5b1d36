from __future__ import annotations

from enum import Enum


class CellMLToolError(Exception):
    """Base class for every fatal error raised by the flattener and compactor."""

    kind = "Error"

    def __init__(self, msg: str):
        self.msg = msg
        super().__init__(msg)

    def __str__(self) -> str:
        return f"{self.kind}: {self.msg}"

    def __repr__(self) -> str:
        return type(self).__name__ + "(" + repr(self.msg) + ")"


class LoadError(CellMLToolError):
    kind = "LoadError"


class RelevanceError(CellMLToolError):
    kind = "RelevanceError"


class MissingImportTarget(CellMLToolError):
    kind = "MissingImportTarget"


class MissingUnits(CellMLToolError):
    kind = "MissingUnits"


class UnresolvableInitialValue(CellMLToolError):
    kind = "UnresolvableInitialValue"


class InvalidNumber(CellMLToolError):
    kind = "InvalidNumber"


class SourceVariableError(CellMLToolError):
    kind = "SourceVariableError"


class Advisory(str, Enum):
    """Non-fatal conditions: recorded in the report, processing continues."""

    ENCAPSULATION_INCONSISTENCY = "EncapsulationInconsistency"
    DUPLICATE_UNITS_SKIPPED = "DuplicateUnitsSkipped"
    UNITS_RENAMED = "UnitsRenamed"
    DUPLICATE_COMPONENT_SKIPPED = "DuplicateComponentSkipped"
    MISSING_ENCAPSULATION_COMPONENT = "MissingEncapsulationComponent"
    UNRESOLVED_INITIAL_VALUE = "UnresolvedInitialValue"
