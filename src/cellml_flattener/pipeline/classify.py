"""Classify how each variable of a component is defined by its math.

One structural pass over a component's math blocks yields a classification
for every variable it mentions. Blocks are scanned in document order and the
first block that matches a variable at all decides it; inside a block the
kinds are ranked constant, simple equality, algebraic, differential, then
variable of integration.
"""

from __future__ import annotations

from enum import Enum
from typing import Dict, List, Optional, Tuple

from ..document.mathml import Apply, Ci, Cn, Container, Math, Piecewise
from ..document.model import Component
from ..errors import InvalidNumber, MissingUnits


class Classification(Enum):
    DIFFERENTIAL = "differential"
    VARIABLE_OF_INTEGRATION = "variable_of_integration"
    ALGEBRAIC_LHS = "algebraic_lhs"
    CONSTANT_PARAMETER_EQUATION = "constant_parameter_equation"
    SIMPLE_EQUALITY = "simple_equality"
    UNKNOWN = "unknown"


PRIORITY = (
    Classification.CONSTANT_PARAMETER_EQUATION,
    Classification.SIMPLE_EQUALITY,
    Classification.ALGEBRAIC_LHS,
    Classification.DIFFERENTIAL,
    Classification.VARIABLE_OF_INTEGRATION,
)

Match = Tuple[Classification, Optional[Apply]]


def _equality_sides(node) -> Optional[Tuple[object, object]]:
    if not isinstance(node, Apply) or node.operator != "eq":
        return None
    args = node.arguments
    if len(args) != 2:
        return None
    return args[0], args[1]


def _first_order(bvar: Container) -> bool:
    for child in bvar.children:
        if isinstance(child, Container) and child.tag == "degree":
            literals = [c for c in child.children if isinstance(c, Cn)]
            try:
                return bool(literals) and literals[0].value == 1.0
            except ValueError:
                return False
    return True


def _equation_matches(eq: Apply) -> List[Tuple[str, Classification]]:
    sides = _equality_sides(eq)
    if sides is None:
        return []
    lhs, rhs = sides
    if isinstance(lhs, Ci):
        if isinstance(rhs, Cn):
            return [(lhs.name, Classification.CONSTANT_PARAMETER_EQUATION)]
        if isinstance(rhs, Ci):
            return [(lhs.name, Classification.SIMPLE_EQUALITY)]
        if isinstance(rhs, (Apply, Piecewise)):
            return [(lhs.name, Classification.ALGEBRAIC_LHS)]
        return []
    if isinstance(lhs, Apply) and lhs.operator == "diff":
        bvars = lhs.bvars
        targets = [a for a in lhs.arguments if isinstance(a, Ci)]
        if len(bvars) != 1 or len(targets) != 1 or bvars[0].variable is None:
            return []
        if not _first_order(bvars[0]):
            return []
        return [
            (targets[0].name, Classification.DIFFERENTIAL),
            (bvars[0].variable.name, Classification.VARIABLE_OF_INTEGRATION),
        ]
    return []


def _block_matches(block: Math) -> Dict[str, Match]:
    found: Dict[str, Match] = {}
    for eq in block.equations:
        for name, kind in _equation_matches(eq):
            current = found.get(name)
            if current is None or PRIORITY.index(kind) < PRIORITY.index(current[0]):
                found[name] = (kind, eq)
    return found


def classify_component(component: Component) -> Dict[str, Match]:
    """Classification and defining equation for every variable the component's math defines."""
    result: Dict[str, Match] = {}
    for block in component.math:
        if not isinstance(block, Math):
            continue
        for name, match in _block_matches(block).items():
            result.setdefault(name, match)
    return result


def classify(component: Component, variable_name: str) -> Match:
    return classify_component(component).get(variable_name, (Classification.UNKNOWN, None))


def constant_value(eq: Apply) -> Tuple[float, str]:
    """Value and units designation of a `var = literal` equation."""
    lhs, rhs = _equality_sides(eq)
    if rhs.units is None:
        raise MissingUnits(f"numeric literal assigned to '{lhs.name}' has no units designation")
    try:
        return rhs.value, rhs.units
    except ValueError as e:
        raise InvalidNumber(f"numeric literal '{rhs.text.strip()}' assigned to '{lhs.name}' is not a number") from e


def equality_names(eq: Apply) -> Tuple[str, str]:
    """The two variable names of a `var = otherVariable` equation, as written."""
    lhs, rhs = _equality_sides(eq)
    return lhs.name, rhs.name
