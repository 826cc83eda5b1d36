"""Units-reduction service: reduce a units name to its canonical base-unit form.

A canonical form is a tuple of `BaseUnitInstance` sorted by base-unit name.
The overall scale factor is folded into the first entry's `prefix`, so two
units definitions are equivalent exactly when their forms compare equal.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field

from ..document.model import Component, Model, Units

logger = logging.getLogger(__name__)


class BaseUnitInstance(BaseModel):
    """One entry of a canonical units form."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(..., description="Base unit name, e.g. 'second'")
    prefix: float = Field(1.0, description="Multiplicative scale applied to the base unit")
    exponent: float = Field(1.0, description="Power the base unit is raised to")
    offset: float = Field(0.0, description="Additive offset (only for single-unit definitions)")


CanonicalForm = Tuple[BaseUnitInstance, ...]


def _normalise(x: float) -> float:
    return float(f"{x:.15g}")


@dataclass
class _Reduced:
    exponents: Dict[str, float] = field(default_factory=dict)
    factor: float = 1.0
    offset: float = 0.0

    def to_canonical(self) -> CanonicalForm:
        names = sorted(n for n, e in self.exponents.items() if _normalise(e) != 0.0)
        factor = _normalise(self.factor)
        if not names:
            return (BaseUnitInstance(name="dimensionless", prefix=factor, exponent=1.0, offset=0.0),)
        offset = _normalise(self.offset) if len(names) == 1 and self.exponents[names[0]] == 1.0 else 0.0
        form = []
        for i, name in enumerate(names):
            form.append(
                BaseUnitInstance(
                    name=name,
                    prefix=factor if i == 0 else 1.0,
                    exponent=_normalise(self.exponents[name]),
                    offset=offset,
                )
            )
        return tuple(form)


def _si(factor: float = 1.0, offset: float = 0.0, **exponents: float) -> _Reduced:
    return _Reduced(dict(exponents), factor, offset)


BUILTIN_UNITS: Dict[str, _Reduced] = {
    "ampere": _si(ampere=1),
    "candela": _si(candela=1),
    "kelvin": _si(kelvin=1),
    "kilogram": _si(kilogram=1),
    "metre": _si(metre=1),
    "meter": _si(metre=1),
    "mole": _si(mole=1),
    "second": _si(second=1),
    "dimensionless": _si(),
    "becquerel": _si(second=-1),
    "celsius": _si(offset=273.15, kelvin=1),
    "coulomb": _si(second=1, ampere=1),
    "farad": _si(metre=-2, kilogram=-1, second=4, ampere=2),
    "gram": _si(1e-3, kilogram=1),
    "gray": _si(metre=2, second=-2),
    "henry": _si(metre=2, kilogram=1, second=-2, ampere=-2),
    "hertz": _si(second=-1),
    "joule": _si(metre=2, kilogram=1, second=-2),
    "katal": _si(second=-1, mole=1),
    "liter": _si(1e-3, metre=3),
    "litre": _si(1e-3, metre=3),
    "lumen": _si(candela=1),
    "lux": _si(metre=-2, candela=1),
    "newton": _si(metre=1, kilogram=1, second=-2),
    "ohm": _si(metre=2, kilogram=1, second=-3, ampere=-2),
    "pascal": _si(metre=-1, kilogram=1, second=-2),
    "radian": _si(),
    "siemens": _si(metre=-2, kilogram=-1, second=3, ampere=2),
    "sievert": _si(metre=2, second=-2),
    "steradian": _si(),
    "tesla": _si(kilogram=1, second=-2, ampere=-1),
    "volt": _si(metre=2, kilogram=1, second=-3, ampere=-1),
    "watt": _si(metre=2, kilogram=1, second=-3),
    "weber": _si(metre=2, kilogram=1, second=-2, ampere=-1),
}


@dataclass
class UnitsLocation:
    """Where a units definition was found: the definition and the scope it lives in."""

    units: Units
    model: Model
    component: Optional[Component] = None


class UnitsReducer:
    """Reduce units names to canonical forms within a model/component scope."""

    def find_units(self, name: str, model: Model, component: Optional[Component] = None) -> Optional[UnitsLocation]:
        """Find the explicit definition `name` refers to; None for built-ins and unknown names."""
        if component is not None and name in component.units:
            return UnitsLocation(component.units[name], model, component)
        if name in model.units:
            return UnitsLocation(model.units[name], model)
        for imp in model.imports:
            for iu in imp.units:
                if iu.name == name and imp.model is not None:
                    return self.find_units(iu.units_ref, imp.model)
        return None

    def reduce(self, name: str, model: Model, component: Optional[Component] = None) -> Optional[CanonicalForm]:
        reduced = self._reduce(name, model, component, ())
        return reduced.to_canonical() if reduced is not None else None

    def is_builtin(self, name: str, model: Model, component: Optional[Component] = None) -> bool:
        return self.find_units(name, model, component) is None and name in BUILTIN_UNITS

    def _reduce(
        self, name: str, model: Model, component: Optional[Component], stack: Tuple[tuple, ...]
    ) -> Optional[_Reduced]:
        location = self.find_units(name, model, component)
        if location is None:
            return BUILTIN_UNITS.get(name)
        units = location.units
        key = (location.model.key, location.component.name if location.component else "", units.name)
        if key in stack:
            logger.warning(f"Units '{name}' in model {model.name} is defined in terms of itself")
            return None
        if units.base_units:
            return _Reduced({units.name: 1.0})
        result = _Reduced()
        for unit in units.units:
            sub = self._reduce(unit.units, location.model, location.component, stack + (key,))
            if sub is None:
                return None
            result.factor *= unit.multiplier * (10.0 ** unit.prefix * sub.factor) ** unit.exponent
            for base, exponent in sub.exponents.items():
                result.exponents[base] = result.exponents.get(base, 0.0) + exponent * unit.exponent
            if len(units.units) == 1 and unit.exponent == 1.0:
                result.offset = unit.offset + sub.offset
        return result
