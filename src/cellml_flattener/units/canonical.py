from __future__ import annotations

import logging
from typing import Dict, Optional

from ..document.model import Component, Model, Unit, Units
from ..errors import MissingUnits
from ..naming import unique_set_name
from .reduction import BUILTIN_UNITS, CanonicalForm, UnitsReducer

logger = logging.getLogger(__name__)


def equivalent(form_a: Optional[CanonicalForm], form_b: Optional[CanonicalForm]) -> bool:
    """True iff both forms have the same length and are equal element by element, in order."""
    if form_a is None or form_b is None:
        return False
    if len(form_a) != len(form_b):
        return False
    return all(a == b for a, b in zip(form_a, form_b))


class UnitsCanonicalizer:
    """Canonical-units state for one destination model.

    Units can be materialized into the destination mid-pass, so the cached
    forms of its definitions are refreshed before every lookup.
    """

    def __init__(self, destination: Model, reducer: Optional[UnitsReducer] = None):
        self.destination = destination
        self.reducer = reducer or UnitsReducer()
        self._forms: Dict[str, Optional[CanonicalForm]] = {}
        # user-defined base unit name in the source -> its name in the destination
        self._base_names: Dict[str, str] = {}

    def refresh(self) -> None:
        self._forms = {name: self.reducer.reduce(name, self.destination) for name in self.destination.units}

    def canonicalize(self, name: str, model: Model, component: Optional[Component] = None) -> Optional[CanonicalForm]:
        return self.reducer.reduce(name, model, component)

    def is_builtin(self, name: str, model: Model, component: Optional[Component] = None) -> bool:
        return self.reducer.is_builtin(name, model, component)

    def define_base_units(self, source_form: CanonicalForm) -> None:
        """Declare every user-defined base unit of `source_form` in the destination."""
        for base in source_form:
            if base.name in BUILTIN_UNITS or base.name in self._base_names:
                continue
            existing = self.destination.units.get(base.name)
            if existing is not None and existing.base_units:
                self._base_names[base.name] = base.name
                continue
            name = unique_set_name(base.name, list(self.destination.units) + list(BUILTIN_UNITS))
            self.destination.units[name] = Units(name=name, base_units=True)
            self._base_names[base.name] = name
            logger.debug(f"Defining base units {base.name} as {name} in {self.destination.name}")

    def _translate(self, source_form: CanonicalForm) -> CanonicalForm:
        if all(self._base_names.get(b.name, b.name) == b.name for b in source_form):
            return source_form
        factor = source_form[0].prefix
        renamed = sorted(
            (b.model_copy(update={"name": self._base_names.get(b.name, b.name), "prefix": 1.0}) for b in source_form),
            key=lambda b: b.name,
        )
        renamed[0] = renamed[0].model_copy(update={"prefix": factor})
        return tuple(renamed)

    def find_equivalent(self, source_form: CanonicalForm) -> Optional[str]:
        """Name of the first destination-level units equivalent to `source_form`, if any."""
        self.refresh()
        source_form = self._translate(source_form)
        for name, form in self._forms.items():
            if equivalent(form, source_form):
                return name
        return None

    def materialize(self, source_form: CanonicalForm, preferred_name: str) -> str:
        """Define `source_form` in the destination model and return the name used."""
        self.define_base_units(source_form)
        name = unique_set_name(preferred_name, list(self.destination.units) + list(BUILTIN_UNITS))
        units = Units(name=name)
        for base in source_form:
            units.units.append(
                Unit(
                    units=self._base_names.get(base.name, base.name),
                    multiplier=base.prefix,
                    exponent=base.exponent,
                    offset=base.offset,
                )
            )
        self.destination.units[name] = units
        self.refresh()
        return name

    def define_units(self, name: str, model: Model, component: Optional[Component] = None) -> str:
        """Make units `name` (as seen from `model`/`component`) available in the destination.

        Built-in units are used as-is; otherwise an equivalent destination
        definition is reused, or a new one is materialized.
        """
        if self.is_builtin(name, model, component):
            return name
        form = self.canonicalize(name, model, component)
        if form is None:
            raise MissingUnits(f"unable to find the source units '{name}' in model '{model.name}'")
        self.define_base_units(form)
        found = self.find_equivalent(form)
        if found is not None:
            logger.debug(f"Units: {name}; already defined as: {found}")
            return found
        created = self.materialize(form, name)
        logger.debug(f"Creating new units for: {name}; as {created}")
        return created
