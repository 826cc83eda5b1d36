"""In-memory CellML object model.

A `Model` owns its components, units, connections, groups and imports; an
instantiated `Import` owns the imported `Model`. Everything else refers to
other entities by name, and across models by `ComponentKey`/`VariableKey`,
so the structure is a plain tree with no back-pointers.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, NamedTuple, Optional, Tuple, Union

from ..errors import MissingImportTarget
from .mathml import Math

INTERFACES = ("none", "in", "out")


class ComponentKey(NamedTuple):
    model: str
    component: str

    def __str__(self) -> str:
        return f"{self.model}:{self.component}"


class VariableKey(NamedTuple):
    model: str
    component: str
    variable: str

    @property
    def component_key(self) -> ComponentKey:
        return ComponentKey(self.model, self.component)

    def __str__(self) -> str:
        return f"{self.model}:{self.component}/{self.variable}"


@dataclass
class Unit:
    """One base-unit reference inside a units definition."""

    units: str
    prefix: int = 0
    exponent: float = 1.0
    multiplier: float = 1.0
    offset: float = 0.0


@dataclass
class Units:
    name: str
    units: List[Unit] = field(default_factory=list)
    base_units: bool = False
    cmeta_id: Optional[str] = None


@dataclass
class Variable:
    name: str
    units: str
    public_interface: str = "none"
    private_interface: str = "none"
    initial_value: Optional[str] = None
    cmeta_id: Optional[str] = None

    def literal_initial_value(self) -> Optional[float]:
        """The initial value as a number, or None when absent or a variable reference."""
        if self.initial_value is None:
            return None
        try:
            return float(self.initial_value)
        except ValueError:
            return None


@dataclass
class Component:
    name: str
    cmeta_id: Optional[str] = None
    variables: Dict[str, Variable] = field(default_factory=dict)
    units: Dict[str, Units] = field(default_factory=dict)
    math: List[Math] = field(default_factory=list)
    extensions: List[ET.Element] = field(default_factory=list)

    def add_variable(self, variable: Variable) -> Variable:
        if variable.name in self.variables:
            raise ValueError(f"Variable '{variable.name}' already defined in component '{self.name}'")
        self.variables[variable.name] = variable
        return variable


@dataclass
class VariableMapping:
    variable_1: str
    variable_2: str


@dataclass
class Connection:
    component_1: str
    component_2: str
    mappings: List[VariableMapping] = field(default_factory=list)

    def pair(self) -> frozenset:
        return frozenset((self.component_1, self.component_2))


@dataclass
class ComponentRef:
    component: str
    children: List["ComponentRef"] = field(default_factory=list)


@dataclass
class Group:
    """A grouping; `relationships` holds (relationship, name) pairs."""

    relationships: List[Tuple[str, Optional[str]]] = field(default_factory=list)
    component_refs: List[ComponentRef] = field(default_factory=list)

    @property
    def is_encapsulation(self) -> bool:
        return any(rel == "encapsulation" for rel, _ in self.relationships)


@dataclass
class ImportComponent:
    """Local alias `name` for component `component_ref` of the imported model."""

    name: str
    component_ref: str
    cmeta_id: Optional[str] = None


@dataclass
class ImportUnits:
    name: str
    units_ref: str


@dataclass
class Import:
    href: str
    components: List[ImportComponent] = field(default_factory=list)
    units: List[ImportUnits] = field(default_factory=list)
    model: Optional["Model"] = None
    cmeta_id: Optional[str] = None


@dataclass
class Model:
    name: str
    key: str = "root"
    cmeta_id: Optional[str] = None
    version: str = "1.0"
    base_uri: Optional[str] = None
    components: Dict[str, Component] = field(default_factory=dict)
    units: Dict[str, Units] = field(default_factory=dict)
    connections: List[Connection] = field(default_factory=list)
    groups: List[Group] = field(default_factory=list)
    imports: List[Import] = field(default_factory=list)
    extensions: List[ET.Element] = field(default_factory=list)

    def add_component(self, component: Component) -> Component:
        if component.name in self.components or self._import_alias(component.name):
            raise ValueError(f"Component '{component.name}' already defined in model '{self.name}'")
        self.components[component.name] = component
        return component

    def _import_alias(self, name: str) -> Optional[Tuple[Import, ImportComponent]]:
        for imp in self.imports:
            for ic in imp.components:
                if ic.name == name:
                    return imp, ic
        return None

    def find_component(self, name: str) -> Union[Component, ImportComponent, None]:
        """Local component or import alias called `name` (CellML "model components")."""
        if name in self.components:
            return self.components[name]
        found = self._import_alias(name)
        return found[1] if found else None

    def component_names(self) -> List[str]:
        names = list(self.components)
        for imp in self.imports:
            names.extend(ic.name for ic in imp.components)
        return names

    def resolve_component(self, name: str) -> Tuple["Model", Component]:
        """Follow import aliases until a real component; returns it with its owning model."""
        model: Model = self
        seen = set()
        while True:
            if name in model.components:
                return model, model.components[name]
            found = model._import_alias(name)
            if found is None:
                raise MissingImportTarget(f"component '{name}' does not exist in model '{model.name}'")
            imp, ic = found
            if (model.key, name) in seen:
                raise MissingImportTarget(f"import alias cycle at '{name}' in model '{model.name}'")
            seen.add((model.key, name))
            if imp.model is None:
                raise MissingImportTarget(
                    f"import '{imp.href}' in model '{model.name}' was not instantiated "
                    f"(needed for component '{name}')"
                )
            model, name = imp.model, ic.component_ref

    def walk(self) -> Iterator["Model"]:
        """This model then every instantiated imported model, depth-first."""
        yield self
        for imp in self.imports:
            if imp.model is not None:
                yield from imp.model.walk()

    def encapsulation_parents(self) -> Dict[str, str]:
        parents: Dict[str, str] = {}

        def visit(refs: List[ComponentRef], parent: Optional[str]) -> None:
            for ref in refs:
                if parent is not None:
                    parents[ref.component] = parent
                visit(ref.children, ref.component)

        for group in self.groups:
            if group.is_encapsulation:
                visit(group.component_refs, None)
        return parents

    def variable(self, key: VariableKey) -> Variable:
        return self.components[key.component].variables[key.variable]
