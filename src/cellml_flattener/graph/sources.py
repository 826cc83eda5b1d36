"""Source-variable resolution over the value-flow graph of a self-contained model."""

from __future__ import annotations

import logging
from typing import Dict, Tuple

import networkx as nx

from ..document.model import Model, Variable, VariableKey
from ..errors import SourceVariableError

logger = logging.getLogger(__name__)


class SourceVariableResolver:
    """Follow interface flags across connections to the variable that defines a value.

    Edges run from the supplying variable to the receiving one. Sibling
    components face each other through their public interfaces; a parent faces
    its encapsulated child through its private interface.
    """

    def __init__(self, model: Model):
        self.model = model
        self.graph = nx.DiGraph()
        self._build()

    def key(self, component: str, variable: str) -> VariableKey:
        return VariableKey(self.model.key, component, variable)

    def _facing(self, c1: str, c2: str, v1: Variable, v2: Variable, parents: Dict[str, str]) -> Tuple[str, str]:
        if parents.get(c2) == c1:
            return v1.private_interface, v2.public_interface
        if parents.get(c1) == c2:
            return v1.public_interface, v2.private_interface
        return v1.public_interface, v2.public_interface

    def _build(self) -> None:
        model = self.model
        parents = model.encapsulation_parents()
        for comp in model.components.values():
            for vname in comp.variables:
                self.graph.add_node(self.key(comp.name, vname))
        for conn in model.connections:
            comp1 = model.components.get(conn.component_1)
            comp2 = model.components.get(conn.component_2)
            if comp1 is None or comp2 is None:
                raise SourceVariableError(
                    f"connection {conn.component_1} <-> {conn.component_2} in model '{model.name}' "
                    f"refers to a component that is not defined locally"
                )
            for mapping in conn.mappings:
                v1 = comp1.variables.get(mapping.variable_1)
                v2 = comp2.variables.get(mapping.variable_2)
                if v1 is None or v2 is None:
                    raise SourceVariableError(
                        f"connection {comp1.name} <-> {comp2.name} maps undefined variable "
                        f"{mapping.variable_1 if v1 is None else mapping.variable_2}"
                    )
                k1, k2 = self.key(comp1.name, v1.name), self.key(comp2.name, v2.name)
                if1, if2 = self._facing(comp1.name, comp2.name, v1, v2, parents)
                if if1 == "out" and if2 == "in":
                    self.graph.add_edge(k1, k2)
                elif if1 == "in" and if2 == "out":
                    self.graph.add_edge(k2, k1)
                else:
                    logger.debug(f"Ignoring mapping {k1} <-> {k2} with interfaces {if1}/{if2}")

    def source_of(self, key: VariableKey) -> VariableKey:
        if key not in self.graph:
            raise SourceVariableError(f"variable {key} is not defined in model '{self.model.name}'")
        current = key
        visited = {key}
        while True:
            suppliers = list(self.graph.predecessors(current))
            if not suppliers:
                return current
            if len(suppliers) > 1:
                logger.debug(f"Variable {current} has {len(suppliers)} suppliers, using {suppliers[0]}")
            current = suppliers[0]
            if current in visited:
                raise SourceVariableError(f"cyclic variable connections through {current}")
            visited.add(current)

    def source_variable(self, component: str, variable: str) -> Tuple[VariableKey, Variable]:
        source = self.source_of(self.key(component, variable))
        return source, self.model.variable(source)
