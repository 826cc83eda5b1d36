"""Relevance service: which components an entry model actually needs.

All local components of the entry model are relevant. An imported component
brings its real definition along with every component encapsulated beneath it
in the imported model, recursively through further imports.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import List, Set, Tuple

import networkx as nx

from ..document.model import Component, ComponentKey, Model
from ..errors import MissingImportTarget

logger = logging.getLogger(__name__)


@dataclass
class RelevanceResult:
    components: List[Tuple[Model, Component]] = field(default_factory=list)
    error: str = ""


def encapsulation_graph(model: Model) -> nx.DiGraph:
    """Parent -> child digraph over component names from the encapsulation groups."""
    graph = nx.DiGraph()

    def visit(refs, parent):
        for ref in refs:
            graph.add_node(ref.component)
            if parent is not None:
                graph.add_edge(parent, ref.component)
            visit(ref.children, ref.component)

    for group in model.groups:
        if group.is_encapsulation:
            visit(group.component_refs, None)
    return graph


class RelevanceService:
    """Compute the relevant-component set of an entry model, or a model-level error."""

    def model_error(self, model: Model) -> str:
        for m in model.walk():
            for imp in m.imports:
                if imp.model is None:
                    return f"import '{imp.href}' in model '{m.name}' has not been instantiated"
            for name in m.component_names():
                try:
                    m.resolve_component(name)
                except MissingImportTarget as e:
                    return str(e.msg)
            error = self._connection_error(m) or self._encapsulation_error(m)
            if error:
                return error
        return ""

    def _connection_error(self, m: Model) -> str:
        for conn in m.connections:
            if conn.component_1 == conn.component_2:
                return f"connection in model '{m.name}' maps component '{conn.component_1}' to itself"
            ends = []
            for cname in (conn.component_1, conn.component_2):
                if m.find_component(cname) is None:
                    return f"connection in model '{m.name}' refers to missing component '{cname}'"
                ends.append(m.resolve_component(cname)[1])
            for mapping in conn.mappings:
                for comp, vname in ((ends[0], mapping.variable_1), (ends[1], mapping.variable_2)):
                    if vname not in comp.variables:
                        return (
                            f"connection in model '{m.name}' maps missing variable "
                            f"'{vname}' of component '{comp.name}'"
                        )
        return ""

    def _encapsulation_error(self, m: Model) -> str:
        graph = encapsulation_graph(m)
        if not nx.is_directed_acyclic_graph(graph):
            return f"encapsulation hierarchy of model '{m.name}' contains a cycle"
        for node, degree in graph.in_degree():
            if degree > 1:
                return f"component '{node}' has more than one encapsulation parent in model '{m.name}'"
        return ""

    def relevant_components(self, model: Model) -> RelevanceResult:
        error = self.model_error(model)
        if error:
            return RelevanceResult(error=error)

        result = RelevanceResult()
        seen: Set[ComponentKey] = set()

        def add(m: Model, name: str, imported: bool) -> None:
            owner, real = m.resolve_component(name)
            key = ComponentKey(owner.key, real.name)
            if key in seen:
                return
            seen.add(key)
            result.components.append((owner, real))
            if imported:
                tree = encapsulation_graph(owner)
                if real.name in tree:
                    for child in nx.dfs_preorder_nodes(tree, real.name):
                        if child != real.name and owner.find_component(child) is not None:
                            add(owner, child, True)

        for name in model.components:
            add(model, name, False)
        for imp in model.imports:
            for ic in imp.components:
                add(model, ic.name, True)
        logger.debug(f"{len(result.components)} relevant components in model {model.name}")
        return result
