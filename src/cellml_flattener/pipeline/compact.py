from __future__ import annotations

import logging
from typing import Dict, Optional, Set

from ..document.mathml import numeric_assignment
from ..document.model import (
    Component,
    ComponentKey,
    Connection,
    Model,
    Variable,
    VariableKey,
    VariableMapping,
)
from ..errors import CellMLToolError
from ..graph.relevance import RelevanceService
from ..graph.sources import SourceVariableResolver
from ..naming import unique_name
from ..report import Report
from ..units.canonical import UnitsCanonicalizer
from ..units.reduction import UnitsReducer
from .classify import Classification, Match, classify_component, constant_value, equality_names
from .flatten import flatten_model
from .initial_values import resolve_initial_value

logger = logging.getLogger(__name__)

INTERFACE_COMPONENT = "compactedModelComponent"
INTERFACE_COMPONENT_ID = "CompactedModelComponent"
SOURCE_COMPONENT = "sourceModelVariables"
SOURCE_COMPONENT_ID = "OriginalVariables"


class Compactor:
    """Compact a model into an interface component and a source component.

    The interface component holds one `in` variable per top-level variable of
    the source model; each is connected to the copy of its source variable in
    the source component. Source variables are copied at most once per pass.
    """

    def __init__(
        self,
        reducer: Optional[UnitsReducer] = None,
        report: Optional[Report] = None,
        relevance: Optional[RelevanceService] = None,
    ):
        self.reducer = reducer or UnitsReducer()
        self.report = report or Report()
        self.relevance = relevance

    def compact(self, model: Model) -> Model:
        self.report.add_line(f"Compacting model {model.name} to a single CellML 1.0 component.")
        source_model = model
        if model.imports:
            source_model = flatten_model(model, self.relevance, self.reducer, self.report)

        out = Model(name=f"Compacted__{model.name}", cmeta_id=model.cmeta_id, version="1.0", base_uri=model.base_uri)
        interface = out.add_component(Component(INTERFACE_COMPONENT, cmeta_id=INTERFACE_COMPONENT_ID))
        self.source = out.add_component(Component(SOURCE_COMPONENT, cmeta_id=SOURCE_COMPONENT_ID))
        self.source_model = source_model
        self.canonicalizer = UnitsCanonicalizer(out, self.reducer)
        self.resolver = SourceVariableResolver(source_model)
        self._compacted: Dict[VariableKey, str] = {}
        self._source_names: Set[str] = set()
        self._classifications: Dict[ComponentKey, Dict[str, Match]] = {}

        connection = Connection(interface.name, self.source.name)
        interface_names: Set[str] = set()
        for component in source_model.components.values():
            self.report.add_line(f"Adding variables from component: {component.name}; to the new model.")
            with self.report.indent():
                for variable in component.variables.values():
                    name = unique_name(f"{component.name}_{variable.name}", interface_names)
                    self.report.add_line(f"{variable.name} ==> {name}")
                    units = self.canonicalizer.define_units(variable.units, source_model, component)
                    interface.add_variable(
                        Variable(name=name, units=units, public_interface="in", cmeta_id=variable.cmeta_id)
                    )
                    key = self.resolver.source_of(VariableKey(source_model.key, component.name, variable.name))
                    with self.report.indent():
                        target = self.compact_variable(key)
                    self.report.variable_for_compaction(name, target)
                    connection.mappings.append(VariableMapping(name, target))
        if connection.mappings:
            out.connections.append(connection)
        return out

    def _classification(self, component: Component) -> Dict[str, Match]:
        key = ComponentKey(self.source_model.key, component.name)
        if key not in self._classifications:
            self._classifications[key] = classify_component(component)
        return self._classifications[key]

    def compact_variable(self, key: VariableKey) -> str:
        """Name of the source-component copy of source variable `key`, creating it on first use."""
        if key in self._compacted:
            return self._compacted[key]
        component = self.source_model.components[key.component]
        variable = component.variables[key.variable]
        name = unique_name(f"{key.component}_{key.variable}", self._source_names)
        self._compacted[key] = name
        try:
            self._build_source_variable(component, variable, name)
        except CellMLToolError:
            self._compacted.pop(key, None)
            self._source_names.discard(name)
            raise
        return name

    def _build_source_variable(self, component: Component, variable: Variable, name: str) -> None:
        units = self.canonicalizer.define_units(variable.units, self.source_model, component)
        copied = Variable(name=name, units=units, public_interface="out")
        kind, eq = self._classification(component).get(variable.name, (Classification.UNKNOWN, None))
        self.report.add_line(f"mapped to source: {component.name}/{variable.name} ({kind.value})")
        math = None
        if kind is Classification.CONSTANT_PARAMETER_EQUATION:
            value, literal_units = constant_value(eq)
            literal_units = self.canonicalizer.define_units(literal_units, self.source_model, component)
            math = numeric_assignment(name, value, literal_units)
        elif kind is Classification.SIMPLE_EQUALITY:
            lhs, rhs = equality_names(eq)
            logger.debug(f"{lhs} is defined as equal to {rhs}; no equation synthesized")
        copied.initial_value = resolve_initial_value(self.resolver, component, variable)
        self.source.add_variable(copied)
        if math is not None:
            self.source.math.append(math)


def compact_model(
    model: Model,
    reducer: Optional[UnitsReducer] = None,
    report: Optional[Report] = None,
    relevance: Optional[RelevanceService] = None,
) -> Model:
    """Compact `model` into the two-component summary model.

    All-or-nothing: the first fatal problem raises a `CellMLToolError`
    subclass and no output is returned.
    """
    report = report or Report()
    try:
        return Compactor(reducer, report, relevance).compact(model)
    except CellMLToolError as e:
        if report.error_message is None:
            report.set_error(str(e))
        raise
