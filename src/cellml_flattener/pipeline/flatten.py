from __future__ import annotations

import copy
import logging
from typing import Dict, List, Optional, Set, Tuple

from ..document.mathml import Cn
from ..document.model import (
    Component,
    ComponentKey,
    ComponentRef,
    Connection,
    Group,
    Model,
    Unit,
    Units,
    Variable,
    VariableMapping,
)
from ..errors import Advisory, CellMLToolError, MissingUnits, RelevanceError, UnresolvableInitialValue
from ..graph.relevance import RelevanceService
from ..graph.sources import SourceVariableResolver
from ..naming import unique_name
from ..report import Report
from ..units.canonical import UnitsCanonicalizer, equivalent
from ..units.reduction import BUILTIN_UNITS, CanonicalForm, UnitsReducer
from .initial_values import resolve_initial_value

logger = logging.getLogger(__name__)


def _copy_units(units: Units, name: Optional[str] = None) -> Units:
    return Units(
        name=name or units.name,
        units=[Unit(u.units, u.prefix, u.exponent, u.multiplier, u.offset) for u in units.units],
        base_units=units.base_units,
        cmeta_id=units.cmeta_id,
    )


class Flattener:
    """Flatten an entry model and its instantiated imports into one CellML 1.0 model.

    Each call to `flatten` owns its output model and all bookkeeping; the
    relevance service and units reducer are injected and may be shared.
    """

    def __init__(
        self,
        relevance: Optional[RelevanceService] = None,
        reducer: Optional[UnitsReducer] = None,
        report: Optional[Report] = None,
        initial_value_policy: str = "abort",
    ):
        self.relevance = relevance or RelevanceService()
        self.reducer = reducer or UnitsReducer()
        self.report = report or Report()
        self.initial_value_policy = initial_value_policy

    def flatten(self, model: Model) -> Model:
        self.report.add_line(f"Converting model {model.name} to CellML 1.0.")
        self._copies: Dict[ComponentKey, str] = {}
        self._component_names: Set[str] = set()
        # (origin model name, units name) -> name in the flat model
        self._units_names: Dict[Tuple[str, str], str] = {}
        self._units_forms: Dict[str, Optional[CanonicalForm]] = {}

        self._check_import_targets(model)
        relevant = self.relevance.relevant_components(model)
        if relevant.error:
            raise RelevanceError(relevant.error)

        out = Model(name=model.name, cmeta_id=model.cmeta_id, version="1.0", base_uri=model.base_uri)
        self._copy_model_units(model, out)
        renamings = self.import_renamings(model)
        for owner, component in relevant.components:
            self._copy_component(owner, component, out, renamings)
        self._check_variable_units(out)
        for m in model.walk():
            self._copy_connections(m, out)
        for m in model.walk():
            for group in m.groups:
                if group.is_encapsulation:
                    self._copy_group(m, group.component_refs, None, out)
        self._propagate_initial_values(out)
        self.report.add_line(
            f"Flattened model has {len(out.components)} components and {len(out.connections)} connections."
        )
        return out

    def _check_import_targets(self, model: Model) -> None:
        for m in model.walk():
            for imp in m.imports:
                for ic in imp.components:
                    m.resolve_component(ic.name)

    def import_renamings(self, model: Model) -> Dict[ComponentKey, str]:
        """Map each imported real component to the outermost alias it was imported under."""
        renamings: Dict[ComponentKey, str] = {}

        def visit(m: Model) -> None:
            for imp in m.imports:
                if imp.model is None:
                    continue
                visit(imp.model)
                for ic in imp.components:
                    owner, real = m.resolve_component(ic.name)
                    renamings[ComponentKey(owner.key, real.name)] = ic.name

        visit(model)
        return renamings

    # ------------------------------------------------------------------
    # units
    # ------------------------------------------------------------------

    def _plan_model_units(
        self, units: Units, name: str, origin: Model, scope: Model, plan: List[Tuple[Units, str, Model]]
    ) -> None:
        """Settle the flat-model name of one model-level units definition."""
        key = (origin.name, name)
        if key in self._units_names:
            self.report.advisory(
                Advisory.DUPLICATE_UNITS_SKIPPED, f"Skipped duplicate units {name} from model {origin.name}", name
            )
            return
        form = self.reducer.reduce(name, origin)
        if name in self._units_forms:
            if equivalent(self._units_forms[name], form):
                self.report.advisory(
                    Advisory.DUPLICATE_UNITS_SKIPPED,
                    f"Units {name} from model {origin.name} matches units already copied; keeping the first",
                    name,
                )
                self._units_names[key] = name
                return
            renamed = unique_name(name, set(self._units_forms) | set(BUILTIN_UNITS))
            self.report.advisory(
                Advisory.UNITS_RENAMED,
                f"Units {name} from model {origin.name} clashes with units already copied; copied as {renamed}",
                name,
            )
            name = renamed
        self._units_forms[name] = form
        self._units_names[key] = name
        plan.append((units, name, scope))

    def _copy_model_units(self, model: Model, out: Model) -> None:
        plan: List[Tuple[Units, str, Model]] = []
        for m in model.walk():
            for imp in m.imports:
                for iu in imp.units:
                    location = self.reducer.find_units(iu.name, m)
                    if location is None:
                        raise MissingUnits(
                            f"imported units '{iu.name}' (units_ref '{iu.units_ref}') in model '{m.name}' cannot be found"
                        )
                    self._plan_model_units(location.units, iu.name, m, location.model, plan)
            for units in m.units.values():
                self._plan_model_units(units, units.name, m, m, plan)
        # names are settled before copying so references to renamed units can be rewritten
        for units, name, scope in plan:
            self.report.add_line(f"Copying units {name} from {scope.name} to {out.name}", level=logging.DEBUG)
            copied = _copy_units(units, name)
            for unit in copied.units:
                unit.units = self._units_name(scope, unit.units)
            out.units[name] = copied

    def _units_name(self, scope: Model, name: str, component: Optional[Component] = None) -> str:
        """Name in the flat model of units `name` as seen from `scope`/`component`."""
        if component is not None and name in component.units:
            return name
        return self._units_names.get((scope.name, name), name)

    def _check_variable_units(self, out: Model) -> None:
        canonicalizer = UnitsCanonicalizer(out, self.reducer)
        for component in out.components.values():
            for variable in component.variables.values():
                if canonicalizer.canonicalize(variable.units, out, component) is None:
                    raise MissingUnits(
                        f"units '{variable.units}' of variable {component.name}/{variable.name} "
                        f"are neither defined nor built in"
                    )

    # ------------------------------------------------------------------
    # components, connections, groups
    # ------------------------------------------------------------------

    def _copy_component(self, owner: Model, component: Component, out: Model, renamings) -> None:
        key = ComponentKey(owner.key, component.name)
        if key in self._copies:
            self.report.advisory(
                Advisory.DUPLICATE_COMPONENT_SKIPPED, f"Duplicate component {component.name}", str(key)
            )
            return
        name = unique_name(renamings.get(key, component.name), self._component_names)
        self.report.add_line(f"Copying component {component.name} from model {owner.name} as {name}")
        copied = Component(name=name, cmeta_id=component.cmeta_id)
        for units in component.units.values():
            local = _copy_units(units)
            for unit in local.units:
                unit.units = self._units_name(owner, unit.units, component)
            copied.units[units.name] = local
        for variable in component.variables.values():
            copied.add_variable(
                Variable(
                    name=variable.name,
                    units=self._units_name(owner, variable.units, component),
                    public_interface=variable.public_interface,
                    private_interface=variable.private_interface,
                    initial_value=variable.initial_value,
                    cmeta_id=variable.cmeta_id,
                )
            )
        copied.math = [block.copy() for block in component.math]
        for block in copied.math:
            for node in block.walk():
                if isinstance(node, Cn) and node.units is not None:
                    node.units = self._units_name(owner, node.units, component)
        copied.extensions = [copy.deepcopy(e) for e in component.extensions]
        out.add_component(copied)
        self._copies[key] = name

    def _copied_name(self, m: Model, name: str) -> Optional[str]:
        owner, real = m.resolve_component(name)
        return self._copies.get(ComponentKey(owner.key, real.name))

    def _copy_connections(self, m: Model, out: Model) -> None:
        by_pair: Dict[frozenset, Connection] = {c.pair(): c for c in out.connections}
        for conn in m.connections:
            c1 = self._copied_name(m, conn.component_1)
            c2 = self._copied_name(m, conn.component_2)
            if c1 is None or c2 is None:
                continue
            pairs = [(mp.variable_1, mp.variable_2) for mp in conn.mappings]
            existing = by_pair.get(frozenset((c1, c2)))
            if existing is None:
                existing = Connection(c1, c2)
                out.connections.append(existing)
                by_pair[existing.pair()] = existing
            elif existing.component_1 != c1:
                pairs = [(v2, v1) for v1, v2 in pairs]
            present = {(mp.variable_1, mp.variable_2) for mp in existing.mappings}
            for v1, v2 in pairs:
                if (v1, v2) not in present:
                    existing.mappings.append(VariableMapping(v1, v2))
                    present.add((v1, v2))

    def _copy_group(self, m: Model, refs: List[ComponentRef], parent: Optional[ComponentRef], out: Model) -> None:
        for ref in refs:
            if m.find_component(ref.component) is None:
                self.report.advisory(
                    Advisory.MISSING_ENCAPSULATION_COMPONENT,
                    f"Component {ref.component} referred to in the encapsulation hierarchy of model {m.name} does not exist.",
                    ref.component,
                )
                continue
            copied = self._copied_name(m, ref.component)
            if copied is None:
                if parent is not None:
                    self.report.advisory(
                        Advisory.ENCAPSULATION_INCONSISTENCY,
                        f"Component {ref.component} in model {m.name} had its encapsulation parent copied, "
                        f"but wasn't copied itself.",
                        ref.component,
                    )
                # copied descendants of an uncopied component become new roots
                self._copy_group(m, ref.children, None, out)
                continue
            new_ref = ComponentRef(copied)
            if parent is None:
                out.groups.append(Group(relationships=[("encapsulation", None)], component_refs=[new_ref]))
            else:
                parent.children.append(new_ref)
            self._copy_group(m, ref.children, new_ref, out)

    # ------------------------------------------------------------------
    # initial values
    # ------------------------------------------------------------------

    def _propagate_initial_values(self, out: Model) -> None:
        resolver = SourceVariableResolver(out)
        for component in out.components.values():
            for variable in component.variables.values():
                if variable.initial_value is None or variable.literal_initial_value() is not None:
                    continue
                try:
                    value = resolve_initial_value(resolver, component, variable)
                except UnresolvableInitialValue as e:
                    if self.initial_value_policy == "abort":
                        raise
                    self.report.advisory(Advisory.UNRESOLVED_INITIAL_VALUE, e.msg, f"{component.name}/{variable.name}")
                    continue
                self.report.add_line(
                    f"Var {component.name}:{variable.name} has initvar {variable.initial_value} value {value}"
                )
                variable.initial_value = value


def flatten_model(
    model: Model,
    relevance: Optional[RelevanceService] = None,
    reducer: Optional[UnitsReducer] = None,
    report: Optional[Report] = None,
    initial_value_policy: str = "abort",
) -> Model:
    """Flatten `model` (imports already instantiated) into a single CellML 1.0 model.

    Raises a `CellMLToolError` subclass on the first fatal problem; no partial
    output is returned. Advisories are recorded in `report`.
    """
    report = report or Report()
    try:
        return Flattener(relevance, reducer, report, initial_value_policy).flatten(model)
    except CellMLToolError as e:
        report.set_error(str(e))
        raise
