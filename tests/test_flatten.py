import unittest

import pytest

from cellml_flattener.document import VariableKey, round_trip
from cellml_flattener.errors import (
    Advisory,
    MissingImportTarget,
    MissingUnits,
    RelevanceError,
    UnresolvableInitialValue,
)
from cellml_flattener.graph import RelevanceResult, RelevanceService, SourceVariableResolver
from cellml_flattener.pipeline.flatten import Flattener, flatten_model
from cellml_flattener.report import Report
from cellml_flattener.units.reduction import UnitsReducer

from cellml_docs import SCENARIO_A, load, math, model_xml, parse, write_models

LIB = model_xml(
    "lib",
    """
    <units name="ms"><unit units="second" prefix="milli"/></units>
    <component name="gate">
      <variable name="t" units="ms" public_interface="in" private_interface="out"/>
      <variable name="g" units="dimensionless" public_interface="out" private_interface="in"/>
    </component>
    <component name="inner">
      <variable name="t" units="ms" public_interface="in"/>
      <variable name="g" units="dimensionless" public_interface="out" initial_value="0.5"/>
    </component>
    <component name="unused"><variable name="z" units="second"/></component>
    <group>
      <relationship_ref relationship="encapsulation"/>
      <component_ref component="gate"><component_ref component="inner"/></component_ref>
    </group>
    <group>
      <relationship_ref relationship="containment"/>
      <component_ref component="gate"><component_ref component="unused"/></component_ref>
    </group>
    <connection>
      <map_components component_1="gate" component_2="inner"/>
      <map_variables variable_1="t" variable_2="t"/>
      <map_variables variable_1="g" variable_2="g"/>
    </connection>
    """,
)

MID = model_xml(
    "mid",
    '<import xlink:href="lib.xml"><component name="mid_gate" component_ref="gate"/></import>',
    version="1.1",
)

TOP = model_xml(
    "top",
    """
    <import xlink:href="mid.xml"><component name="top_gate" component_ref="mid_gate"/></import>
    <component name="inner"><variable name="time" units="second" public_interface="out"/></component>
    <connection>
      <map_components component_1="inner" component_2="top_gate"/>
      <map_variables variable_1="time" variable_2="t"/>
    </connection>
    """,
    version="1.1",
)


def _assert_unique_names(model):
    names = [c.name for c in model.components.values()]
    assert len(names) == len(set(names))
    for component in model.components.values():
        assert len(component.variables) == len(set(component.variables))


class ScenarioATests(unittest.TestCase):
    def setUp(self) -> None:
        self.report = Report()
        self.flat = flatten_model(parse(SCENARIO_A), report=self.report)

    def test_structure_is_preserved(self) -> None:
        self.assertEqual(list(self.flat.components), ["C1", "C2"])
        self.assertEqual(len(self.flat.connections), 1)
        self.assertEqual(self.flat.imports, [])
        self.assertEqual(self.flat.version, "1.0")
        self.assertEqual(self.flat.name, "scenario_a")
        self.assertIn("millivolt", self.flat.units)

    def test_variables_copied_verbatim(self) -> None:
        v = self.flat.components["C1"].variables["v"]
        self.assertEqual((v.units, v.public_interface, v.initial_value), ("millivolt", "out", "1.5"))

    def test_round_trip_matches_in_memory_result(self) -> None:
        again = round_trip(self.flat)
        self.assertEqual(list(again.components), list(self.flat.components))
        for name, component in self.flat.components.items():
            self.assertEqual(list(again.components[name].variables), list(component.variables))
        self.assertEqual(
            [(c.component_1, c.component_2) for c in again.connections],
            [(c.component_1, c.component_2) for c in self.flat.connections],
        )

    def test_no_advisories(self) -> None:
        self.assertEqual(self.report.advisories(), [])
        self.assertIsNone(self.report.error_message)


class ImportFlatteningTests(unittest.TestCase):
    def setUp(self) -> None:
        import tempfile
        from pathlib import Path

        self._tmp = tempfile.TemporaryDirectory()
        paths = write_models(Path(self._tmp.name), {"lib.xml": LIB, "mid.xml": MID, "top.xml": TOP})
        self.model = load(paths["top.xml"])
        self.flat = flatten_model(self.model)

    def tearDown(self) -> None:
        self._tmp.cleanup()

    def test_outermost_alias_names_win_and_collisions_are_suffixed(self) -> None:
        self.assertEqual(list(self.flat.components), ["inner", "top_gate", "inner_1"])
        _assert_unique_names(self.flat)

    def test_only_relevant_components_are_copied(self) -> None:
        self.assertNotIn("unused", self.flat.components)

    def test_connections_are_translated(self) -> None:
        pairs = [(c.component_1, c.component_2) for c in self.flat.connections]
        self.assertEqual(pairs, [("inner", "top_gate"), ("top_gate", "inner_1")])
        self.assertEqual(len(self.flat.connections[1].mappings), 2)

    def test_only_the_encapsulation_hierarchy_is_rebuilt(self) -> None:
        self.assertEqual(len(self.flat.groups), 1)
        group = self.flat.groups[0]
        self.assertEqual(group.relationships, [("encapsulation", None)])
        self.assertEqual(group.component_refs[0].component, "top_gate")
        self.assertEqual([r.component for r in group.component_refs[0].children], ["inner_1"])

    def test_imported_model_units_are_copied(self) -> None:
        self.assertIn("ms", self.flat.units)
        self.assertEqual(self.flat.imports, [])

    def test_renamings(self) -> None:
        renamings = Flattener().import_renamings(self.model)
        self.assertEqual(sorted(renamings.values()), ["top_gate"])


def test_diamond_imports_copy_units_once(tmp_path):
    common = model_xml(
        "common",
        '<units name="mV"><unit units="volt" prefix="milli"/></units><component name="C"><variable name="v" units="mV"/></component>',
    )
    a = model_xml("a", '<import xlink:href="common.xml"><component name="A" component_ref="C"/></import>')
    b = model_xml("b", '<import xlink:href="common.xml"><component name="B" component_ref="C"/></import>')
    top = model_xml(
        "top",
        '<import xlink:href="a.xml"><component name="X" component_ref="A"/></import>'
        '<import xlink:href="b.xml"><component name="Y" component_ref="B"/></import>',
    )
    paths = write_models(tmp_path, {"common.xml": common, "a.xml": a, "b.xml": b, "top.xml": top})
    report = Report()
    flat = flatten_model(load(paths["top.xml"]), report=report)
    assert list(flat.units) == ["mV"]
    assert len(report.advisories(Advisory.DUPLICATE_UNITS_SKIPPED)) == 1
    assert list(flat.components) == ["X", "Y"]


def test_imported_units_are_copied_under_their_alias(tmp_path):
    lib = model_xml("lib", '<units name="ms"><unit units="second" prefix="milli"/></units>')
    top = model_xml(
        "top",
        '<import xlink:href="lib.xml"><units name="millis" units_ref="ms"/></import>'
        '<component name="c"><variable name="t" units="millis"/></component>',
    )
    paths = write_models(tmp_path, {"lib.xml": lib, "top.xml": top})
    flat = flatten_model(load(paths["top.xml"]))
    assert flat.units["millis"].units[0].prefix == -3
    assert flat.components["c"].variables["t"].units == "millis"


def test_connections_on_the_same_pair_are_merged():
    text = model_xml(
        "m",
        """
        <component name="A"><variable name="x" units="second" public_interface="out"/>
          <variable name="y" units="second" public_interface="in"/></component>
        <component name="B"><variable name="x" units="second" public_interface="in"/>
          <variable name="y" units="second" public_interface="out"/></component>
        <connection><map_components component_1="A" component_2="B"/>
          <map_variables variable_1="x" variable_2="x"/></connection>
        <connection><map_components component_1="B" component_2="A"/>
          <map_variables variable_1="y" variable_2="y"/></connection>
        """,
    )
    flat = flatten_model(parse(text))
    assert len(flat.connections) == 1
    conn = flat.connections[0]
    assert [(m.variable_1, m.variable_2) for m in conn.mappings] == [("x", "x"), ("y", "y")]


class _WithoutComponent(RelevanceService):
    """Relevance service that drops one component, to exercise partial copies."""

    def __init__(self, dropped):
        self.dropped = dropped

    def relevant_components(self, model):
        result = super().relevant_components(model)
        kept = [(m, c) for m, c in result.components if c.name != self.dropped]
        return RelevanceResult(components=kept, error=result.error)


def test_encapsulation_advisories():
    text = model_xml(
        "m",
        """
        <component name="P"/><component name="Q"/><component name="R"/>
        <group><relationship_ref relationship="encapsulation"/>
          <component_ref component="P">
            <component_ref component="Q"><component_ref component="R"/></component_ref>
            <component_ref component="ghost"/>
          </component_ref>
        </group>
        """,
    )
    report = Report()
    flat = flatten_model(parse(text), relevance=_WithoutComponent("Q"), report=report)
    assert list(flat.components) == ["P", "R"]
    assert [r.component for r in flat.groups[0].component_refs[0].children] == []
    assert [g.component_refs[0].component for g in flat.groups] == ["P", "R"]
    assert len(report.advisories(Advisory.ENCAPSULATION_INCONSISTENCY)) == 1
    assert len(report.advisories(Advisory.MISSING_ENCAPSULATION_COMPONENT)) == 1


def test_subtree_under_an_imported_mid_level_component_is_kept(tmp_path):
    lib = model_xml(
        "lib",
        """
        <component name="P"/>
        <component name="C"><variable name="x" units="second" private_interface="out" initial_value="1"/></component>
        <component name="G"><variable name="x" units="second" public_interface="in"/></component>
        <group><relationship_ref relationship="encapsulation"/>
          <component_ref component="P">
            <component_ref component="C"><component_ref component="G"/></component_ref>
          </component_ref>
        </group>
        <connection><map_components component_1="C" component_2="G"/>
          <map_variables variable_1="x" variable_2="x"/></connection>
        """,
    )
    top = model_xml("top", '<import xlink:href="lib.xml"><component name="c" component_ref="C"/></import>')
    paths = write_models(tmp_path, {"lib.xml": lib, "top.xml": top})
    flat = flatten_model(load(paths["top.xml"]))
    assert list(flat.components) == ["c", "G"]
    assert len(flat.groups) == 1
    root = flat.groups[0].component_refs[0]
    assert (root.component, [r.component for r in root.children]) == ("c", ["G"])
    key, _ = SourceVariableResolver(flat).source_variable("G", "x")
    assert key == VariableKey("root", "c", "x")


def test_clashing_units_names_are_kept_apart(tmp_path):
    lib = model_xml(
        "lib",
        '<units name="ms"><unit units="metre" prefix="milli"/></units>'
        '<units name="per_ms"><unit units="ms" exponent="-1"/></units>'
        '<component name="gate"><variable name="L" units="ms"/><variable name="k" units="per_ms"/>'
        + math('<apply><eq/><ci>L</ci><cn cellml:units="ms">2</cn></apply>')
        + "</component>",
    )
    top = model_xml(
        "top",
        '<units name="ms"><unit units="second" prefix="milli"/></units>'
        '<import xlink:href="lib.xml"><component name="g" component_ref="gate"/></import>'
        '<component name="c"><variable name="t" units="ms"/></component>',
    )
    paths = write_models(tmp_path, {"lib.xml": lib, "top.xml": top})
    report = Report()
    flat = flatten_model(load(paths["top.xml"]), report=report)
    reducer = UnitsReducer()
    gate, c = flat.components["g"], flat.components["c"]
    assert c.variables["t"].units == "ms"
    assert gate.variables["L"].units == "ms_1"
    assert [(b.name, b.prefix) for b in reducer.reduce("ms_1", flat)] == [("metre", 0.001)]
    assert [(b.name, b.exponent) for b in reducer.reduce(gate.variables["k"].units, flat)] == [("metre", -1.0)]
    literal = gate.math[0].equations[0].arguments[1]
    assert literal.units == "ms_1"
    assert len(report.advisories(Advisory.UNITS_RENAMED)) == 1


INITIAL_VALUES = model_xml(
    "iv",
    """
    <component name="K">
      <variable name="a" units="volt" initial_value="b"/>
      <variable name="b" units="volt" initial_value="3.0"/>
      <variable name="c" units="volt" initial_value="p_in"/>
      <variable name="p_in" units="volt" public_interface="in"/>
    </component>
    <component name="S">
      <variable name="p" units="volt" public_interface="out" initial_value="-70"/>
    </component>
    <connection><map_components component_1="K" component_2="S"/>
      <map_variables variable_1="p_in" variable_2="p"/></connection>
    """,
)


def test_scenario_c_initial_values_follow_references():
    flat = flatten_model(parse(INITIAL_VALUES))
    variables = flat.components["K"].variables
    assert variables["a"].initial_value == "3.0"
    assert variables["c"].initial_value == "-70"
    assert variables["b"].initial_value == "3.0"


SCENARIO_D = model_xml(
    "d",
    """
    <component name="K">
      <variable name="a" units="volt" initial_value="b"/>
      <variable name="b" units="volt"/>
      <math xmlns="http://www.w3.org/1998/Math/MathML">
        <apply><eq/><ci>b</ci><apply><plus/><ci>a</ci><cn cellml:units="volt">1</cn></apply></apply>
      </math>
    </component>
    """,
)


def test_scenario_d_aborts_by_default():
    report = Report()
    with pytest.raises(UnresolvableInitialValue):
        flatten_model(parse(SCENARIO_D), report=report)
    assert "UnresolvableInitialValue" in report.error_message


def test_scenario_d_can_continue_and_log():
    report = Report()
    flat = flatten_model(parse(SCENARIO_D), report=report, initial_value_policy="continue")
    assert flat.components["K"].variables["a"].initial_value == "b"
    assert len(report.advisories(Advisory.UNRESOLVED_INITIAL_VALUE)) == 1


def test_unresolvable_import_target(tmp_path):
    lib = model_xml("lib", '<component name="gate"/>')
    top = model_xml("top", '<import xlink:href="lib.xml"><component name="g" component_ref="nope"/></import>')
    paths = write_models(tmp_path, {"lib.xml": lib, "top.xml": top})
    with pytest.raises(MissingImportTarget):
        flatten_model(load(paths["top.xml"]))


def test_inconsistent_model_is_a_relevance_error():
    text = model_xml(
        "m",
        '<component name="A"><variable name="x" units="second"/></component><component name="B"/>'
        '<connection><map_components component_1="A" component_2="B"/>'
        '<map_variables variable_1="x" variable_2="missing"/></connection>',
    )
    report = Report()
    with pytest.raises(RelevanceError):
        flatten_model(parse(text), report=report)
    assert report.error_message is not None


def test_unknown_variable_units_are_missing_units():
    with pytest.raises(MissingUnits):
        flatten_model(parse(model_xml("m", '<component name="A"><variable name="x" units="furlong"/></component>')))


if __name__ == "__main__":
    unittest.main()
