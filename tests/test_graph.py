import unittest

import pytest

from cellml_flattener.document import VariableKey
from cellml_flattener.errors import SourceVariableError
from cellml_flattener.graph import RelevanceService, SourceVariableResolver

from cellml_docs import model_xml, parse

HIERARCHY = model_xml(
    "h",
    """
    <component name="env"><variable name="time" units="second" public_interface="out"/></component>
    <component name="cell">
      <variable name="time" units="second" public_interface="in" private_interface="out"/>
    </component>
    <component name="channel"><variable name="time" units="second" public_interface="in"/></component>
    <group><relationship_ref relationship="encapsulation"/>
      <component_ref component="cell"><component_ref component="channel"/></component_ref>
    </group>
    <connection><map_components component_1="env" component_2="cell"/>
      <map_variables variable_1="time" variable_2="time"/></connection>
    <connection><map_components component_1="channel" component_2="cell"/>
      <map_variables variable_1="time" variable_2="time"/></connection>
    """,
)


class SourceVariableTests(unittest.TestCase):
    def setUp(self) -> None:
        self.model = parse(HIERARCHY)
        self.resolver = SourceVariableResolver(self.model)

    def test_follows_public_and_private_interfaces(self) -> None:
        key, variable = self.resolver.source_variable("channel", "time")
        self.assertEqual(key, VariableKey("root", "env", "time"))
        self.assertEqual(variable.public_interface, "out")

    def test_defining_variable_is_its_own_source(self) -> None:
        key = VariableKey("root", "env", "time")
        self.assertEqual(self.resolver.source_of(key), key)

    def test_unknown_variable(self) -> None:
        with self.assertRaises(SourceVariableError):
            self.resolver.source_of(VariableKey("root", "env", "nope"))

    def test_cycles_are_reported(self) -> None:
        self.resolver.graph.add_edge(VariableKey("root", "channel", "time"), VariableKey("root", "env", "time"))
        with self.assertRaises(SourceVariableError):
            self.resolver.source_of(VariableKey("root", "channel", "time"))


def test_connection_to_an_import_alias_needs_flattening():
    text = model_xml(
        "m",
        '<import xlink:href="lib.xml"><component name="g" component_ref="gate"/></import>'
        '<component name="a"><variable name="x" units="second" public_interface="out"/></component>'
        '<connection><map_components component_1="a" component_2="g"/>'
        '<map_variables variable_1="x" variable_2="x"/></connection>',
    )
    with pytest.raises(SourceVariableError):
        SourceVariableResolver(parse(text))


def _error(body):
    return RelevanceService().relevant_components(parse(model_xml("m", body))).error


def test_relevance_rejects_components_with_two_parents():
    error = _error(
        '<component name="P"/><component name="Q"/><component name="R"/>'
        '<group><relationship_ref relationship="encapsulation"/>'
        '<component_ref component="P"><component_ref component="R"/></component_ref>'
        '<component_ref component="Q"><component_ref component="R"/></component_ref></group>'
    )
    assert "more than one encapsulation parent" in error


def test_relevance_rejects_encapsulation_cycles():
    error = _error(
        '<component name="P"/><component name="Q"/>'
        '<group><relationship_ref relationship="encapsulation"/>'
        '<component_ref component="P"><component_ref component="Q"/></component_ref></group>'
        '<group><relationship_ref relationship="encapsulation"/>'
        '<component_ref component="Q"><component_ref component="P"/></component_ref></group>'
    )
    assert "cycle" in error


def test_relevance_rejects_dangling_connections():
    error = _error(
        '<component name="A"/>'
        '<connection><map_components component_1="A" component_2="B"/></connection>'
    )
    assert "missing component 'B'" in error


def test_relevance_requires_instantiated_imports():
    error = _error('<import xlink:href="lib.xml"><component name="g" component_ref="gate"/></import>')
    assert "has not been instantiated" in error


def test_relevance_ignores_other_groupings():
    result = RelevanceService().relevant_components(
        parse(
            model_xml(
                "m",
                '<component name="P"/><component name="Q"/>'
                '<group><relationship_ref relationship="containment"/>'
                '<component_ref component="P"><component_ref component="Q"/></component_ref></group>'
                '<group><relationship_ref relationship="containment" name="other"/>'
                '<component_ref component="Q"><component_ref component="P"/></component_ref></group>',
            )
        )
    )
    assert result.error == ""
    assert [c.name for _, c in result.components] == ["P", "Q"]
