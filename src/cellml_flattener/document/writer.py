"""Serialize the object model to CellML text.

The output declares the CellML namespace both as the default namespace and
under the `cellml` prefix, so `cellml:units` designations on numeric literals
inside MathML always resolve, including on equations synthesized in memory.
"""

from __future__ import annotations

import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Tuple
from xml.sax.saxutils import escape, quoteattr

from .loader import CMETA_NS, XLINK_NS, DocumentLoader
from .mathml import CELLML_1_0_NS, CELLML_1_1_NS, split_tag, to_element
from .model import Component, ComponentRef, Connection, Group, Import, Model, Units, Variable

XML_NS = "http://www.w3.org/XML/1998/namespace"
KNOWN_PREFIXES = {
    CMETA_NS: "cmeta",
    XLINK_NS: "xlink",
    "http://www.w3.org/1999/02/22-rdf-syntax-ns#": "rdf",
    "http://purl.org/dc/elements/1.1/": "dc",
    "http://www.cellml.org/bqs/1.0#": "bqs",
}


def _number(value: float) -> str:
    return str(int(value)) if float(value).is_integer() else repr(float(value))


class ModelSerializer:
    """Build an ElementTree for a model, then render it with explicit prefixes."""

    def __init__(self, model: Model, indent: str = "  "):
        self.model = model
        self.ns = CELLML_1_1_NS if model.version == "1.1" else CELLML_1_0_NS
        self.indent = indent

    def q(self, local: str) -> str:
        return f"{{{self.ns}}}{local}"

    # ------------------------------------------------------------------
    # object model -> ElementTree
    # ------------------------------------------------------------------

    def _with_id(self, elem: ET.Element, cmeta_id: Optional[str]) -> ET.Element:
        if cmeta_id:
            elem.set(f"{{{CMETA_NS}}}id", cmeta_id)
        return elem

    def units_element(self, units: Units) -> ET.Element:
        elem = self._with_id(ET.Element(self.q("units"), {"name": units.name}), units.cmeta_id)
        if units.base_units:
            elem.set("base_units", "yes")
        for unit in units.units:
            attrs = {"units": unit.units}
            if unit.prefix:
                attrs["prefix"] = str(unit.prefix)
            if unit.exponent != 1.0:
                attrs["exponent"] = _number(unit.exponent)
            if unit.multiplier != 1.0:
                attrs["multiplier"] = _number(unit.multiplier)
            if unit.offset != 0.0:
                attrs["offset"] = _number(unit.offset)
            ET.SubElement(elem, self.q("unit"), attrs)
        return elem

    def variable_element(self, variable: Variable) -> ET.Element:
        attrs = {"name": variable.name, "units": variable.units}
        if variable.public_interface != "none":
            attrs["public_interface"] = variable.public_interface
        if variable.private_interface != "none":
            attrs["private_interface"] = variable.private_interface
        if variable.initial_value is not None:
            attrs["initial_value"] = variable.initial_value
        return self._with_id(ET.Element(self.q("variable"), attrs), variable.cmeta_id)

    def component_element(self, component: Component) -> ET.Element:
        elem = self._with_id(ET.Element(self.q("component"), {"name": component.name}), component.cmeta_id)
        elem.extend(self.units_element(u) for u in component.units.values())
        elem.extend(self.variable_element(v) for v in component.variables.values())
        elem.extend(to_element(m, self.ns) for m in component.math)
        elem.extend(component.extensions)
        return elem

    def connection_element(self, conn: Connection) -> ET.Element:
        elem = ET.Element(self.q("connection"))
        ET.SubElement(elem, self.q("map_components"), {"component_1": conn.component_1, "component_2": conn.component_2})
        for mapping in conn.mappings:
            ET.SubElement(
                elem,
                self.q("map_variables"),
                {"variable_1": mapping.variable_1, "variable_2": mapping.variable_2},
            )
        return elem

    def group_element(self, group: Group) -> ET.Element:
        elem = ET.Element(self.q("group"))
        for relationship, name in group.relationships:
            attrs = {"relationship": relationship}
            if name:
                attrs["name"] = name
            ET.SubElement(elem, self.q("relationship_ref"), attrs)

        def add_refs(parent: ET.Element, refs: List[ComponentRef]) -> None:
            for ref in refs:
                add_refs(ET.SubElement(parent, self.q("component_ref"), {"component": ref.component}), ref.children)

        add_refs(elem, group.component_refs)
        return elem

    def import_element(self, imp: Import) -> ET.Element:
        elem = self._with_id(ET.Element(self.q("import"), {f"{{{XLINK_NS}}}href": imp.href}), imp.cmeta_id)
        for iu in imp.units:
            ET.SubElement(elem, self.q("units"), {"name": iu.name, "units_ref": iu.units_ref})
        for ic in imp.components:
            self._with_id(
                ET.SubElement(elem, self.q("component"), {"name": ic.name, "component_ref": ic.component_ref}),
                ic.cmeta_id,
            )
        return elem

    def model_element(self) -> ET.Element:
        model = self.model
        root = self._with_id(ET.Element(self.q("model"), {"name": model.name}), model.cmeta_id)
        root.extend(self.import_element(i) for i in model.imports)
        root.extend(self.units_element(u) for u in model.units.values())
        root.extend(self.component_element(c) for c in model.components.values())
        root.extend(self.group_element(g) for g in model.groups)
        root.extend(self.connection_element(c) for c in model.connections)
        root.extend(model.extensions)
        return root

    # ------------------------------------------------------------------
    # ElementTree -> text
    # ------------------------------------------------------------------

    def to_string(self) -> str:
        root = self.model_element()
        prefixes = {"cellml": self.ns, "cmeta": CMETA_NS}
        decls = [("xmlns", self.ns), ("xmlns:cellml", self.ns), ("xmlns:cmeta", CMETA_NS)]
        out: List[str] = ['<?xml version="1.0" encoding="UTF-8"?>\n']
        self._render(root, self.ns, prefixes, 0, True, out, decls)
        return "".join(out)

    def _attribute_name(self, name: str, prefixes: Dict[str, str], decls: List[Tuple[str, str]]) -> str:
        uri, local = split_tag(name)
        if uri is None:
            return local
        if uri == XML_NS:
            return f"xml:{local}"
        for prefix, bound in prefixes.items():
            if bound == uri:
                return f"{prefix}:{local}"
        prefix = KNOWN_PREFIXES.get(uri)
        if prefix is None or prefix in prefixes:
            n = 0
            while f"ns{n}" in prefixes:
                n += 1
            prefix = f"ns{n}"
        prefixes[prefix] = uri
        decls.append((f"xmlns:{prefix}", uri))
        return f"{prefix}:{local}"

    def _render(
        self,
        elem: ET.Element,
        default_ns: Optional[str],
        prefixes: Dict[str, str],
        depth: int,
        pretty: bool,
        out: List[str],
        decls: Optional[List[Tuple[str, str]]] = None,
    ) -> None:
        decls = list(decls or [])
        prefixes = dict(prefixes)
        uri, local = split_tag(elem.tag)
        if uri != default_ns:
            default_ns = uri
            decls.append(("xmlns", uri or ""))
        attrs = [(self._attribute_name(k, prefixes, decls), v) for k, v in elem.attrib.items()]
        attr_text = "".join(f" {k}={quoteattr(v)}" for k, v in decls + attrs)

        children = list(elem)
        text = elem.text or ""
        pad = self.indent * depth if pretty else ""
        newline = "\n" if pretty else ""
        mixed = bool(text.strip()) or any((c.tail or "").strip() for c in children)

        if not children and not text.strip():
            out.append(f"{pad}<{local}{attr_text}/>{newline}")
        elif not children:
            out.append(f"{pad}<{local}{attr_text}>{escape(text)}</{local}>{newline}")
        else:
            inner_pretty = pretty and not mixed
            out.append(f"{pad}<{local}{attr_text}>")
            if inner_pretty:
                out.append("\n")
            else:
                out.append(escape(text))
            for child in children:
                self._render(child, default_ns, prefixes, depth + 1, inner_pretty, out)
                if not inner_pretty and child.tail:
                    out.append(escape(child.tail))
            out.append(f"{pad if inner_pretty else ''}</{local}>{newline}")


def write_model(model: Model) -> str:
    """Serialize `model` to CellML text."""
    return ModelSerializer(model).to_string()


def round_trip(model: Model, loader: Optional[DocumentLoader] = None) -> Model:
    """Serialize `model` and parse the text back into a fresh object model."""
    loader = loader or DocumentLoader()
    return loader.parse_text(write_model(model), model.base_uri)
