"""Structural MathML tree for the content-markup subset used by CellML.

Math blocks are held as small node trees rather than text, so equations can be
inspected, deep-copied and synthesized in memory and only turned back into XML
by the writer.
"""

from __future__ import annotations

import copy
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional

MATHML_NS = "http://www.w3.org/1998/Math/MathML"
CELLML_1_0_NS = "http://www.cellml.org/cellml/1.0#"
CELLML_1_1_NS = "http://www.cellml.org/cellml/1.1#"
CELLML_NAMESPACES = (CELLML_1_0_NS, CELLML_1_1_NS)


def split_tag(tag: str) -> tuple[Optional[str], str]:
    """Split an ElementTree `{uri}local` name into `(uri, local)`."""
    if tag.startswith("{"):
        uri, local = tag[1:].split("}", 1)
        return uri, local
    return None, tag


class MathNode:
    """Base class for every node in a math tree."""

    def copy(self):
        return copy.deepcopy(self)

    def walk(self) -> Iterator["MathNode"]:
        yield self
        for child in getattr(self, "children", ()):
            yield from child.walk()


@dataclass
class Ci(MathNode):
    name: str
    attrib: Dict[str, str] = field(default_factory=dict)


@dataclass
class Cn(MathNode):
    """Numeric literal; `units` is the CellML units designation, if any."""

    text: str
    units: Optional[str] = None
    attrib: Dict[str, str] = field(default_factory=dict)
    # text after <sep/> for e-notation and rational literals
    sep_text: Optional[str] = None

    @property
    def value(self) -> float:
        kind = self.attrib.get("type", "real")
        if kind == "e-notation" and self.sep_text is not None:
            return float(f"{self.text.strip()}e{self.sep_text.strip()}")
        if kind == "rational" and self.sep_text is not None:
            return float(self.text) / float(self.sep_text)
        return float(self.text)


@dataclass
class Operator(MathNode):
    """An empty content element such as <eq/>, <plus/>, <diff/> or <pi/>."""

    name: str
    attrib: Dict[str, str] = field(default_factory=dict)


@dataclass
class Container(MathNode):
    """Element whose meaning is carried by its children: piece, degree, logbase, ..."""

    tag: str
    children: List[MathNode] = field(default_factory=list)
    attrib: Dict[str, str] = field(default_factory=dict)


@dataclass
class Bvar(Container):
    tag: str = "bvar"

    @property
    def variable(self) -> Optional[Ci]:
        for child in self.children:
            if isinstance(child, Ci):
                return child
        return None


@dataclass
class Piecewise(Container):
    tag: str = "piecewise"


@dataclass
class Apply(MathNode):
    head: MathNode
    operands: List[MathNode] = field(default_factory=list)
    attrib: Dict[str, str] = field(default_factory=dict)

    @property
    def children(self) -> List[MathNode]:
        return [self.head] + self.operands

    @property
    def operator(self) -> Optional[str]:
        return self.head.name if isinstance(self.head, Operator) else None

    @property
    def bvars(self) -> List[Bvar]:
        return [o for o in self.operands if isinstance(o, Bvar)]

    @property
    def arguments(self) -> List[MathNode]:
        """Operands without qualifiers (bvar, degree, logbase, ...)."""
        return [o for o in self.operands if not isinstance(o, Container) or isinstance(o, Piecewise)]


@dataclass
class Opaque(MathNode):
    """Anything the tree does not model (csymbol, semantics, foreign markup)."""

    element: ET.Element


@dataclass
class Math(MathNode):
    """A <math> block: an ordered list of top-level equations."""

    children: List[MathNode] = field(default_factory=list)
    attrib: Dict[str, str] = field(default_factory=dict)

    @property
    def equations(self) -> List[Apply]:
        return [c for c in self.children if isinstance(c, Apply)]


def equation(lhs: MathNode, rhs: MathNode) -> Apply:
    return Apply(head=Operator("eq"), operands=[lhs, rhs])


def numeric_assignment(variable: str, value: float, units: str) -> Math:
    """Build `variable = value [units]` as a one-equation math block."""
    return Math(children=[equation(Ci(variable), Cn(repr(float(value)), units=units))])


def _units_attribute(elem: ET.Element) -> tuple[Optional[str], Dict[str, str]]:
    units = None
    attrib: Dict[str, str] = {}
    for name, value in elem.attrib.items():
        uri, local = split_tag(name)
        if local == "units" and uri in CELLML_NAMESPACES:
            units = value
        else:
            attrib[name] = value
    return units, attrib


def from_element(elem: ET.Element) -> MathNode:
    """Convert an ElementTree MathML element into a math node tree."""
    uri, tag = split_tag(elem.tag)
    if uri != MATHML_NS:
        return Opaque(copy.deepcopy(elem))
    children = list(elem)
    text = (elem.text or "").strip()
    if tag == "math":
        return Math([from_element(c) for c in children], dict(elem.attrib))
    if tag == "ci":
        return Ci(" ".join(text.split()), dict(elem.attrib))
    if tag == "cn":
        units, attrib = _units_attribute(elem)
        sep_text = None
        if children and split_tag(children[0].tag)[1] == "sep":
            sep_text = (children[0].tail or "").strip()
        return Cn(text, units, attrib, sep_text)
    if tag == "apply":
        if not children:
            return Opaque(copy.deepcopy(elem))
        return Apply(
            head=from_element(children[0]),
            operands=[from_element(c) for c in children[1:]],
            attrib=dict(elem.attrib),
        )
    if tag == "bvar":
        return Bvar(children=[from_element(c) for c in children], attrib=dict(elem.attrib))
    if tag == "piecewise":
        return Piecewise(children=[from_element(c) for c in children], attrib=dict(elem.attrib))
    if not children:
        if text:
            return Opaque(copy.deepcopy(elem))
        return Operator(tag, dict(elem.attrib))
    return Container(tag, [from_element(c) for c in children], dict(elem.attrib))


def to_element(node: MathNode, cellml_ns: str = CELLML_1_0_NS) -> ET.Element:
    """Convert a math node tree back to ElementTree, in the MathML namespace."""

    def q(local: str) -> str:
        return f"{{{MATHML_NS}}}{local}"

    if isinstance(node, Opaque):
        return copy.deepcopy(node.element)
    if isinstance(node, Math):
        elem = ET.Element(q("math"), dict(node.attrib))
        elem.extend(to_element(c, cellml_ns) for c in node.children)
        return elem
    if isinstance(node, Ci):
        elem = ET.Element(q("ci"), dict(node.attrib))
        elem.text = node.name
        return elem
    if isinstance(node, Cn):
        elem = ET.Element(q("cn"), dict(node.attrib))
        if node.units is not None:
            elem.set(f"{{{cellml_ns}}}units", node.units)
        elem.text = node.text
        if node.sep_text is not None:
            sep = ET.SubElement(elem, q("sep"))
            sep.tail = node.sep_text
        return elem
    if isinstance(node, Apply):
        elem = ET.Element(q("apply"), dict(node.attrib))
        elem.extend(to_element(c, cellml_ns) for c in node.children)
        return elem
    if isinstance(node, Operator):
        return ET.Element(q(node.name), dict(node.attrib))
    if isinstance(node, Container):
        elem = ET.Element(q(node.tag), dict(node.attrib))
        elem.extend(to_element(c, cellml_ns) for c in node.children)
        return elem
    raise TypeError(f"Unknown math node: {node!r}")
