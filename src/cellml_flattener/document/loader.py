"""CellML 1.0/1.1 loader built on ElementTree.

Extracts:
- Components with variables, local units, math blocks and extension elements
- Model-level units, connections, encapsulation/containment groups
- Imports, instantiated recursively relative to the importing document
"""

from __future__ import annotations

import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import List, Optional
from urllib.parse import unquote, urljoin, urlparse

import requests

from ..errors import LoadError
from .mathml import CELLML_1_0_NS, CELLML_1_1_NS, MATHML_NS, from_element, split_tag
from .model import (
    INTERFACES,
    Component,
    ComponentRef,
    Connection,
    Group,
    Import,
    ImportComponent,
    ImportUnits,
    Model,
    Unit,
    Units,
    Variable,
    VariableMapping,
)

logger = logging.getLogger(__name__)

CMETA_NS = "http://www.cellml.org/metadata/1.0#"
XLINK_NS = "http://www.w3.org/1999/xlink"

VERSIONS = {CELLML_1_0_NS: "1.0", CELLML_1_1_NS: "1.1"}
PREFIXES = {
    "yotta": 24, "zetta": 21, "exa": 18, "peta": 15, "tera": 12, "giga": 9,
    "mega": 6, "kilo": 3, "hecto": 2, "deka": 1, "deca": 1,
    "deci": -1, "centi": -2, "milli": -3, "micro": -6, "nano": -9,
    "pico": -12, "femto": -15, "atto": -18, "zepto": -21, "yocto": -24,
}


def _cmeta_id(elem: ET.Element) -> Optional[str]:
    return elem.get(f"{{{CMETA_NS}}}id")


def _float(elem: ET.Element, name: str, default: float) -> float:
    raw = elem.get(name)
    if raw is None:
        return default
    try:
        return float(raw)
    except ValueError as e:
        raise LoadError(f"attribute {name}='{raw}' on <{split_tag(elem.tag)[1]}> is not a number") from e


def _interface(elem: ET.Element, name: str) -> str:
    raw = elem.get(name, "none")
    if raw not in INTERFACES:
        raise LoadError(f"{name}='{raw}' on variable '{elem.get('name', '')}' must be one of {', '.join(INTERFACES)}")
    return raw


def _prefix(raw: Optional[str]) -> int:
    if raw is None or raw == "":
        return 0
    if raw in PREFIXES:
        return PREFIXES[raw]
    try:
        return int(raw)
    except ValueError as e:
        raise LoadError(f"unknown units prefix '{raw}'") from e


class DocumentLoader:
    """Load CellML documents from files, file:// or http(s):// URLs."""

    def __init__(self, http_timeout: float = 30.0, session: Optional[requests.Session] = None):
        self.http_timeout = http_timeout
        self.session = session or requests.Session()

    # ------------------------------------------------------------------
    # fetching
    # ------------------------------------------------------------------

    def fetch(self, url: str) -> str:
        parsed = urlparse(url)
        if parsed.scheme in ("http", "https"):
            try:
                response = self.session.get(url, timeout=self.http_timeout)
                response.raise_for_status()
            except requests.exceptions.RequestException as e:
                raise LoadError(f"unable to fetch {url}: {e}") from e
            return response.text
        path = Path(unquote(parsed.path)) if parsed.scheme == "file" else Path(url)
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            raise LoadError(f"unable to read {url}: {e}") from e

    @staticmethod
    def normalise_url(url: str) -> str:
        if urlparse(url).scheme in ("http", "https", "file"):
            return url
        return Path(url).resolve().as_uri()

    # ------------------------------------------------------------------
    # entry points
    # ------------------------------------------------------------------

    def load(self, url: str, instantiate_imports: bool = True) -> Model:
        """Load the model at `url`; with `instantiate_imports`, resolve every import too."""
        base_uri = self.normalise_url(url)
        model = self.parse_text(self.fetch(base_uri), base_uri)
        if instantiate_imports:
            self.instantiate_imports(model)
        return model

    def parse_text(self, text: str, base_uri: Optional[str] = None, key: str = "root") -> Model:
        try:
            root = ET.fromstring(text)
        except ET.ParseError as e:
            raise LoadError(f"malformed XML in {base_uri or 'document'}: {e}") from e
        try:
            return self._parse_model(root, base_uri, key)
        except ValueError as e:
            raise LoadError(f"invalid model in {base_uri or 'document'}: {e}") from e

    def instantiate_imports(self, model: Model, _stack: Optional[List[str]] = None) -> None:
        """Load every import of `model` recursively (depth-first, document order)."""
        stack = list(_stack or [])
        if model.base_uri:
            stack.append(model.base_uri)
        for index, imp in enumerate(model.imports):
            if imp.model is not None:
                self.instantiate_imports(imp.model, stack)
                continue
            url = urljoin(model.base_uri or "", imp.href) if model.base_uri else imp.href
            url = self.normalise_url(url)
            if url in stack:
                raise LoadError(f"import cycle: {' -> '.join(stack + [url])}")
            logger.debug(f"Instantiating import {imp.href} of model {model.name}")
            imp.model = self.parse_text(self.fetch(url), url, key=f"{model.key}/{index}")
            self.instantiate_imports(imp.model, stack)

    # ------------------------------------------------------------------
    # parsing
    # ------------------------------------------------------------------

    def _parse_model(self, root: ET.Element, base_uri: Optional[str], key: str) -> Model:
        ns, tag = split_tag(root.tag)
        if tag != "model" or ns not in VERSIONS:
            raise LoadError(f"{base_uri or 'document'} is not a CellML model (root element {root.tag})")
        name = root.get("name")
        if not name:
            raise LoadError(f"model in {base_uri or 'document'} has no name")
        model = Model(
            name=name,
            key=key,
            cmeta_id=_cmeta_id(root),
            version=VERSIONS[ns],
            base_uri=base_uri,
        )

        def q(local: str) -> str:
            return f"{{{ns}}}{local}"

        for child in root:
            if child.tag == q("units"):
                units = self._parse_units(child, ns)
                model.units[units.name] = units
            elif child.tag == q("component"):
                model.add_component(self._parse_component(child, ns))
            elif child.tag == q("connection"):
                model.connections.append(self._parse_connection(child, ns))
            elif child.tag == q("group"):
                model.groups.append(self._parse_group(child, ns))
            elif child.tag == q("import"):
                model.imports.append(self._parse_import(child, ns))
            elif split_tag(child.tag)[0] in VERSIONS:
                logger.debug(f"Ignoring CellML element <{split_tag(child.tag)[1]}> in model {name}")
            else:
                model.extensions.append(child)
        return model

    def _parse_units(self, elem: ET.Element, ns: str) -> Units:
        units = Units(
            name=elem.get("name", ""),
            base_units=elem.get("base_units", "no") == "yes",
            cmeta_id=_cmeta_id(elem),
        )
        for u in elem.findall(f"{{{ns}}}unit"):
            units.units.append(
                Unit(
                    units=u.get("units", ""),
                    prefix=_prefix(u.get("prefix")),
                    exponent=_float(u, "exponent", 1.0),
                    multiplier=_float(u, "multiplier", 1.0),
                    offset=_float(u, "offset", 0.0),
                )
            )
        return units

    def _parse_component(self, elem: ET.Element, ns: str) -> Component:
        name = elem.get("name")
        if not name:
            raise LoadError("component without a name")
        component = Component(name=name, cmeta_id=_cmeta_id(elem))
        for child in elem:
            if child.tag == f"{{{ns}}}variable":
                component.add_variable(
                    Variable(
                        name=child.get("name", ""),
                        units=child.get("units", ""),
                        public_interface=_interface(child, "public_interface"),
                        private_interface=_interface(child, "private_interface"),
                        initial_value=child.get("initial_value"),
                        cmeta_id=_cmeta_id(child),
                    )
                )
            elif child.tag == f"{{{ns}}}units":
                units = self._parse_units(child, ns)
                component.units[units.name] = units
            elif child.tag == f"{{{MATHML_NS}}}math":
                component.math.append(from_element(child))
            elif split_tag(child.tag)[0] in VERSIONS:
                # reaction elements are not supported
                logger.debug(f"Ignoring CellML element <{split_tag(child.tag)[1]}> in component {name}")
            else:
                component.extensions.append(child)
        return component

    def _parse_connection(self, elem: ET.Element, ns: str) -> Connection:
        mc = elem.find(f"{{{ns}}}map_components")
        if mc is None:
            raise LoadError("connection without map_components")
        conn = Connection(mc.get("component_1", ""), mc.get("component_2", ""))
        for mv in elem.findall(f"{{{ns}}}map_variables"):
            conn.mappings.append(VariableMapping(mv.get("variable_1", ""), mv.get("variable_2", "")))
        return conn

    def _parse_group(self, elem: ET.Element, ns: str) -> Group:
        group = Group()
        for rr in elem.findall(f"{{{ns}}}relationship_ref"):
            group.relationships.append((rr.get("relationship", ""), rr.get("name")))

        def refs(parent: ET.Element) -> List[ComponentRef]:
            return [
                ComponentRef(cr.get("component", ""), refs(cr))
                for cr in parent.findall(f"{{{ns}}}component_ref")
            ]

        group.component_refs = refs(elem)
        return group

    def _parse_import(self, elem: ET.Element, ns: str) -> Import:
        href = elem.get(f"{{{XLINK_NS}}}href")
        if not href:
            raise LoadError("import without xlink:href")
        imp = Import(href=href, cmeta_id=_cmeta_id(elem))
        for ic in elem.findall(f"{{{ns}}}component"):
            imp.components.append(ImportComponent(ic.get("name", ""), ic.get("component_ref", ""), _cmeta_id(ic)))
        for iu in elem.findall(f"{{{ns}}}units"):
            imp.units.append(ImportUnits(iu.get("name", ""), iu.get("units_ref", "")))
        return imp
