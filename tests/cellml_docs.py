"""Small CellML documents used across the test modules."""

from pathlib import Path
from typing import Dict

from cellml_flattener.document.loader import DocumentLoader
from cellml_flattener.document.model import Model

CELLML_10 = "http://www.cellml.org/cellml/1.0#"
CELLML_11 = "http://www.cellml.org/cellml/1.1#"
MATHML = "http://www.w3.org/1998/Math/MathML"


def model_xml(name: str, body: str, version: str = "1.0") -> str:
    ns = CELLML_11 if version == "1.1" else CELLML_10
    return (
        '<?xml version="1.0" encoding="UTF-8"?>\n'
        f'<model xmlns="{ns}" xmlns:cellml="{ns}" '
        'xmlns:cmeta="http://www.cellml.org/metadata/1.0#" '
        'xmlns:xlink="http://www.w3.org/1999/xlink" '
        f'name="{name}">{body}</model>'
    )


def math(body: str) -> str:
    return f'<math xmlns="{MATHML}">{body}</math>'


def write_models(directory: Path, docs: Dict[str, str]) -> Dict[str, Path]:
    paths = {}
    for filename, text in docs.items():
        path = directory / filename
        path.write_text(text, encoding="utf-8")
        paths[filename] = path
    return paths


def load(path: Path) -> Model:
    return DocumentLoader().load(str(path))


def parse(text: str) -> Model:
    return DocumentLoader().parse_text(text)


SCENARIO_A = model_xml(
    "scenario_a",
    """
    <units name="millivolt"><unit units="volt" prefix="milli"/></units>
    <component name="C1">
      <variable name="v" units="millivolt" public_interface="out" initial_value="1.5"/>
    </component>
    <component name="C2">
      <variable name="w" units="millivolt" public_interface="in"/>
    </component>
    <connection>
      <map_components component_1="C1" component_2="C2"/>
      <map_variables variable_1="v" variable_2="w"/>
    </connection>
    """,
)

CONSTANT_MODEL = model_xml(
    "constants",
    """
    <component name="K">
      <variable name="x" units="volt"/>
      <variable name="y" units="volt"/>
      """
    + math(
        '<apply><eq/><ci>x</ci><cn cellml:units="volt">5</cn></apply>'
        "<apply><eq/><ci>y</ci><apply><times/><cn cellml:units=\"dimensionless\">2</cn><ci>x</ci></apply></apply>"
    )
    + """
    </component>
    """,
)
