from __future__ import annotations

import logging
from typing import Optional

from ..document.model import Component, Variable
from ..errors import UnresolvableInitialValue
from ..graph.sources import SourceVariableResolver

logger = logging.getLogger(__name__)


def resolve_initial_value(
    resolver: SourceVariableResolver, component: Component, variable: Variable
) -> Optional[str]:
    """Literal initial value for `variable`, following a variable reference if needed.

    A reference names another variable of the same component; its source
    variable must carry a literal. Returns None when there is no initial value.
    """
    init = variable.initial_value
    if init is None or not init.strip():
        return None
    if variable.literal_initial_value() is not None:
        return init
    referenced = component.variables.get(init.strip())
    if referenced is None:
        raise UnresolvableInitialValue(
            f"initial value '{init}' of {component.name}/{variable.name} does not name a variable of that component"
        )
    source_key, source = resolver.source_variable(component.name, referenced.name)
    if source.literal_initial_value() is None:
        raise UnresolvableInitialValue(
            f"initial value '{init}' of {component.name}/{variable.name} resolves to {source_key}, "
            f"which has no literal initial value"
        )
    logger.debug(f"Var {component.name}:{variable.name} has initvar {init} value {source.initial_value}")
    return source.initial_value
