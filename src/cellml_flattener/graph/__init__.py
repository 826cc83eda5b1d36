"""networkx-backed services over the component and variable graphs."""

from .relevance import RelevanceResult, RelevanceService, encapsulation_graph
from .sources import SourceVariableResolver

__all__ = ["RelevanceResult", "RelevanceService", "SourceVariableResolver", "encapsulation_graph"]
