"""Diagnostics report: an ordered, indentable log of what a pass copied or compacted."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator, List, Optional

from pydantic import BaseModel, Field

from .errors import Advisory

logger = logging.getLogger(__name__)


class ReportEntry(BaseModel):
    """A structured record kept alongside the text log."""

    kind: str = Field(..., description="Advisory kind, or 'compaction' for compactor bookkeeping")
    message: str = Field(..., description="Human-readable description")
    subject: Optional[str] = Field(default=None, description="Variable, component or units concerned")
    source: Optional[str] = Field(default=None, description="Source variable, for compaction records")


class Report:
    """Append-only text log, read once at the end of a run.

    Every line is mirrored to the module logger so `-v` runs show progress
    live; `text()` gives the accumulated log for printing on failure.
    """

    def __init__(self, indent_string: str = "  "):
        self.indent_string = indent_string
        self.indent_level = 0
        self._lines: List[str] = []
        self.entries: List[ReportEntry] = []
        self.error_message: Optional[str] = None

    def add_line(self, line: str, level: int = logging.INFO) -> None:
        text = self.indent_string * self.indent_level + line
        self._lines.append(text)
        logger.log(level, text)

    @contextmanager
    def indent(self) -> Iterator[None]:
        self.indent_level += 1
        try:
            yield
        finally:
            self.indent_level -= 1

    def advisory(self, kind: Advisory, message: str, subject: Optional[str] = None) -> None:
        self.entries.append(ReportEntry(kind=kind.value, message=message, subject=subject))
        self.add_line(f"[{kind.value}] {message}", level=logging.WARNING)

    def advisories(self, kind: Optional[Advisory] = None) -> List[ReportEntry]:
        if kind is None:
            return [e for e in self.entries if e.kind != "compaction"]
        return [e for e in self.entries if e.kind == kind.value]

    def variable_for_compaction(self, variable: str, source: str) -> None:
        self.entries.append(
            ReportEntry(
                kind="compaction",
                message=f"{variable} is compacted through source variable {source}",
                subject=variable,
                source=source,
            )
        )
        self.add_line(f"{variable} ==> {source}", level=logging.DEBUG)

    def set_error(self, message: str) -> None:
        self.error_message = message
        self.add_line(f"ERROR: {message}", level=logging.ERROR)

    @property
    def lines(self) -> List[str]:
        return list(self._lines)

    def text(self) -> str:
        return "\n".join(self._lines) + ("\n" if self._lines else "")
