"""Name de-duplication helpers shared by the flattener, compactor and units code."""

from __future__ import annotations

import itertools
from typing import Iterable, MutableSet

# Process-wide, never reset: names built from it are unique for the life of the process.
_fallback_counter = itertools.count(1)


def unique_name(name: str, used: MutableSet[str]) -> str:
    """Return `name`, or `name_n` for the least n giving an unused name, and record it.

    >>> used = {"foo"}
    >>> unique_name("foo", used)
    'foo_1'
    >>> unique_name("foo", used)
    'foo_2'
    """
    candidate = name
    n = 0
    while candidate in used:
        n += 1
        candidate = f"{name}_{n}"
    used.add(candidate)
    return candidate


def fallback_name(base: str) -> str:
    """Append the next value of the process-wide counter as five hex digits."""
    return f"{base}_{next(_fallback_counter):05x}"


def unique_set_name(name: str, existing: Iterable[str]) -> str:
    """Keep `name` if it is free in `existing`, otherwise manufacture a fallback name."""
    taken = set(existing)
    if name not in taken:
        return name
    candidate = fallback_name(name)
    while candidate in taken:
        candidate = fallback_name(name)
    return candidate
