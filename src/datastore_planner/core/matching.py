"""
Datastore name pattern matching.

Patterns are regular expressions searched anywhere in the name, so
"^ssd" and "ssd" both accept "ssd-01" while only the latter accepts
"fast-ssd". Callers may pass one pattern or a list of them.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional, Union

PatternSpec = Union[str, Iterable[str], None]


def normalize_patterns(patterns: PatternSpec) -> Optional[List[str]]:
    """Return a list of patterns, or None when no filter applies."""
    if patterns is None:
        return None
    if isinstance(patterns, str):
        return [patterns]
    normalized = [str(p) for p in patterns]
    return normalized or None


def name_matches(name: str, patterns: PatternSpec) -> bool:
    """True when no filter is set or any pattern matches the name."""
    normalized = normalize_patterns(patterns)
    if normalized is None:
        return True
    return any(re.search(p, name) for p in normalized)
