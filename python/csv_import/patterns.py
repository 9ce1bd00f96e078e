"""
Pattern Guard Module

Compiles user-supplied account patterns with limits on pattern size and
shape, since persisted patterns are re-run on every import.
"""

import re
from functools import lru_cache

from .errors import InvalidPatternError

# A group holding an unbounded quantifier that is itself repeated, e.g. (a+)+ or (\w+\s?)*
_NESTED_QUANTIFIER = re.compile(
    r"\((?:[^()\\]|\\.)*(?:[+*]|\{\d*,\})(?:[^()\\]|\\.)*\)(?:[+*]|\{\d*,\d*\})"
)


@lru_cache(maxsize=1024)
def compile_pattern(pattern: str, max_length: int = 512) -> re.Pattern:
    """Compile a case-insensitive user pattern.

    Args:
        pattern: Regex source
        max_length: Longest pattern accepted

    Returns:
        Compiled pattern

    Raises:
        InvalidPatternError: If the pattern is too long, has nested
            unbounded quantifiers or does not compile
    """
    if len(pattern) > max_length:
        raise InvalidPatternError(
            f"Pattern longer than {max_length} characters: {pattern[:40]}..."
        )
    if _NESTED_QUANTIFIER.search(pattern):
        raise InvalidPatternError(f"Pattern has nested quantifiers: {pattern}")

    try:
        return re.compile(pattern, re.IGNORECASE)
    except re.error as e:
        raise InvalidPatternError(f"Invalid pattern {pattern!r}: {e}") from e


def pattern_matches(compiled: re.Pattern, value: str, max_match_length: int = 1024) -> bool:
    """Search for the pattern in at most max_match_length characters of value."""
    return compiled.search(value[:max_match_length]) is not None
