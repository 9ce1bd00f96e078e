"""
Strategy Matcher Module

Finds the import strategies whose identification columns are exactly the
headers of a CSV file.
"""

import logging
from collections.abc import Iterable

from .models import ImportStrategy

logger = logging.getLogger(__name__)


def find_matching_strategy(
    headers: Iterable[str],
    strategies: list[ImportStrategy]
) -> ImportStrategy | None:
    """Return the first strategy, in catalog order, matching the headers.

    Args:
        headers: CSV header names (order does not matter)
        strategies: Strategy catalog

    Returns:
        Matching strategy or None
    """
    header_set = frozenset(headers)
    for strategy in strategies:
        if strategy.matches_columns(header_set):
            logger.debug(f"Strategy '{strategy.name}' matches {len(header_set)} headers")
            return strategy
    return None


def find_all_matching_strategies(
    headers: Iterable[str],
    strategies: list[ImportStrategy]
) -> list[ImportStrategy]:
    header_set = frozenset(headers)
    return [s for s in strategies if s.matches_columns(header_set)]
