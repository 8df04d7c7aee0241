"""Reconcile generated category labels with the existing catalog.

Two passes:
1. Lexical - exact, substring and shared-word rules, pure and local.
2. Semantic - model-suggested catalog entries for conceptually related labels.

Lexical matches always come first in the combined output.
"""
from __future__ import annotations

import logging

from llm.client import TextGenerator
from llm.semantic import find_semantic_matches
from market.pipelines.normalization import normalize_category_name

logger = logging.getLogger(__name__)

# Shortest string allowed to count as contained in another one
MIN_CONTAINED_LENGTH = 3
# Shortest word allowed to match another word exactly
MIN_WORD_LENGTH = 3
# Both words must be at least this long for word-in-word containment
MIN_PARTIAL_WORD_LENGTH = 4


def contains_either_way(a: str, b: str) -> bool:
    """True if one folded string contains the other and the contained one is long enough."""
    return (a in b and len(a) >= MIN_CONTAINED_LENGTH) or (
        b in a and len(b) >= MIN_CONTAINED_LENGTH
    )


def words_equal(a: str, b: str) -> bool:
    return a == b and len(a) >= MIN_WORD_LENGTH


def words_overlap(a: str, b: str) -> bool:
    return (
        len(a) >= MIN_PARTIAL_WORD_LENGTH
        and len(b) >= MIN_PARTIAL_WORD_LENGTH
        and (a in b or b in a)
    )


def is_lexical_match(generated: str, catalog_entry: str) -> bool:
    """Case-insensitive lexical match between one label and one catalog entry."""
    g = normalize_category_name(generated)
    c = normalize_category_name(catalog_entry)
    if not g or not c:
        return False

    if g == c:
        return True
    if contains_either_way(g, c):
        return True

    return any(
        words_equal(g_word, c_word) or words_overlap(g_word, c_word)
        for g_word in g.split()
        for c_word in c.split()
    )


def match_categories(generated: list[str], catalog: list[str]) -> list[str]:
    """Lexical pass: catalog entries matching any generated label.

    Output follows generated-label order, then catalog order, and holds each
    catalog entry at most once.
    """
    matched: list[str] = []
    for label in generated:
        for entry in catalog:
            if entry in matched:
                continue
            if is_lexical_match(label, entry):
                logger.debug(f"Lexical match: {label!r} -> {entry!r}")
                matched.append(entry)

    logger.info(f"Lexical pass matched {len(matched)} of {len(catalog)} catalog categories")
    return matched


async def match_categories_with_semantics(
    generated: list[str],
    catalog: list[str],
    generator: TextGenerator | None = None,
) -> list[str]:
    """Lexical matches followed by any new semantic matches, deduplicated."""
    lexical = match_categories(generated, catalog)
    semantic = await find_semantic_matches(generated, catalog, generator)

    combined = list(lexical)
    for entry in semantic:
        if entry not in combined:
            combined.append(entry)

    logger.info(
        f"Category matching: {len(lexical)} lexical, "
        f"{len(combined) - len(lexical)} semantic-only"
    )
    return combined
