"""Category name normalization for catalog writes and comparisons.

Display labels keep their original casing; comparisons and the catalog's
uniqueness key use the folded form produced by ``normalize_category_name``.
"""
from __future__ import annotations

import logging
import re
import unicodedata
from typing import Iterable

logger = logging.getLogger(__name__)


def normalize_whitespace(text: str) -> str:
    """Normalize whitespace: collapse multiple spaces, remove leading/trailing."""
    text = re.sub(r'\s+', ' ', text)
    return text.strip()


def normalize_punctuation(text: str) -> str:
    """Normalize common punctuation variations."""
    # Replace smart quotes
    text = text.replace('“', '"').replace('”', '"')
    text = text.replace('‘', "'").replace('’', "'")

    # Normalize dashes
    text = text.replace('–', '-').replace('—', '-')

    return text


def clean_category_label(label: str) -> str:
    """Tidy a label for display without changing its casing.

    ``"  Mobile   Phones "`` becomes ``"Mobile Phones"``.
    """
    if not label:
        return ""
    label = unicodedata.normalize('NFC', label)
    label = normalize_punctuation(label)
    return normalize_whitespace(label)


def normalize_category_name(name: str) -> str:
    """Canonical comparison key: cleaned label, case-folded."""
    return clean_category_label(name).casefold()


def dedupe_categories(names: Iterable[str]) -> list[str]:
    """Drop blanks and case/space variants, keeping the first spelling seen.

    Args:
        names: Category labels in priority order

    Returns:
        Cleaned labels, one per canonical name, order preserved
    """
    seen: set[str] = set()
    result: list[str] = []
    for name in names:
        label = clean_category_label(name)
        key = label.casefold()
        if not key or key in seen:
            continue
        seen.add(key)
        result.append(label)
    return result
