"""AI-assisted semantic matching of generated labels against the catalog."""
from __future__ import annotations

import json
import logging

from llm.categories import CategoryParseError, parse_label_list
from llm.client import GenerationError, TextGenerator, generate_with_timeout, get_text_generator
from market.config import settings

logger = logging.getLogger(__name__)


SEMANTIC_PROMPT = """
You are a semantic matching expert. Given generated categories and a catalog of existing categories, find semantic matches.

Generated Categories: {generated}
Catalog Categories: {catalog}

Find categories from the catalog that are semantically similar to the generated categories, even if they don't share exact words.

Requirements:
- Return ONLY a JSON array of category names copied exactly from the catalog
- Only include categories that are semantically related but NOT exact word matches
- Maximum {max_matches} semantic matches
- Focus on conceptual similarity (e.g., "Laptops" might semantically match "Computing Equipment")
- Be conservative - only include strong semantic relationships

Example:
Generated: ["Laptops"]
Catalog: ["Computing Equipment", "Tech Gadgets", "Office Supplies", "Books"]
Response: ["Computing Equipment", "Tech Gadgets"]

Return semantic matches:"""


async def find_semantic_matches(
    generated: list[str],
    catalog: list[str],
    generator: TextGenerator | None = None,
    *,
    max_matches: int | None = None,
) -> list[str]:
    """Ask the model for catalog entries conceptually related to ``generated``.

    Entries not literally present in ``catalog`` are dropped. Any failure
    yields an empty list.
    """
    limit = settings.matching.max_semantic_matches if max_matches is None else max_matches
    if not generated or not catalog or limit <= 0:
        return []

    generator = generator or get_text_generator()
    if generator is None:
        return []

    prompt = SEMANTIC_PROMPT.format(
        generated=json.dumps(generated, ensure_ascii=False),
        catalog=json.dumps(catalog, ensure_ascii=False),
        max_matches=limit,
    )

    try:
        raw = await generate_with_timeout(generator, prompt)
        suggestions = parse_label_list(raw)
    except (GenerationError, CategoryParseError) as e:
        logger.warning(f"Semantic matching skipped: {e}")
        return []

    catalog_entries = set(catalog)
    matches: list[str] = []
    for suggestion in suggestions:
        if suggestion not in catalog_entries:
            logger.info(f"Dropping semantic match not in catalog: {suggestion!r}")
            continue
        if suggestion not in matches:
            matches.append(suggestion)

    matches = matches[:limit]
    logger.info(f"Semantic matches found: {matches}")
    return matches
