"""Category generation: free text → short ordered list of category labels.

Works for both buyer requests and seller self-descriptions. Model output is
treated as untrusted text and passed through a strict parse-or-fallback
boundary; callers always get a ``CategoryGenerationResult`` back.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field

from pydantic import StrictStr, TypeAdapter, ValidationError

from llm.client import GenerationError, TextGenerator, generate_with_timeout, get_text_generator
from market.config import settings

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*([\s\S]*?)\s*```")
_LABEL_LIST = TypeAdapter(list[StrictStr])


REQUEST_PROMPT = """
You are a product categorization expert. Given a user's product request, generate the most likely product categories that would contain the items they're looking for.

User Request: "{text}"

Requirements:
- Return ONLY a JSON array of category names that represent what the user is looking for
- Generate categories based on the request content, not from any predefined list
- Maximum {max_categories} categories
- Each category should be 1-3 words maximum
- Use title case (e.g., "Mobile Phones" not "mobile phones")
- Be specific and relevant to the request
- Order by relevance (most relevant first)
- If the request is unclear or inappropriate, return an empty array
- Avoid overly broad labels such as "Accessories"; prefer "Hair Accessories", "Tech Accessories", "Fashion Accessories"

Example response format:
For request "I need a laptop for school":
["Laptops", "Electronics", "Computers"]

Generate categories for this request:"""


SELLER_PROMPT = """
Based on the following seller description, generate relevant product categories that this seller might offer.

Seller Description: "{text}"

Requirements:
- Return ONLY a JSON array of strings
- Each category should be 1-3 words maximum
- Categories should be general product types (e.g., "Electronics", "Clothing", "Books", "Food Items")
- Maximum {max_categories} categories
- Use title case (e.g., "Mobile Phones" not "mobile phones")
- Order by relevance (most relevant first)
- Be specific but not overly narrow
- Avoid overly broad labels such as "Accessories"; prefer "Hair Accessories", "Tech Accessories", "Fashion Accessories"

Example response format:
["Electronics", "Mobile Accessories", "Gadgets"]

Generate categories now:"""


@dataclass
class CategoryGenerationResult:
    """Outcome of one generation call."""
    categories: list[str] = field(default_factory=list)
    ok: bool = False
    error: str | None = None


class CategoryParseError(ValueError):
    """Model output is not a JSON list of strings."""
    pass


def strip_code_fences(text: str) -> str:
    """Remove incidental Markdown code fences around model output."""
    text = text.strip()
    match = _FENCED_BLOCK.search(text)
    if match:
        return match.group(1).strip()
    if text.startswith("```") and text.endswith("```"):
        return text[3:-3].strip()
    return text


def parse_label_list(raw: str) -> list[str]:
    """Parse model output that must be a JSON array of strings.

    Raises:
        CategoryParseError: Malformed JSON, an object, prose, or non-string items
    """
    try:
        labels = _LABEL_LIST.validate_json(strip_code_fences(raw))
    except ValidationError as e:
        raise CategoryParseError(f"Expected a JSON list of strings: {e.error_count()} error(s)") from e
    return [label.strip() for label in labels if label.strip()]


async def _generate(
    prompt_template: str,
    text: str,
    generator: TextGenerator | None,
    max_categories: int | None,
) -> CategoryGenerationResult:
    limit = max_categories or settings.matching.max_generated_categories

    if not text or not text.strip():
        return CategoryGenerationResult(error="Empty input text")

    generator = generator or get_text_generator()
    if generator is None:
        return CategoryGenerationResult(error="Text generation not configured")

    prompt = prompt_template.format(text=text.strip(), max_categories=limit)

    try:
        raw = await generate_with_timeout(generator, prompt)
    except GenerationError as e:
        logger.warning(f"Category generation failed: {e}")
        return CategoryGenerationResult(error=str(e))

    try:
        categories = parse_label_list(raw)
    except CategoryParseError as e:
        logger.warning(f"Could not parse generated categories: {e}; raw={raw[:200]!r}")
        return CategoryGenerationResult(error="Failed to parse AI response")

    categories = categories[:limit]
    logger.info(f"Generated {len(categories)} categories: {categories}")
    return CategoryGenerationResult(categories=categories, ok=True)


async def generate_categories(
    free_text: str,
    generator: TextGenerator | None = None,
    *,
    max_categories: int | None = None,
) -> CategoryGenerationResult:
    """Infer categories implied by a buyer request.

    Never raises: provider failures, timeouts and unparsable output all come
    back as ``ok=False`` with an empty list.

    Args:
        free_text: Buyer request text
        generator: Capability to use (defaults to the configured provider)
        max_categories: Cap on returned labels (uses config default if None)

    Returns:
        CategoryGenerationResult ordered by relevance
    """
    return await _generate(REQUEST_PROMPT, free_text, generator, max_categories)


async def generate_seller_categories(
    description: str,
    generator: TextGenerator | None = None,
    *,
    max_categories: int | None = None,
) -> CategoryGenerationResult:
    """Infer categories a seller offers from their self-description."""
    return await _generate(SELLER_PROMPT, description, generator, max_categories)
