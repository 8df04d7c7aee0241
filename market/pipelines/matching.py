"""Matching pipeline: buyer request → ranked eligible sellers.

Workflow:
1. Generate categories from the request text
2. Reconcile them with the catalog (lexical, then semantic)
3. Load sellers holding any matched category
4. Drop ineligible sellers (institution, billing)
5. Score against the originally generated categories
6. Rank with the fairness tie-break and keep the top ``limit``
7. Stamp ``last_matched_at`` on every returned seller
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from llm.categories import generate_categories
from llm.client import TextGenerator, get_text_generator
from market import models
from market.config import settings
from market.pipelines.catalog import CatalogStoreError, fetch_catalog_names
from market.pipelines.category_matching import match_categories_with_semantics
from market.pipelines.eligibility import filter_eligible
from market.pipelines.normalization import normalize_category_name
from market.pipelines.sellers import (
    SellerProfile,
    SellerStoreError,
    load_sellers_for_categories,
    touch_last_matched,
)
from market.ranking import ScoredCandidate, rank
from market.scoring import ScoringConfig, score_breakdown

logger = logging.getLogger(__name__)


@dataclass
class SellerMatch:
    """Single seller in a match result."""
    seller_id: int
    rank: int
    score: float
    categories_matched: list[str]


@dataclass
class MatchOutcome:
    """Complete result of one request."""
    free_text: str
    institution: str
    generated_categories: list[str] = field(default_factory=list)
    matched_categories: list[str] = field(default_factory=list)
    matches: list[SellerMatch] = field(default_factory=list)
    computed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class MatchingError(Exception):
    """Raised when matching pipeline fails."""
    pass


def score_candidates(
    sellers: list[SellerProfile],
    target_categories: list[str],
    matched_categories: list[str],
    now: datetime,
    config: ScoringConfig | None = None,
) -> list[ScoredCandidate]:
    """Score each seller against the generated (pre-catalog) categories."""
    matched_keys = {normalize_category_name(c) for c in matched_categories}
    candidates = []
    for seller in sellers:
        breakdown = score_breakdown(
            seller.categories,
            target_categories,
            seller.average_rating,
            seller.rating_count,
            seller.last_matched_at,
            now,
            config,
        )
        candidates.append(
            ScoredCandidate.from_breakdown(
                seller.seller_id,
                breakdown,
                categories=list(seller.categories),
                categories_matched=[
                    c for c in seller.categories if normalize_category_name(c) in matched_keys
                ],
                average_rating=seller.average_rating,
                rating_count=seller.rating_count,
                last_matched_at=seller.last_matched_at,
            )
        )
        logger.debug(
            f"Seller {seller.seller_id}: raw={breakdown.raw_overlap_score} "
            f"normalized={breakdown.normalized_score:.2f} rating_x={breakdown.rating_factor:.2f} "
            f"recency_x={breakdown.recency_factor:.2f} final={breakdown.final_score:.2f}"
        )
    return candidates


async def find_sellers_for_request(
    session: AsyncSession,
    free_text: str,
    institution: str,
    limit: int | None = None,
    *,
    generator: TextGenerator | None = None,
    now: datetime | None = None,
    config: ScoringConfig | None = None,
) -> MatchOutcome:
    """Execute the complete matching pipeline for one buyer request.

    Generation and semantic failures degrade to an empty result; only store
    failures raise.

    Args:
        session: Database session
        free_text: Buyer request text
        institution: Requester's institution (exact match)
        limit: Maximum sellers returned (default from config)
        generator: Text-generation capability (default from config)
        now: Clock override for scoring and the last-matched stamp
        config: Scoring heuristics override

    Returns:
        MatchOutcome with generated/matched categories and ranked sellers

    Raises:
        MatchingError: If the catalog or seller store fails
    """
    if limit is None:
        limit = settings.matching.default_limit
    now = now or datetime.now(timezone.utc)
    config = config or ScoringConfig.from_settings()
    generator = generator or get_text_generator()

    outcome = MatchOutcome(free_text=free_text, institution=institution, computed_at=now)
    logger.info(f"Matching request for institution {institution!r} (limit={limit})")

    generated = await generate_categories(free_text, generator)
    if not generated.ok or not generated.categories:
        logger.info("No categories generated from request")
        return outcome
    outcome.generated_categories = generated.categories

    try:
        catalog = await fetch_catalog_names(session)
    except CatalogStoreError as e:
        raise MatchingError(f"Catalog unavailable: {e}") from e

    matched = await match_categories_with_semantics(generated.categories, catalog, generator)
    if not matched:
        logger.info("No matching categories found in catalog")
        return outcome
    outcome.matched_categories = matched

    try:
        sellers = await load_sellers_for_categories(session, matched, institution)
    except SellerStoreError as e:
        raise MatchingError(f"Seller store unavailable: {e}") from e

    eligible = filter_eligible(sellers, institution, now.date())
    logger.info(f"{len(eligible)} of {len(sellers)} sellers eligible")
    if not eligible:
        return outcome

    candidates = score_candidates(eligible, generated.categories, matched, now, config)
    ranked = rank(candidates, limit, close_ratio=settings.matching.close_score_ratio)

    outcome.matches = [
        SellerMatch(
            seller_id=c.seller_id,
            rank=position,
            score=c.final_score,
            categories_matched=c.categories_matched,
        )
        for position, c in enumerate(ranked, start=1)
    ]

    await touch_last_matched(session, [m.seller_id for m in outcome.matches], now)

    logger.info(f"Returning {len(outcome.matches)} sellers")
    return outcome


async def log_match_request(session: AsyncSession, outcome: MatchOutcome) -> models.MatchRequestLog:
    """Persist an audit row for a completed match.

    Raises:
        MatchingError: If the row cannot be written
    """
    record = models.MatchRequestLog(
        request_text=outcome.free_text,
        institution=outcome.institution,
        generated_categories=outcome.generated_categories,
        matched_categories=outcome.matched_categories,
        matched_seller_ids=[m.seller_id for m in outcome.matches],
        created_at=outcome.computed_at,
    )
    try:
        session.add(record)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to log match request: {e}")
        raise MatchingError(f"Match request logging failed: {e}") from e
    return record
