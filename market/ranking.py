"""Ranking of scored sellers with a fairness-aware tie-break.

The ordering is an ordered list of comparators combined with "first non-zero
result wins":

1. fairness - when two scores are within ``close_ratio`` of their mean, the
   seller matched less recently (never matched first) goes ahead
2. higher score
3. higher average rating
4. fewer categories (specialists first)

Ranking is pure; stamping ``last_matched_at`` is the caller's job.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from functools import cmp_to_key
from typing import Callable, Iterable

from market.config import settings
from market.scoring import ScoreBreakdown, as_utc

logger = logging.getLogger(__name__)


@dataclass
class ScoredCandidate:
    """One eligible seller with its score for the current request."""
    seller_id: int
    raw_overlap_score: float
    normalized_score: float
    final_score: float
    categories: list[str] = field(default_factory=list)
    categories_matched: list[str] = field(default_factory=list)
    average_rating: float = 0.0
    rating_count: int = 0
    last_matched_at: datetime | None = None

    @classmethod
    def from_breakdown(
        cls,
        seller_id: int,
        breakdown: ScoreBreakdown,
        **attrs,
    ) -> ScoredCandidate:
        return cls(
            seller_id=seller_id,
            raw_overlap_score=breakdown.raw_overlap_score,
            normalized_score=breakdown.normalized_score,
            final_score=breakdown.final_score,
            **attrs,
        )


Comparator = Callable[[ScoredCandidate, ScoredCandidate], int]


def _sign(value: float) -> int:
    return (value > 0) - (value < 0)


def scores_are_close(score_a: float, score_b: float, close_ratio: float) -> bool:
    """Relative difference against the pair's mean is below ``close_ratio``."""
    average = (score_a + score_b) / 2
    return average > 0 and abs(score_a - score_b) / average < close_ratio


def fairness_comparator(close_ratio: float) -> Comparator:
    """Prefer the less recently matched seller when scores are close."""

    def compare(a: ScoredCandidate, b: ScoredCandidate) -> int:
        if not scores_are_close(a.final_score, b.final_score, close_ratio):
            return 0
        if a.last_matched_at is None and b.last_matched_at is None:
            return 0
        if a.last_matched_at is None:
            return -1
        if b.last_matched_at is None:
            return 1
        delta = as_utc(a.last_matched_at) - as_utc(b.last_matched_at)
        return _sign(delta.total_seconds())

    return compare


def by_score(a: ScoredCandidate, b: ScoredCandidate) -> int:
    return _sign(b.final_score - a.final_score)


def by_rating(a: ScoredCandidate, b: ScoredCandidate) -> int:
    return _sign(b.average_rating - a.average_rating)


def by_category_count(a: ScoredCandidate, b: ScoredCandidate) -> int:
    return _sign(len(a.categories) - len(b.categories))


def chain_comparators(*comparators: Comparator) -> Comparator:
    """Combine comparators; the first non-zero result decides."""

    def compare(a: ScoredCandidate, b: ScoredCandidate) -> int:
        for comparator in comparators:
            result = comparator(a, b)
            if result:
                return result
        return 0

    return compare


def rank(
    candidates: Iterable[ScoredCandidate],
    limit: int,
    *,
    close_ratio: float | None = None,
) -> list[ScoredCandidate]:
    """Order candidates by desirability and keep at most ``limit``."""
    if limit <= 0:
        return []
    ratio = settings.matching.close_score_ratio if close_ratio is None else close_ratio

    compare = chain_comparators(
        fairness_comparator(ratio),
        by_score,
        by_rating,
        by_category_count,
    )
    ordered = sorted(candidates, key=cmp_to_key(compare))

    for position, candidate in enumerate(ordered, start=1):
        last = candidate.last_matched_at.isoformat() if candidate.last_matched_at else "never"
        logger.debug(
            f"{position}. seller {candidate.seller_id} score={candidate.final_score:.2f} "
            f"rating={candidate.average_rating} ({candidate.rating_count}) last_matched={last}"
        )

    return ordered[:limit]
