"""Seller relevance scoring.

Combines category overlap, rating, rating volume and a recency-based fairness
penalty into one float. The value only orders sellers within one ranking
call; it has no absolute scale.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable

from market.config import MatchingSettings, settings
from market.pipelines.category_matching import contains_either_way, words_equal, words_overlap
from market.pipelines.normalization import normalize_category_name

logger = logging.getLogger(__name__)

EXACT_MATCH_POINTS = 100.0
CONTAINMENT_POINTS = 50.0
WORD_MATCH_POINTS = 20.0
WORD_CONTAINMENT_POINTS = 10.0


@dataclass(frozen=True)
class ScoringConfig:
    """Tunable heuristics for rating and fairness adjustments."""
    neutral_rating: float = 3.0
    rating_step: float = 0.1
    volume_bonus: float = 0.2
    volume_bonus_min_ratings: int = 5
    recency_window_hours: float = 24.0
    recency_floor: float = 0.5

    @classmethod
    def from_settings(cls, matching: MatchingSettings | None = None) -> ScoringConfig:
        matching = matching or settings.matching
        return cls(
            neutral_rating=matching.neutral_rating,
            rating_step=matching.rating_step,
            volume_bonus=matching.volume_bonus,
            volume_bonus_min_ratings=matching.volume_bonus_min_ratings,
            recency_window_hours=matching.recency_window_hours,
            recency_floor=matching.recency_floor,
        )


@dataclass
class ScoreBreakdown:
    """Every intermediate value of one score computation, for audit."""
    raw_overlap_score: float
    normalized_score: float
    rating_factor: float
    volume_bonus: float
    recency_factor: float
    final_score: float


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def overlap_score(seller_categories: Iterable[str], target_categories: Iterable[str]) -> float:
    """Raw category overlap between a seller and the inferred request categories.

    +100 per target present verbatim (case-insensitive) in the seller's set.
    For every other (target, seller category) pair: +50 for containment,
    otherwise per word pair +20 for equal words or +10 for word containment.
    """
    seller = [normalize_category_name(c) for c in seller_categories]
    targets = [normalize_category_name(c) for c in target_categories]
    seller = [c for c in seller if c]
    targets = [t for t in targets if t]
    if not seller or not targets:
        return 0.0

    score = 0.0
    seller_set = set(seller)
    for target in targets:
        if target in seller_set:
            score += EXACT_MATCH_POINTS

    for target in targets:
        for category in seller:
            if target == category:
                continue
            if contains_either_way(target, category):
                score += CONTAINMENT_POINTS
                continue
            for t_word in target.split():
                for c_word in category.split():
                    if words_equal(t_word, c_word):
                        score += WORD_MATCH_POINTS
                    elif words_overlap(t_word, c_word):
                        score += WORD_CONTAINMENT_POINTS

    return score


def recency_factor(
    last_matched_at: datetime | None,
    now: datetime,
    config: ScoringConfig | None = None,
) -> float:
    """Multiplier in [floor, 1.0] discounting sellers matched within the window.

    Linear from ``floor`` (just matched) to 1.0 (matched a full window ago).
    Timestamps in the future are treated as just matched.
    """
    config = config or ScoringConfig()
    if last_matched_at is None:
        return 1.0

    hours = (as_utc(now) - as_utc(last_matched_at)).total_seconds() / 3600
    hours = max(hours, 0.0)
    if hours >= config.recency_window_hours:
        return 1.0
    return config.recency_floor + (hours / config.recency_window_hours) * (1.0 - config.recency_floor)


def score_breakdown(
    seller_categories: list[str],
    target_categories: list[str],
    average_rating: float,
    rating_count: int,
    last_matched_at: datetime | None,
    now: datetime,
    config: ScoringConfig | None = None,
) -> ScoreBreakdown:
    """Compute a seller's score and keep every intermediate value."""
    config = config or ScoringConfig()

    raw = overlap_score(seller_categories, target_categories)
    normalized = raw / max(1, len(seller_categories))

    rating_factor = 1.0
    bonus = 0.0
    adjusted = normalized
    if rating_count > 0:
        rating_factor = 1 + (average_rating - config.neutral_rating) * config.rating_step
        adjusted *= rating_factor
        if rating_count >= config.volume_bonus_min_ratings:
            bonus = config.volume_bonus
            adjusted += bonus

    recency = recency_factor(last_matched_at, now, config)
    final = adjusted * recency

    return ScoreBreakdown(
        raw_overlap_score=raw,
        normalized_score=normalized,
        rating_factor=rating_factor,
        volume_bonus=bonus,
        recency_factor=recency,
        final_score=final,
    )


def score(
    seller_categories: list[str],
    target_categories: list[str],
    average_rating: float,
    rating_count: int,
    last_matched_at: datetime | None,
    now: datetime,
    config: ScoringConfig | None = None,
) -> float:
    """Single relevance score for one seller against one request."""
    return score_breakdown(
        seller_categories,
        target_categories,
        average_rating,
        rating_count,
        last_matched_at,
        now,
        config,
    ).final_score
