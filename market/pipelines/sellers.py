"""Seller store access: category-joined lookups and last-matched bookkeeping."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from market import models

logger = logging.getLogger(__name__)


class SellerStoreError(Exception):
    """Raised when the seller store cannot be read."""
    pass


@dataclass
class SellerProfile:
    """Detached view of a seller used by eligibility, scoring and ranking."""
    seller_id: int
    institution: str
    categories: list[str] = field(default_factory=list)
    average_rating: float = 0.0
    rating_count: int = 0
    last_matched_at: datetime | None = None
    billing_active: bool = False
    billing_due_date: date | None = None
    full_name: str = ""

    @classmethod
    def from_model(cls, seller: models.Seller) -> SellerProfile:
        return cls(
            seller_id=seller.id,
            institution=seller.institution,
            categories=[c.name for c in seller.categories],
            average_rating=seller.average_rating or 0.0,
            rating_count=seller.total_ratings or 0,
            last_matched_at=seller.last_matched_at,
            billing_active=bool(seller.is_billing_active),
            billing_due_date=seller.billing_date,
            full_name=seller.full_name,
        )


async def load_sellers_for_categories(
    session: AsyncSession,
    category_names: list[str],
    institution: str | None = None,
) -> list[SellerProfile]:
    """Load sellers holding any of the given catalog categories.

    Args:
        session: Database session
        category_names: Catalog display names
        institution: Restrict to one institution if given

    Returns:
        SellerProfile list, each carrying the seller's full category set

    Raises:
        SellerStoreError: If the query fails
    """
    if not category_names:
        return []

    matching_ids = (
        select(models.SellerCategory.seller_id)
        .join(models.Category, models.Category.id == models.SellerCategory.category_id)
        .where(models.Category.name.in_(category_names))
    )
    query = (
        select(models.Seller)
        .where(models.Seller.id.in_(matching_ids))
        .options(selectinload(models.Seller.categories))
        .order_by(models.Seller.id)
        .execution_options(populate_existing=True)
    )
    if institution is not None:
        query = query.where(models.Seller.institution == institution)

    try:
        result = await session.execute(query)
        sellers = result.scalars().all()
    except SQLAlchemyError as e:
        logger.error(f"Seller lookup failed: {e}", exc_info=True)
        raise SellerStoreError(f"Failed to load sellers: {e}") from e

    profiles = [SellerProfile.from_model(s) for s in sellers]
    logger.info(f"Loaded {len(profiles)} sellers for {len(category_names)} categories")
    return profiles


async def touch_last_matched(
    session: AsyncSession,
    seller_ids: list[int],
    now: datetime,
) -> int:
    """Stamp ``last_matched_at`` on each returned seller.

    One update per seller, last writer wins. Failures are logged and do not
    invalidate the match that was already computed.

    Returns:
        Number of sellers updated
    """
    updated = 0
    for seller_id in seller_ids:
        try:
            # SAVEPOINT per seller so one failure leaves the transaction usable
            async with session.begin_nested():
                await session.execute(
                    update(models.Seller)
                    .where(models.Seller.id == seller_id)
                    .values(last_matched_at=now)
                )
            updated += 1
        except SQLAlchemyError as e:
            logger.warning(f"Could not update last_matched_at for seller {seller_id}: {e}")

    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.warning(f"Could not commit last_matched_at updates: {e}")
        return 0
    return updated
