"""Category catalog store and seller ↔ category associations.

Implementations here:
- Keep one catalog row per canonical name (see ``normalization``).
- Reuse the existing display casing when a variant is written again.
- Are safe to call from both the HTTP layer and batch scripts.
"""

from __future__ import annotations

import logging

from sqlalchemy import delete, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from llm.categories import CategoryGenerationResult, generate_seller_categories
from llm.client import TextGenerator
from market import models
from market.pipelines.normalization import dedupe_categories

logger = logging.getLogger(__name__)


class CatalogStoreError(Exception):
    """Raised when the catalog store fails."""
    pass


async def fetch_catalog_names(session: AsyncSession) -> list[str]:
    """All category display names, alphabetical."""
    try:
        result = await session.execute(select(models.Category.name).order_by(models.Category.name))
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to read catalog: {e}", exc_info=True)
        raise CatalogStoreError(f"Failed to read catalog: {e}") from e


async def list_categories(session: AsyncSession) -> list[models.Category]:
    try:
        result = await session.execute(select(models.Category).order_by(models.Category.name))
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to list categories: {e}", exc_info=True)
        raise CatalogStoreError(f"Failed to list categories: {e}") from e


async def _insert_category(session: AsyncSession, label: str, key: str) -> models.Category:
    try:
        async with session.begin_nested():
            category = models.Category(name=label, normalized_name=key)
            session.add(category)
        logger.info(f"Added category to catalog: {label!r}")
        return category
    except IntegrityError:
        # Another writer inserted the same canonical name first
        result = await session.execute(
            select(models.Category).where(models.Category.normalized_name == key)
        )
        return result.scalar_one()


async def _link_category(session: AsyncSession, seller_id: int, category_id: int) -> bool:
    """Add one seller/category association; False if it already existed."""
    try:
        async with session.begin_nested():
            session.add(models.SellerCategory(seller_id=seller_id, category_id=category_id))
        return True
    except IntegrityError:
        # Linked concurrently by another writer
        logger.debug(f"Seller {seller_id} already linked to category {category_id}")
        return False


async def _upsert(session: AsyncSession, names: list[str]) -> list[models.Category]:
    labels = dedupe_categories(names)
    if not labels:
        return []

    keys = [label.casefold() for label in labels]
    result = await session.execute(
        select(models.Category).where(models.Category.normalized_name.in_(keys))
    )
    existing = {c.normalized_name: c for c in result.scalars().all()}

    categories: list[models.Category] = []
    for label, key in zip(labels, keys):
        category = existing.get(key)
        if category is None:
            category = await _insert_category(session, label, key)
            existing[key] = category
        categories.append(category)
    return categories


async def upsert_categories(session: AsyncSession, names: list[str]) -> list[str]:
    """Ensure every name exists in the catalog, ignoring conflicts.

    Flushes but does not commit.

    Args:
        session: Database session
        names: Labels in priority order; blanks and case variants collapse

    Returns:
        Catalog display names in input order (existing casing wins)
    """
    try:
        categories = await _upsert(session, names)
        await session.flush()
    except SQLAlchemyError as e:
        logger.error(f"Category upsert failed: {e}", exc_info=True)
        raise CatalogStoreError(f"Category upsert failed: {e}") from e
    return [c.name for c in categories]


async def get_seller_categories(session: AsyncSession, seller_id: int) -> list[str]:
    """Category names currently associated with a seller."""
    query = (
        select(models.Category.name)
        .join(models.SellerCategory, models.SellerCategory.category_id == models.Category.id)
        .where(models.SellerCategory.seller_id == seller_id)
        .order_by(models.Category.name)
    )
    try:
        result = await session.execute(query)
        return list(result.scalars().all())
    except SQLAlchemyError as e:
        logger.error(f"Failed to read categories for seller {seller_id}: {e}", exc_info=True)
        raise CatalogStoreError(f"Failed to read seller categories: {e}") from e


async def store_seller_categories(
    session: AsyncSession,
    seller_id: int,
    names: list[str],
) -> list[str]:
    """Associate categories with a seller, creating catalog rows as needed.

    Existing associations are left untouched.

    Returns:
        Catalog display names that are now associated
    """
    if not names:
        return []

    try:
        categories = await _upsert(session, names)
        result = await session.execute(
            select(models.SellerCategory.category_id).where(
                models.SellerCategory.seller_id == seller_id
            )
        )
        linked = set(result.scalars().all())

        for category in categories:
            if category.id in linked:
                continue
            await _link_category(session, seller_id, category.id)
            linked.add(category.id)

        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to store categories for seller {seller_id}: {e}", exc_info=True)
        raise CatalogStoreError(f"Failed to store seller categories: {e}") from e

    stored = [c.name for c in categories]
    logger.info(f"Seller {seller_id} now linked to {stored}")
    return stored


async def remove_seller_categories(
    session: AsyncSession,
    seller_id: int,
    names: list[str],
) -> int:
    """Remove associations by category name. Catalog rows are kept.

    Returns:
        Number of associations removed
    """
    keys = [label.casefold() for label in dedupe_categories(names)]
    if not keys:
        return 0

    category_ids = select(models.Category.id).where(models.Category.normalized_name.in_(keys))
    statement = (
        delete(models.SellerCategory)
        .where(
            models.SellerCategory.seller_id == seller_id,
            models.SellerCategory.category_id.in_(category_ids),
        )
        .execution_options(synchronize_session=False)
    )
    try:
        result = await session.execute(statement)
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        logger.error(f"Failed to remove categories for seller {seller_id}: {e}", exc_info=True)
        raise CatalogStoreError(f"Failed to remove seller categories: {e}") from e
    return result.rowcount or 0


async def process_seller_categories(
    session: AsyncSession,
    description: str,
    generator: TextGenerator | None = None,
) -> CategoryGenerationResult:
    """Generate categories from a seller description and add them to the catalog.

    Labels that already exist (case-insensitively) come back in their catalog
    spelling. Associations are not written here.
    """
    generated = await generate_seller_categories(description, generator)
    if not generated.ok:
        return generated

    names = await upsert_categories(session, generated.categories)
    try:
        await session.commit()
    except SQLAlchemyError as e:
        await session.rollback()
        raise CatalogStoreError(f"Failed to commit generated categories: {e}") from e

    return CategoryGenerationResult(categories=names, ok=True)


async def get_or_generate_seller_categories(
    session: AsyncSession,
    seller: models.Seller,
    generator: TextGenerator | None = None,
) -> list[str]:
    """Stored categories for a seller, generating and storing them if there are none."""
    stored = await get_seller_categories(session, seller.id)
    if stored:
        return stored

    if not seller.description:
        return []

    processed = await process_seller_categories(session, seller.description, generator)
    if not processed.ok or not processed.categories:
        return []
    return await store_seller_categories(session, seller.id, processed.categories)
