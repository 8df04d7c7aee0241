"""Core SQLAlchemy models (2.x style) for the merchant matching schema.

Categories are shared across sellers through the ``seller_categories``
association; deleting either side cascades to the association rows.
"""

from __future__ import annotations

from datetime import date, datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class Category(Base):
    """Product categories catalog."""
    __tablename__ = "categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # Display name, original casing preserved
    name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    # Trimmed/case-folded form used for uniqueness
    normalized_name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    seller_links: Mapped[list[SellerCategory]] = relationship(
        "SellerCategory",
        back_populates="category",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class Seller(Base):
    """Merchants that can be matched to buyer requests."""
    __tablename__ = "sellers"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    full_name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str | None] = mapped_column(String(255))
    phone_number: Mapped[str | None] = mapped_column(String(50))
    institution: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    average_rating: Mapped[float] = mapped_column(Float, default=0.0, nullable=False)
    total_ratings: Mapped[int] = mapped_column(Integer, default=0, nullable=False)
    last_matched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    billing_date: Mapped[date | None] = mapped_column(Date)
    is_billing_active: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=utcnow,
        onupdate=utcnow,
        nullable=False,
    )

    # Relationships
    category_links: Mapped[list[SellerCategory]] = relationship(
        "SellerCategory",
        back_populates="seller",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )
    categories: Mapped[list[Category]] = relationship(
        "Category",
        secondary="seller_categories",
        viewonly=True,
        order_by="Category.name",
    )

    __table_args__ = (
        Index("ix_sellers_institution_billing", "institution", "is_billing_active"),
    )


class SellerCategory(Base):
    """Seller ↔ category association."""
    __tablename__ = "seller_categories"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    seller_id: Mapped[int] = mapped_column(
        ForeignKey("sellers.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    category_id: Mapped[int] = mapped_column(
        ForeignKey("categories.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    # Relationships
    seller: Mapped[Seller] = relationship("Seller", back_populates="category_links")
    category: Mapped[Category] = relationship("Category", back_populates="seller_links")

    __table_args__ = (
        UniqueConstraint("seller_id", "category_id", name="uq_seller_categories_pair"),
    )


class MatchRequestLog(Base):
    """Audit trail of buyer requests and what they matched."""
    __tablename__ = "match_requests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    request_text: Mapped[str] = mapped_column(Text, nullable=False)
    institution: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    generated_categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    matched_categories: Mapped[list[str]] = mapped_column(JSON, nullable=False, default=list)
    matched_seller_ids: Mapped[list[int]] = mapped_column(JSON, nullable=False, default=list)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, nullable=False)

    __table_args__ = (
        Index("ix_match_requests_created_at", "created_at"),
    )
