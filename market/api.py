"""FastAPI app with health, matching and catalog endpoints.

Thin HTTP surface over the pipelines; store failures surface as JSON errors,
everything else degrades to an empty match.
"""
from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from llm.client import TextGenerator, get_text_generator
from . import models
from .config import settings
from .db import get_session
from .logging_config import setup_logging
from .pipelines.catalog import (
    CatalogStoreError,
    get_or_generate_seller_categories,
    get_seller_categories,
    list_categories,
    remove_seller_categories,
    store_seller_categories,
    upsert_categories,
)
from .pipelines.matching import MatchingError, find_sellers_for_request, log_match_request

logger = logging.getLogger(__name__)


# Pydantic request/response models
class HealthResponse(BaseModel):
    """Health check response."""
    status: str
    version: str
    generation_enabled: bool


class ErrorResponse(BaseModel):
    """Error response."""
    error: str
    detail: str | None = None


class MatchRequest(BaseModel):
    """Buyer request to match against sellers."""
    free_text: str = Field(min_length=1, max_length=2000)
    institution: str = Field(min_length=1, max_length=255)
    limit: int | None = Field(default=None, ge=1, le=settings.matching.max_limit)


class SellerMatchDTO(BaseModel):
    """Single ranked seller."""
    seller_id: int
    rank: int
    score: float
    categories_matched: list[str]


class MatchResponse(BaseModel):
    """Match response."""
    status: str
    institution: str
    generated_categories: list[str]
    matched_categories: list[str]
    matches: list[SellerMatchDTO]
    computed_at: str
    message: str


class CategoryDTO(BaseModel):
    id: int
    name: str


class CategoryNamesRequest(BaseModel):
    """List of category labels."""
    names: list[str] = Field(min_length=1, max_length=50)


class CategoryNamesResponse(BaseModel):
    categories: list[str]


class SellerCategoriesRequest(BaseModel):
    """Explicit labels, or generate from the seller's stored description when omitted."""
    names: list[str] | None = Field(default=None, max_length=50)


class SellerCategoriesResponse(BaseModel):
    seller_id: int
    categories: list[str]


class RemovedResponse(BaseModel):
    seller_id: int
    removed: int


def get_generator() -> TextGenerator | None:
    """Text-generation dependency; overridden in tests."""
    return get_text_generator()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup/shutdown logic."""
    # Startup
    setup_logging()
    logger.info("Application starting up")

    yield

    # Shutdown
    logger.info("Application shutting down")


app = FastAPI(
    title="Merchant Matching Service",
    version=settings.version,
    description="Free-text buyer requests matched to eligible sellers",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["http://localhost:3000", "http://localhost:5173"],  # Frontend URLs
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Exception handlers
@app.exception_handler(MatchingError)
async def matching_error_handler(request, exc: MatchingError):
    """Handle matching pipeline errors."""
    logger.error(f"Matching error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="matching_error",
            detail=str(exc),
        ).model_dump(),
    )


@app.exception_handler(CatalogStoreError)
async def catalog_error_handler(request, exc: CatalogStoreError):
    """Handle catalog store errors."""
    logger.error(f"Catalog store error: {exc}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="catalog_error",
            detail=str(exc),
        ).model_dump(),
    )


async def _get_seller_or_404(session: AsyncSession, seller_id: int) -> models.Seller:
    seller = await session.get(models.Seller, seller_id)
    if seller is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Seller {seller_id} not found",
        )
    return seller


@app.get("/health", response_model=HealthResponse)
async def health(generator: TextGenerator | None = Depends(get_generator)) -> HealthResponse:
    """Health check endpoint."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        generation_enabled=generator is not None,
    )


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "app": settings.app_name,
        "version": settings.version,
        "endpoints": {
            "health": "/health",
            "match": "/match",
            "categories": "/categories",
            "seller_categories": "/sellers/{seller_id}/categories",
            "docs": "/docs",
        },
    }


@app.post(
    "/match",
    response_model=MatchResponse,
    status_code=status.HTTP_200_OK,
)
async def match_request(
    request: MatchRequest,
    session: AsyncSession = Depends(get_session),
    generator: TextGenerator | None = Depends(get_generator),
) -> MatchResponse:
    """Match a free-text request to sellers from the same institution.

    This endpoint:
    1. Infers categories from the request
    2. Reconciles them with the catalog
    3. Filters, scores and ranks eligible sellers
    4. Stamps last-matched time on returned sellers
    5. Logs the request for audit
    """
    outcome = await find_sellers_for_request(
        session,
        request.free_text,
        request.institution,
        request.limit,
        generator=generator,
    )
    await log_match_request(session, outcome)

    if outcome.matches:
        message = f"Found {len(outcome.matches)} matching sellers"
    else:
        message = "No matching sellers found"

    return MatchResponse(
        status="success",
        institution=outcome.institution,
        generated_categories=outcome.generated_categories,
        matched_categories=outcome.matched_categories,
        matches=[
            SellerMatchDTO(
                seller_id=m.seller_id,
                rank=m.rank,
                score=m.score,
                categories_matched=m.categories_matched,
            )
            for m in outcome.matches
        ],
        computed_at=outcome.computed_at.isoformat(),
        message=message,
    )


@app.get("/categories", response_model=list[CategoryDTO])
async def get_categories(session: AsyncSession = Depends(get_session)) -> list[CategoryDTO]:
    """Full catalog, alphabetical."""
    return [CategoryDTO(id=c.id, name=c.name) for c in await list_categories(session)]


@app.post(
    "/categories",
    response_model=CategoryNamesResponse,
    status_code=status.HTTP_201_CREATED,
)
async def add_categories(
    request: CategoryNamesRequest,
    session: AsyncSession = Depends(get_session),
) -> CategoryNamesResponse:
    """Add categories to the catalog; existing names are returned unchanged."""
    names = await upsert_categories(session, request.names)
    await session.commit()
    return CategoryNamesResponse(categories=names)


@app.get("/sellers/{seller_id}/categories", response_model=SellerCategoriesResponse)
async def read_seller_categories(
    seller_id: int,
    session: AsyncSession = Depends(get_session),
) -> SellerCategoriesResponse:
    await _get_seller_or_404(session, seller_id)
    return SellerCategoriesResponse(
        seller_id=seller_id,
        categories=await get_seller_categories(session, seller_id),
    )


@app.post("/sellers/{seller_id}/categories", response_model=SellerCategoriesResponse)
async def assign_seller_categories(
    seller_id: int,
    request: SellerCategoriesRequest,
    session: AsyncSession = Depends(get_session),
    generator: TextGenerator | None = Depends(get_generator),
) -> SellerCategoriesResponse:
    """Link categories to a seller.

    With explicit ``names`` they are upserted and linked. Without, stored
    categories are returned, or generated from the seller's description.
    """
    seller = await _get_seller_or_404(session, seller_id)
    if request.names:
        categories = await store_seller_categories(session, seller_id, request.names)
    else:
        categories = await get_or_generate_seller_categories(session, seller, generator)
    return SellerCategoriesResponse(seller_id=seller_id, categories=categories)


@app.delete("/sellers/{seller_id}/categories", response_model=RemovedResponse)
async def delete_seller_categories(
    seller_id: int,
    request: CategoryNamesRequest,
    session: AsyncSession = Depends(get_session),
) -> RemovedResponse:
    await _get_seller_or_404(session, seller_id)
    removed = await remove_seller_categories(session, seller_id, request.names)
    return RemovedResponse(seller_id=seller_id, removed=removed)
