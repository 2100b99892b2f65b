"""
Menu endpoints: public browsing and admin catalog management.
"""

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from gestro.api.deps import get_context, require_staff
from gestro.schemas import (
    CategoryCreate,
    CategoryResponse,
    CategoryUpdate,
    ProductCreate,
    ProductListResponse,
    ProductResponse,
    ProductUpdate,
)
from gestro.services.catalog import PRODUCT_SORTS, CatalogRepository
from gestro.services.context import ServiceContext

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Menu"])
admin_router = APIRouter(
    prefix="/api/admin",
    tags=["Admin - Menu"],
    dependencies=[Depends(require_staff)],
)


# =============================================================================
# PUBLIC
# =============================================================================

@router.get("/categories", response_model=List[CategoryResponse])
async def list_categories(ctx: ServiceContext = Depends(get_context)):
    return await CatalogRepository(ctx).get_categories()


@router.get("/products", response_model=ProductListResponse)
async def list_products(
    search: Optional[str] = Query(None, description="Match name or description"),
    category_id: Optional[str] = Query(None),
    min_price: Optional[float] = Query(None, ge=0),
    max_price: Optional[float] = Query(None, ge=0),
    sort: str = Query("name", description=f"One of: {', '.join(PRODUCT_SORTS)}"),
    skip: int = Query(0, ge=0),
    limit: int = Query(50, ge=1, le=200),
    ctx: ServiceContext = Depends(get_context),
) -> ProductListResponse:
    """
    Search the menu.

    - **search**: case-insensitive text match
    - **category_id**: restrict to one category
    - **min_price / max_price**: inclusive price bounds
    - **sort**: name, price_asc, price_desc or newest
    """
    if sort not in PRODUCT_SORTS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid sort. Options: {list(PRODUCT_SORTS)}",
        )

    total, products = await CatalogRepository(ctx).search_products(
        search=search,
        category_id=category_id,
        min_price=min_price,
        max_price=max_price,
        sort=sort,
        skip=skip,
        limit=limit,
    )
    return ProductListResponse(
        total=total,
        products=[ProductResponse.model_validate(p) for p in products],
    )


@router.get("/products/{product_id}", response_model=ProductResponse)
async def get_product(product_id: str, ctx: ServiceContext = Depends(get_context)):
    product = await CatalogRepository(ctx).get_product(product_id)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product


# =============================================================================
# ADMIN
# =============================================================================

@admin_router.post("/categories", response_model=CategoryResponse, status_code=status.HTTP_201_CREATED)
async def create_category(data: CategoryCreate, ctx: ServiceContext = Depends(get_context)):
    category = await CatalogRepository(ctx).create_category(data)
    if category is None:
        raise HTTPException(status_code=500, detail="Could not create category")
    return category


@admin_router.patch("/categories/{category_id}", response_model=CategoryResponse)
async def update_category(category_id: str, data: CategoryUpdate, ctx: ServiceContext = Depends(get_context)):
    category = await CatalogRepository(ctx).update_category(category_id, data)
    if category is None:
        raise HTTPException(status_code=404, detail=f"Category {category_id} not found")
    return category


@admin_router.delete("/categories/{category_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_category(category_id: str, ctx: ServiceContext = Depends(get_context)):
    if not await CatalogRepository(ctx).delete_category(category_id):
        raise HTTPException(status_code=404, detail=f"Category {category_id} not found")


@admin_router.get("/products", response_model=ProductListResponse)
async def list_all_products(
    search: Optional[str] = Query(None),
    skip: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=500),
    ctx: ServiceContext = Depends(get_context),
):
    """Every product, including those marked unavailable."""
    total, products = await CatalogRepository(ctx).search_products(
        search=search, only_available=False, skip=skip, limit=limit
    )
    return ProductListResponse(total=total, products=[ProductResponse.model_validate(p) for p in products])


@admin_router.post("/products", response_model=ProductResponse, status_code=status.HTTP_201_CREATED)
async def create_product(data: ProductCreate, ctx: ServiceContext = Depends(get_context)):
    product = await CatalogRepository(ctx).create_product(data)
    if product is None:
        raise HTTPException(status_code=500, detail="Could not create product")
    return product


@admin_router.patch("/products/{product_id}", response_model=ProductResponse)
async def update_product(product_id: str, data: ProductUpdate, ctx: ServiceContext = Depends(get_context)):
    product = await CatalogRepository(ctx).update_product(product_id, data)
    if product is None:
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
    return product


@admin_router.delete("/products/{product_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_product(product_id: str, ctx: ServiceContext = Depends(get_context)):
    if not await CatalogRepository(ctx).delete_product(product_id):
        raise HTTPException(status_code=404, detail=f"Product {product_id} not found")
