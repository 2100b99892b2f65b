"""
Menu Catalog Repository

Categories and products: public browsing (search, filters, sorting)
and the admin CRUD used by the back-office.
"""

import logging
from typing import Optional

from sqlalchemy import func, or_, select
from sqlalchemy.exc import SQLAlchemyError

from gestro.models import Category, Product
from gestro.schemas import CategoryCreate, CategoryUpdate, ProductCreate, ProductUpdate
from gestro.services.context import ServiceContext

logger = logging.getLogger(__name__)

PRODUCT_SORTS = {
    "name": Product.name.asc(),
    "price_asc": Product.price.asc(),
    "price_desc": Product.price.desc(),
    "newest": Product.created_at.desc(),
}


class CatalogRepository:
    """Read and maintain the menu."""

    def __init__(self, ctx: ServiceContext):
        self.ctx = ctx
        self.db = ctx.session

    # =========================================================================
    # CATEGORIES
    # =========================================================================

    async def get_categories(self) -> list[Category]:
        try:
            result = await self.db.execute(
                select(Category).order_by(Category.order_position.asc(), Category.name.asc())
            )
            return list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Failed to load categories")
            return []

    async def get_category(self, category_id: str) -> Optional[Category]:
        try:
            return await self.db.get(Category, category_id)
        except SQLAlchemyError:
            logger.exception(f"Failed to load category {category_id}")
            return None

    async def create_category(self, data: CategoryCreate) -> Optional[Category]:
        category = Category(**data.model_dump())
        try:
            self.db.add(category)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create category {data.name}")
            return None
        logger.info(f"Category '{category.name}' created")
        return category

    async def update_category(self, category_id: str, data: CategoryUpdate) -> Optional[Category]:
        category = await self.get_category(category_id)
        if category is None:
            return None
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(category, field, value)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update category {category_id}")
            return None
        return category

    async def delete_category(self, category_id: str) -> bool:
        category = await self.get_category(category_id)
        if category is None:
            return False
        try:
            await self.db.delete(category)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to delete category {category_id}")
            return False
        return True

    # =========================================================================
    # PRODUCTS
    # =========================================================================

    def _product_filters(
        self,
        query,
        search: Optional[str],
        category_id: Optional[str],
        min_price: Optional[float],
        max_price: Optional[float],
        only_available: bool,
    ):
        if search:
            pattern = f"%{search.strip()}%"
            query = query.where(or_(Product.name.ilike(pattern), Product.description.ilike(pattern)))
        if category_id:
            query = query.where(Product.category_id == category_id)
        if min_price is not None:
            query = query.where(Product.price >= min_price)
        if max_price is not None:
            query = query.where(Product.price <= max_price)
        if only_available:
            query = query.where(Product.is_available.is_(True))
        return query

    async def search_products(
        self,
        search: Optional[str] = None,
        category_id: Optional[str] = None,
        min_price: Optional[float] = None,
        max_price: Optional[float] = None,
        only_available: bool = True,
        sort: str = "name",
        skip: int = 0,
        limit: Optional[int] = None,
    ) -> tuple[int, list[Product]]:
        """
        Search the menu.

        Args:
            search: Case-insensitive match against name or description
            category_id: Restrict to one category
            min_price / max_price: Inclusive price bounds
            only_available: Hide products marked unavailable
            sort: One of name, price_asc, price_desc, newest
            skip / limit: Pagination

        Returns:
            (total matching, page of products)
        """
        order_by = PRODUCT_SORTS.get(sort, PRODUCT_SORTS["name"])
        filters = (search, category_id, min_price, max_price, only_available)

        query = self._product_filters(select(Product), *filters).order_by(order_by)
        count_query = self._product_filters(select(func.count(Product.id)), *filters)
        if skip:
            query = query.offset(skip)
        if limit is not None:
            query = query.limit(limit)

        try:
            total = (await self.db.execute(count_query)).scalar() or 0
            result = await self.db.execute(query)
            return total, list(result.scalars().all())
        except SQLAlchemyError:
            logger.exception("Product search failed")
            return 0, []

    async def get_product(self, product_id: str) -> Optional[Product]:
        try:
            result = await self.db.execute(
                select(Product)
                .where(Product.id == product_id)
                .execution_options(populate_existing=True)
            )
            return result.scalar_one_or_none()
        except SQLAlchemyError:
            logger.exception(f"Failed to load product {product_id}")
            return None

    async def create_product(self, data: ProductCreate) -> Optional[Product]:
        product = Product(**data.model_dump())
        try:
            self.db.add(product)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to create product {data.name}")
            return None
        logger.info(f"Product '{product.name}' created at {product.price:.2f}")
        return await self.get_product(product.id)

    async def update_product(self, product_id: str, data: ProductUpdate) -> Optional[Product]:
        product = await self.get_product(product_id)
        if product is None:
            return None
        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(product, field, value)
        try:
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to update product {product_id}")
            return None
        return await self.get_product(product_id)

    async def set_product_availability(self, product_id: str, is_available: bool) -> Optional[Product]:
        return await self.update_product(product_id, ProductUpdate(is_available=is_available))

    async def delete_product(self, product_id: str) -> bool:
        product = await self.get_product(product_id)
        if product is None:
            return False
        try:
            await self.db.delete(product)
            await self.db.commit()
        except SQLAlchemyError:
            await self.db.rollback()
            logger.exception(f"Failed to delete product {product_id}")
            return False
        return True
