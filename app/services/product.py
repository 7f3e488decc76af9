import math
from typing import Any, Optional, Tuple
from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
import logging

from app.core.cache import CacheManager
from app.core.cache_config import CACHE_TTL, product_key, product_listing_key
from app.crud.product import product as crud_product, SORTABLE_COLUMNS, DEFAULT_SORT_COLUMN
from app.schemas.product import (
    Product as ProductSchema,
    ProductCreate,
    ProductUpdate,
    ProductListing,
    Pagination,
)
from app.services.cache_service import cache_service
from app.utils.validation import parse_positive_int, parse_price, to_int, clamp

logger = logging.getLogger(__name__)

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100
SORT_ORDERS = ("asc", "desc")


def parse_product_id(raw: Any) -> int:
    return parse_positive_int(raw, "Invalid product ID")


class ProductService:

    async def get_product(self, db: Session, cache: CacheManager, product_id: Any) -> ProductSchema:
        product, _ = await self.fetch_product(db, cache, product_id)
        return product

    async def fetch_product(self, db: Session, cache: CacheManager, product_id: Any) -> Tuple[ProductSchema, bool]:
        """Like get_product, also reporting whether the cache answered."""
        product_id = parse_product_id(product_id)
        cache_key = product_key(product_id)

        cached = await cache.get(cache_key)
        if isinstance(cached, dict):
            return ProductSchema.model_validate(cached), True

        product = crud_product.get(db, id=product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

        result = ProductSchema.model_validate(product)
        await cache.set(cache_key, result.model_dump(mode="json"), ttl=CACHE_TTL["product_details"])
        return result, False

    async def list_products(self, db: Session, cache: CacheManager, **params: Any) -> ProductListing:
        listing, _ = await self.fetch_listing(db, cache, **params)
        return listing

    async def fetch_listing(
        self,
        db: Session,
        cache: CacheManager,
        *,
        page: Any = None,
        limit: Any = None,
        sort_by: Optional[str] = None,
        sort_order: Optional[str] = None,
        category: Optional[str] = None,
    ) -> Tuple[ProductListing, bool]:
        page = clamp(to_int(page, DEFAULT_PAGE), 1)
        limit = clamp(to_int(limit, DEFAULT_LIMIT), 1, MAX_LIMIT)
        sort_by = sort_by if sort_by in SORTABLE_COLUMNS else DEFAULT_SORT_COLUMN
        sort_order = sort_order if sort_order in SORT_ORDERS else "asc"
        category = category or None
        offset = (page - 1) * limit

        cache_key = product_listing_key(page, limit, sort_by, sort_order, category)

        cached = await cache.get(cache_key)
        if isinstance(cached, dict) and "products" in cached:
            return self._listing(cached["products"], page, limit, cached["total_count"], cached["total_pages"]), True

        total_count = crud_product.count(db, category=category)
        total_pages = math.ceil(total_count / limit)
        # Past the last page; also keeps oversized offsets out of the query
        rows = [] if offset >= total_count else crud_product.get_page(
            db, skip=offset, limit=limit, sort_by=sort_by, sort_order=sort_order, category=category
        )
        products = [ProductSchema.model_validate(row).model_dump(mode="json") for row in rows]

        # Pagination flags depend on the requested page, so only the slice is cached
        await cache.set(
            cache_key,
            {"products": products, "total_count": total_count, "total_pages": total_pages},
            ttl=CACHE_TTL["product_list"],
        )
        return self._listing(products, page, limit, total_count, total_pages), False

    @staticmethod
    def _listing(products: list, page: int, limit: int, total_count: int, total_pages: int) -> ProductListing:
        return ProductListing(
            products=[ProductSchema.model_validate(p) for p in products],
            pagination=Pagination(
                page=page,
                limit=limit,
                total_count=total_count,
                total_pages=total_pages,
                has_next=page < total_pages,
                has_prev=page > 1,
            ),
        )

    async def create_product(self, db: Session, cache: CacheManager, product_in: ProductCreate) -> ProductSchema:
        if not product_in.name or not product_in.description or not product_in.price or not product_in.category:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Missing required fields")
        price = parse_price(product_in.price)

        try:
            product = crud_product.create(db, obj_in={
                "name": product_in.name,
                "description": product_in.description,
                "price": price,
                "category": product_in.category,
                "in_stock": True if product_in.in_stock is None else product_in.in_stock,
            })
        except SQLAlchemyError as e:
            logger.error(f"Product creation failed: {e}")
            raise

        # Any page, filter or sort combination may now be stale
        await cache_service.invalidate_product_cache(cache, "product_create")
        return ProductSchema.model_validate(product)

    async def update_product(
        self, db: Session, cache: CacheManager, product_id: Any, product_in: ProductUpdate
    ) -> ProductSchema:
        product_id = parse_product_id(product_id)
        if not product_in.has_changes():
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="No valid fields provided for update")

        update_data = {}
        if product_in.name is not None:
            update_data["name"] = product_in.name
        if product_in.description is not None:
            update_data["description"] = product_in.description
        if product_in.price is not None:
            update_data["price"] = parse_price(product_in.price)
        if product_in.category is not None:
            update_data["category"] = product_in.category
        if product_in.in_stock is not None:
            update_data["in_stock"] = bool(product_in.in_stock)

        product = crud_product.get(db, id=product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

        try:
            updated_product = crud_product.update(db, db_obj=product, obj_in=update_data)
        except SQLAlchemyError as e:
            logger.error(f"Product {product_id} update failed: {e}")
            raise

        await cache_service.invalidate_product_cache(cache, "product_update", product_id)
        return ProductSchema.model_validate(updated_product)

    async def delete_product(self, db: Session, cache: CacheManager, product_id: Any) -> ProductSchema:
        product_id = parse_product_id(product_id)

        product = crud_product.get(db, id=product_id)
        if not product:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")
        deleted_product = ProductSchema.model_validate(product)

        if not crud_product.delete(db, id=product_id):
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found")

        await cache_service.invalidate_product_cache(cache, "product_delete", product_id)
        return deleted_product


product_service = ProductService()
