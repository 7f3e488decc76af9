from typing import Optional
from fastapi import APIRouter, Depends, Request, status
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.schemas.response import APIResponse
from app.schemas.product import Product, ProductCreate, ProductUpdate, ProductListing
from app.services.product import product_service
from app.utils import deps

router = APIRouter()


@router.post("/create", response_model=APIResponse[Product], status_code=status.HTTP_201_CREATED)
async def create_product(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_in: ProductCreate,
):
    new_product = await product_service.create_product(db, cache, product_in)
    return APIResponse(message="Product created", data=new_product)


@router.get("/", response_model=APIResponse[ProductListing])
async def get_products(
    request: Request,
    db: Session = Depends(deps.get_db),
    cache: CacheManager = Depends(deps.get_cache),
    page: Optional[str] = None,
    limit: Optional[str] = None,
    sort_by: Optional[str] = None,
    sort_order: Optional[str] = None,
    category: Optional[str] = None,
):
    listing, hit = await product_service.fetch_listing(
        db, cache, page=page, limit=limit, sort_by=sort_by, sort_order=sort_order, category=category
    )
    request.state.cache_status = "HIT" if hit else "MISS"
    return APIResponse(message="Products retrieved successfully", data=listing)


@router.get("/{product_id}", response_model=APIResponse[Product])
async def read_product(
    *,
    request: Request,
    db: Session = Depends(deps.get_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_id: str,
):
    product, hit = await product_service.fetch_product(db, cache, product_id)
    request.state.cache_status = "HIT" if hit else "MISS"
    return APIResponse(message="Product retrieved successfully", data=product)


@router.patch("/{product_id}", response_model=APIResponse[Product])
async def update_product(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_id: str,
    product_in: ProductUpdate,
):
    updated_product = await product_service.update_product(db, cache, product_id, product_in)
    return APIResponse(message="Product updated successfully", data=updated_product)


@router.delete("/{product_id}", response_model=APIResponse[Product])
async def delete_product(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_id: str,
):
    deleted_product = await product_service.delete_product(db, cache, product_id)
    return APIResponse(message="Product deleted successfully", data=deleted_product)
