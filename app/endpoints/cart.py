from typing import Optional
from fastapi import APIRouter, Depends, Request
from sqlalchemy.orm import Session

from app.core.cache import CacheManager
from app.schemas.response import APIResponse
from app.schemas.cart import (
    CartItemCreate,
    CartItemSnapshot,
    CartItems,
    CartTotal,
    CartItemQuantityUpdate,
    CartItemQuantityResult,
    CartMerge,
    CartMergeResult,
)
from app.services.cart import cart_service
from app.utils import deps

router = APIRouter()


@router.post("/items", response_model=APIResponse[CartItemSnapshot])
async def add_cart_item(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    item_in: CartItemCreate,
):
    cart_item = await cart_service.add_item(db, cache, item_in)
    return APIResponse(message="Product added to cart.", data=cart_item)


@router.get("/items", response_model=APIResponse[CartItems])
async def retrieve_cart_items(
    request: Request,
    db: Session = Depends(deps.get_db),
    cache: CacheManager = Depends(deps.get_cache),
    user_id: Optional[int] = None,
):
    cart = await cart_service.get_items(db, cache, user_id)
    request.state.cache_status = "HIT" if cart.source == "cache" else "MISS"
    return APIResponse(message=f"Cart items retrieved from {cart.source}.", data=cart)


@router.get("/total", response_model=APIResponse[CartTotal])
async def get_cart_total(
    db: Session = Depends(deps.get_db),
    cache: CacheManager = Depends(deps.get_cache),
    user_id: Optional[int] = None,
):
    total = await cart_service.get_total(db, cache, user_id)
    return APIResponse(message="Cart total calculated.", data=total)


@router.post("/merge", response_model=APIResponse[CartMergeResult])
async def merge_carts(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    merge_in: CartMerge,
):
    result = await cart_service.merge_guest_cart(db, cache, merge_in.user_id)
    message = "Carts merged successfully" if result.merged_items else "No items to merge"
    return APIResponse(message=message, data=result)


@router.patch("/items/{product_id}", response_model=APIResponse[CartItemQuantityResult])
async def update_cart_item(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_id: str,
    update_in: CartItemQuantityUpdate,
    user_id: Optional[int] = None,
):
    result = await cart_service.update_quantity(db, cache, product_id, update_in.action, user_id)
    message = "Item removed from cart." if result.action == "removed" else "Cart item quantity updated."
    return APIResponse(message=message, data=result)


@router.delete("/items/{product_id}", response_model=APIResponse[dict])
async def remove_cart_item(
    *,
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    product_id: str,
    user_id: Optional[int] = None,
):
    removed_id = await cart_service.remove_item(db, cache, product_id, user_id)
    return APIResponse(message="Cart item deleted.", data={"product_id": removed_id})


@router.delete("/", response_model=APIResponse[dict])
async def clear_cart(
    db: Session = Depends(deps.get_transactional_db),
    cache: CacheManager = Depends(deps.get_cache),
    user_id: Optional[int] = None,
):
    removed = await cart_service.clear_cart(db, cache, user_id)
    return APIResponse(message="Cart cleared successfully.", data={"removed_items": removed})
