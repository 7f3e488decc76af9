from datetime import datetime, timedelta
from decimal import Decimal
from typing import Any, Dict, List, Optional, Tuple
from fastapi import HTTPException, status
from pydantic import ValidationError
from sqlalchemy.orm import Session
import logging

from app.core.cache import CacheManager
from app.core.cache_config import CACHE_TTL, CART_ITEM_LIFETIME_DAYS, cart_key, cart_owner
from app.crud.cart_item import cart_item as crud_cart_item
from app.models.cart_item import CartItem
from app.schemas.cart import (
    CartItemCreate,
    CartItemSnapshot,
    CartItems,
    CartTotal,
    CartItemQuantityResult,
    CartMergeResult,
)
from app.utils.validation import MAX_PRICE, parse_positive_int, parse_price, to_money

logger = logging.getLogger(__name__)

CART_ACTIONS = ("increment", "decrement")


def _row_snapshot(row: CartItem) -> Dict[str, Any]:
    return CartItemSnapshot(
        product_id=row.product_id,
        quantity=row.quantity,
        unit_price=row.unit_price,
        price=row.price,
        user_id=row.user_id,
        expires_at=row.expires_at,
        added_at=row.created_at,
    ).model_dump(mode="json")


def _unit_price(item: Dict[str, Any]) -> Decimal:
    if item.get("unit_price") is not None:
        return to_money(item["unit_price"])
    quantity = int(item["quantity"])
    price = Decimal(str(item["price"]))
    return to_money(price / quantity) if quantity > 0 else to_money(price)


def _totals(items: List[Dict[str, Any]]) -> Tuple[Decimal, int]:
    total = sum((Decimal(str(item["price"])) for item in items), Decimal("0"))
    item_count = sum(int(item["quantity"]) for item in items)
    return to_money(total), item_count


def _line_total(unit_price: Decimal, quantity: int) -> Decimal:
    line_total = to_money(unit_price * quantity)
    if line_total >= MAX_PRICE:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Cart line total is too large.")
    return line_total


class CartService:

    async def _cached_items(self, cache: CacheManager, key: str) -> Optional[List[Dict[str, Any]]]:
        """Decoded hash entries, or None when the hash is empty or unreadable."""
        entries = await cache.hgetall(key)
        if not entries:
            return None
        try:
            items = [CartItemSnapshot.model_validate(value).model_dump(mode="json") for value in entries.values()]
        except ValidationError as e:
            logger.error(f"Discarding unreadable cart hash {key}: {e}")
            return None
        return sorted(items, key=lambda item: item["product_id"])

    async def _touch(self, cache: CacheManager, key: str) -> None:
        await cache.expire(key, CACHE_TTL["cart"])

    async def _repopulate(self, db: Session, cache: CacheManager, user_id: Optional[int]) -> List[Dict[str, Any]]:
        """Reload the owner's whole hash from the store and return its items."""
        key = cart_key(user_id)
        items = [_row_snapshot(row) for row in crud_cart_item.get_by_owner(db, user_id=user_id)]
        for item in items:
            await cache.hset(key, str(item["product_id"]), item)
        if items:
            await self._touch(cache, key)
        return items

    async def add_item(self, db: Session, cache: CacheManager, item_in: CartItemCreate) -> CartItemSnapshot:
        if not item_in.product_id or not item_in.price:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Product ID and price are required.")
        product_id = parse_positive_int(item_in.product_id, "Invalid product ID")
        unit_price = parse_price(item_in.price)
        quantity = item_in.quantity or 1
        if quantity < 1:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Quantity must be at least 1.")
        now = datetime.utcnow()
        expires_at = item_in.expires_at or now + timedelta(days=CART_ITEM_LIFETIME_DAYS)
        line_total = _line_total(unit_price, quantity)

        snapshot = CartItemSnapshot(
            product_id=product_id,
            quantity=quantity,
            unit_price=unit_price,
            price=line_total,
            user_id=item_in.user_id,
            expires_at=expires_at,
            added_at=now,
        )

        key = cart_key(item_in.user_id)
        await cache.hset(key, str(product_id), snapshot.model_dump(mode="json"))
        await self._touch(cache, key)

        crud_cart_item.create(db, obj_in={
            "product_id": product_id,
            "quantity": quantity,
            "unit_price": unit_price,
            "price": line_total,
            "user_id": item_in.user_id,
            "expires_at": expires_at,
        })
        logger.info(f"Added product {product_id} x{quantity} to cart {cart_owner(item_in.user_id)}")
        return snapshot

    async def get_items(self, db: Session, cache: CacheManager, user_id: Optional[int]) -> CartItems:
        key = cart_key(user_id)

        items = await self._cached_items(cache, key)
        if items is not None:
            total, item_count = _totals(items)
            return CartItems(items=items, total=total, item_count=item_count, source="cache")

        items = await self._repopulate(db, cache, user_id)
        total, item_count = _totals(items)
        return CartItems(items=items, total=total, item_count=item_count, source="database")

    async def get_total(self, db: Session, cache: CacheManager, user_id: Optional[int]) -> CartTotal:
        items = await self._cached_items(cache, cart_key(user_id))
        if items is None:
            items = [_row_snapshot(row) for row in crud_cart_item.get_by_owner(db, user_id=user_id)]

        total, item_count = _totals(items)
        return CartTotal(total=total, item_count=item_count)

    async def update_quantity(
        self,
        db: Session,
        cache: CacheManager,
        product_id: Any,
        action: Optional[str],
        user_id: Optional[int],
    ) -> CartItemQuantityResult:
        if action not in CART_ACTIONS:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="Valid action (increment/decrement) is required.",
            )
        product_id = parse_positive_int(product_id, "Invalid product ID")
        key = cart_key(user_id)
        field = str(product_id)

        item = await cache.hget(key, field)
        if not isinstance(item, dict):
            # Expired or unreadable hash: rebuild it from the store before writing to it
            persisted = await self._repopulate(db, cache, user_id)
            item = next((i for i in persisted if i["product_id"] == product_id), None)
            if item is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Product not found in cart.")

        # Read-modify-write without compare-and-swap; concurrent calls can lose an update
        unit_price = _unit_price(item)
        new_quantity = int(item["quantity"]) + (1 if action == "increment" else -1)

        if new_quantity <= 0:
            await cache.hdel(key, field)
            crud_cart_item.delete_line(db, user_id=user_id, product_id=product_id)
            logger.info(f"Removed product {product_id} from cart {cart_owner(user_id)}")
            return CartItemQuantityResult(product_id=product_id, action="removed")

        new_total = _line_total(unit_price, new_quantity)
        await cache.hset(key, field, {
            **item,
            "quantity": new_quantity,
            "unit_price": str(unit_price),
            "price": str(new_total),
        })
        await self._touch(cache, key)
        crud_cart_item.update_line(db, user_id=user_id, product_id=product_id, quantity=new_quantity, price=new_total)

        return CartItemQuantityResult(
            product_id=product_id,
            action="updated",
            new_quantity=new_quantity,
            new_total_price=new_total,
        )

    async def remove_item(self, db: Session, cache: CacheManager, product_id: Any, user_id: Optional[int]) -> int:
        product_id = parse_positive_int(product_id, "Invalid product ID")

        await cache.hdel(cart_key(user_id), str(product_id))
        crud_cart_item.delete_line(db, user_id=user_id, product_id=product_id)
        return product_id

    async def clear_cart(self, db: Session, cache: CacheManager, user_id: Optional[int]) -> int:
        await cache.delete(cart_key(user_id))
        removed = crud_cart_item.delete_by_owner(db, user_id=user_id)
        logger.info(f"Cleared {removed} persisted items from cart {cart_owner(user_id)}")
        return removed

    async def merge_guest_cart(self, db: Session, cache: CacheManager, user_id: Optional[int]) -> CartMergeResult:
        """Absorb the guest cart into user_id's cart.

        Overlapping products get summed quantities priced at the user's unit
        price; new products are re-owned. The guest hash is gone afterwards.
        """
        if not user_id:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User ID is required.")

        guest_key = cart_key(None)
        user_key = cart_key(user_id)

        guest_items = await cache.hgetall(guest_key)
        if not guest_items:
            return CartMergeResult(merged_items=0, user_id=user_id)

        user_items = await cache.hgetall(user_key)
        if not user_items:
            user_items = {str(i["product_id"]): i for i in await self._repopulate(db, cache, user_id)}

        for field, guest_item in guest_items.items():
            product_id = int(field)
            user_item = user_items.get(field)

            if isinstance(user_item, dict):
                new_quantity = int(user_item["quantity"]) + int(guest_item["quantity"])
                unit_price = _unit_price(user_item)
                new_total = to_money(unit_price * new_quantity)

                await cache.hset(user_key, field, {
                    **user_item,
                    "quantity": new_quantity,
                    "unit_price": str(unit_price),
                    "price": str(new_total),
                })
                crud_cart_item.update_line(
                    db, user_id=user_id, product_id=product_id, quantity=new_quantity, price=new_total
                )
                # The guest line has been folded into the user's line
                crud_cart_item.delete_line(db, user_id=None, product_id=product_id)
            else:
                await cache.hset(user_key, field, {**guest_item, "user_id": user_id})
                crud_cart_item.claim_guest_line(db, product_id=product_id, user_id=user_id)

        await cache.delete(guest_key)
        await self._touch(cache, user_key)

        logger.info(f"Merged {len(guest_items)} guest cart items into cart {user_id}")
        return CartMergeResult(merged_items=len(guest_items), user_id=user_id)


cart_service = CartService()
