"""Cache configuration, TTL settings and key construction"""
from typing import Optional, Union

# Cache TTL (Time To Live) configurations in seconds
CACHE_TTL = {
    "product_details": 3600,          # 1 hour
    "product_list": 300,              # 5 minutes
    "cart": 30 * 24 * 60 * 60,        # 30 days, refreshed on every write
}

CART_ITEM_LIFETIME_DAYS = 30

GUEST_OWNER = "guest"

# Cache key patterns
CACHE_KEYS = {
    "product_details": "product:{}",
    "product_list": "products:page:{}:limit:{}:sortBy:{}:sortOrder:{}",
    "cart": "cart:{}",
}

# Cache invalidation patterns - what to clear when data changes
INVALIDATION_PATTERNS = {
    "product_create": [
        "products:*",
    ],
    "product_update": [
        "products:*",
        "product:{}",
    ],
    "product_delete": [
        "products:*",
        "product:{}",
    ],
}

PRODUCT_LISTING_PATTERN = "products:*"


def product_key(product_id: int) -> str:
    return CACHE_KEYS["product_details"].format(product_id)


def product_listing_key(
    page: int,
    limit: int,
    sort_by: str,
    sort_order: str,
    category: Optional[str] = None,
) -> str:
    """Build the listing key from already-normalized parameters.

    Field order is fixed so identical parameters always give the same key,
    and every key stays under PRODUCT_LISTING_PATTERN.
    """
    key = CACHE_KEYS["product_list"].format(page, limit, sort_by, sort_order)
    if category:
        key += f":category:{category}"
    return key


def cart_owner(user_id: Optional[Union[int, str]]) -> str:
    if user_id is None or user_id == "":
        return GUEST_OWNER
    return str(user_id)


def cart_key(user_id: Optional[Union[int, str]]) -> str:
    return CACHE_KEYS["cart"].format(cart_owner(user_id))
