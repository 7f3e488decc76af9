from pydantic import BaseModel
from typing import Optional, List, Union, Literal
from datetime import datetime
from decimal import Decimal

class CartItemCreate(BaseModel):
    product_id: Optional[int] = None
    price: Optional[Union[float, str]] = None
    quantity: Optional[int] = None
    expires_at: Optional[datetime] = None
    user_id: Optional[int] = None

class CartItemSnapshot(BaseModel):
    """The JSON shape stored in a cart hash field."""
    product_id: int
    quantity: int
    unit_price: Decimal
    price: Decimal
    user_id: Optional[int] = None
    expires_at: Optional[datetime] = None
    added_at: Optional[datetime] = None

class CartItems(BaseModel):
    items: List[CartItemSnapshot]
    total: Decimal
    item_count: int
    source: Literal["cache", "database"]

class CartTotal(BaseModel):
    total: Decimal
    item_count: int

class CartItemQuantityUpdate(BaseModel):
    action: Optional[str] = None

class CartItemQuantityResult(BaseModel):
    product_id: int
    action: Literal["updated", "removed"]
    new_quantity: Optional[int] = None
    new_total_price: Optional[Decimal] = None

class CartMerge(BaseModel):
    user_id: Optional[int] = None

class CartMergeResult(BaseModel):
    merged_items: int
    user_id: int
