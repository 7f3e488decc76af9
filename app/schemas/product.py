from pydantic import BaseModel, ConfigDict
from typing import Optional, List, Union
from datetime import datetime

class ProductBase(BaseModel):
    name: Optional[str] = None
    description: Optional[str] = None
    # Kept loose so the service, not the request parser, reports bad prices
    price: Optional[Union[float, str]] = None
    category: Optional[str] = None

class ProductCreate(ProductBase):
    in_stock: Optional[bool] = None

class ProductUpdate(ProductBase):
    """Partial update: only fields that are not None are applied."""
    in_stock: Optional[bool] = None

    def has_changes(self) -> bool:
        return any(
            value is not None
            for value in (self.name, self.description, self.price, self.category, self.in_stock)
        )

class Product(BaseModel):
    id: int
    name: str
    description: str
    price: float
    category: str
    in_stock: bool = True
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)

class Pagination(BaseModel):
    page: int
    limit: int
    total_count: int
    total_pages: int
    has_next: bool
    has_prev: bool

class ProductListing(BaseModel):
    products: List[Product]
    pagination: Pagination
