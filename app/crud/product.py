from sqlalchemy.orm import Session
from sqlalchemy import asc, desc
from typing import List, Optional

from app.crud.base import CRUDBase
from app.models.product import Product
from app.schemas.product import ProductCreate, ProductUpdate

# Only these columns may reach ORDER BY
SORTABLE_COLUMNS = {
    "id": Product.id,
    "name": Product.name,
    "price": Product.price,
    "category": Product.category,
    "createdAt": Product.created_at,
}
DEFAULT_SORT_COLUMN = "createdAt"


class CRUDProduct(CRUDBase[Product, ProductCreate, ProductUpdate]):

    def _filtered(self, db: Session, category: Optional[str] = None):
        query = db.query(Product)
        if category:
            query = query.filter(Product.category == category)
        return query

    def count(self, db: Session, *, category: Optional[str] = None) -> int:
        return self._filtered(db, category).count()

    def get_page(
        self,
        db: Session,
        *,
        skip: int = 0,
        limit: int = 10,
        sort_by: str = DEFAULT_SORT_COLUMN,
        sort_order: str = "asc",
        category: Optional[str] = None,
    ) -> List[Product]:
        column = SORTABLE_COLUMNS.get(sort_by, SORTABLE_COLUMNS[DEFAULT_SORT_COLUMN])
        direction = desc if sort_order == "desc" else asc
        return (
            self._filtered(db, category)
            .order_by(direction(column), Product.id)
            .offset(skip)
            .limit(limit)
            .all()
        )


product = CRUDProduct(Product)
