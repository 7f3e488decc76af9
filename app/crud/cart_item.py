from sqlalchemy.orm import Session
from typing import List, Optional
from decimal import Decimal

from app.crud.base import CRUDBase
from app.models.cart_item import CartItem
from app.schemas.cart import CartItemCreate


class CRUDCartItem(CRUDBase[CartItem, CartItemCreate, CartItemCreate]):

    def _owned_by(self, db: Session, user_id: Optional[int]):
        # A NULL owner is the guest cart, which `== None` would never match
        if user_id is None:
            return db.query(CartItem).filter(CartItem.user_id.is_(None))
        return db.query(CartItem).filter(CartItem.user_id == user_id)

    def get_by_owner(self, db: Session, *, user_id: Optional[int]) -> List[CartItem]:
        return self._owned_by(db, user_id).order_by(CartItem.id).all()

    def get_line(self, db: Session, *, user_id: Optional[int], product_id: int) -> Optional[CartItem]:
        return self._owned_by(db, user_id).filter(CartItem.product_id == product_id).first()

    def update_line(
        self,
        db: Session,
        *,
        user_id: Optional[int],
        product_id: int,
        quantity: int,
        price: Decimal,
    ) -> int:
        updated = (
            self._owned_by(db, user_id)
            .filter(CartItem.product_id == product_id)
            .update({CartItem.quantity: quantity, CartItem.price: price}, synchronize_session=False)
        )
        db.commit()
        return updated

    def delete_line(self, db: Session, *, user_id: Optional[int], product_id: int) -> int:
        deleted = (
            self._owned_by(db, user_id)
            .filter(CartItem.product_id == product_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted

    def delete_by_owner(self, db: Session, *, user_id: Optional[int]) -> int:
        deleted = self._owned_by(db, user_id).delete(synchronize_session=False)
        db.commit()
        return deleted

    def claim_guest_line(self, db: Session, *, product_id: int, user_id: int) -> int:
        """Re-point the unowned line for product_id to user_id.

        Matches on product alone, so with several anonymous sessions sharing
        the table it can claim a line another guest added.
        """
        claimed = (
            self._owned_by(db, None)
            .filter(CartItem.product_id == product_id)
            .update({CartItem.user_id: user_id}, synchronize_session=False)
        )
        db.commit()
        return claimed


cart_item = CRUDCartItem(CartItem)
