from datetime import datetime, timedelta
from sqlalchemy import Column, Integer, DateTime, Numeric, ForeignKey, UniqueConstraint, Index
from sqlalchemy.sql import func
from app.core.database import Base
from app.core.cache_config import CART_ITEM_LIFETIME_DAYS

def default_expires_at() -> datetime:
    return datetime.utcnow() + timedelta(days=CART_ITEM_LIFETIME_DAYS)

class CartItem(Base):
    __tablename__ = "cart"

    id = Column(Integer, primary_key=True, index=True)
    product_id = Column(Integer, ForeignKey("products.id", ondelete="CASCADE"), nullable=False)
    quantity = Column(Integer, nullable=False, default=1)
    unit_price = Column(Numeric(10, 2), nullable=False)
    # Line total, unit_price * quantity
    price = Column(Numeric(10, 2), nullable=False)
    # NULL owner is the guest cart
    user_id = Column(Integer, nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now())
    updated_at = Column(DateTime(timezone=True), nullable=False, server_default=func.now(), onupdate=func.now())
    expires_at = Column(DateTime(timezone=True), nullable=False, default=default_expires_at)

    __table_args__ = (
        UniqueConstraint("product_id", "user_id", name="unique_cart_item"),
        Index("product_id_idx", "product_id"),
        Index("user_id_idx", "user_id"),
        Index("expires_at_idx", "expires_at"),
        Index("created_at_idx", "created_at"),
    )
