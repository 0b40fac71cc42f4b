from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, ForeignKey, Numeric, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import relationship

from recordshop.data.database import Base
from recordshop.domain.ids import ExternalIdType


class CartItemModel(Base):
    __tablename__ = "cart_items"

    id = Column(Integer, primary_key=True)
    cart_id = Column(Integer, ForeignKey("carts.id", ondelete="CASCADE"), nullable=False, index=True)
    discogs_id = Column(ExternalIdType, nullable=False)

    title = Column(String(500), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    quantity_available = Column(Integer, nullable=False)
    condition = Column(String(100), nullable=True)
    weight = Column(Integer, nullable=False, default=180)  # gramy
    images = Column(JSON, nullable=False, default=list)
    created_at = Column(DateTime(timezone=True), nullable=False, default=lambda: datetime.now(timezone.utc))

    cart = relationship("CartModel", back_populates="items")

    __table_args__ = (UniqueConstraint("cart_id", "discogs_id", name="u_cart_discogs_item"),)
