# recordshop/data/models/order.py
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, String, DateTime, Numeric, JSON, ForeignKey
from sqlalchemy.orm import relationship

from recordshop.data.database import Base
from recordshop.domain.ids import ExternalIdType


def _now():
    return datetime.now(timezone.utc)


class OrderModel(Base):
    __tablename__ = "orders"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=True, index=True)

    # id sesji checkoutu = klucz idempotencji webhooka
    payment_id = Column(String(255), nullable=False, unique=True)
    payment_intent_id = Column(String(255), nullable=True, index=True)

    status = Column(String(20), nullable=False, default="pending")  # pending, paid, shipped, refunded, failed, expired
    total = Column(Numeric(10, 2), nullable=False)
    email = Column(String(255), nullable=True)
    shipping_address = Column(JSON, nullable=True)
    billing_address = Column(JSON, nullable=True)

    created_at = Column(DateTime(timezone=True), nullable=False, default=_now)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=_now, onupdate=_now)

    items = relationship(
        "OrderItemModel",
        back_populates="order",
        cascade="all, delete-orphan",
        order_by="OrderItemModel.id",
    )


class OrderItemModel(Base):
    """Snapshot kupionego produktu - nie referencja do katalogu."""

    __tablename__ = "order_items"

    id = Column(Integer, primary_key=True)
    order_id = Column(Integer, ForeignKey("orders.id", ondelete="CASCADE"), nullable=False, index=True)
    discogs_id = Column(ExternalIdType, nullable=False)
    title = Column(String(500), nullable=False)
    price = Column(Numeric(10, 2), nullable=False)
    quantity = Column(Integer, nullable=False)
    condition = Column(String(100), nullable=True)

    order = relationship("OrderModel", back_populates="items")
