# recordshop/repos/order_repo.py
from sqlalchemy import select
from sqlalchemy.orm import Session

from recordshop.data.models.order import OrderModel


class OrderRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_order(self, order: OrderModel) -> OrderModel:
        self.db.add(order)
        self.db.commit()
        self.db.refresh(order)
        return order

    def get_order(self, order_id: int) -> OrderModel | None:
        return self.db.get(OrderModel, order_id)

    def get_by_payment_id(self, payment_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_id == payment_id)
        ).scalar_one_or_none()

    def get_by_payment_intent(self, payment_intent_id: str) -> OrderModel | None:
        return self.db.execute(
            select(OrderModel).where(OrderModel.payment_intent_id == payment_intent_id)
        ).scalars().first()

    def list_for_user(self, user_id: str, limit: int | None = None) -> list[OrderModel]:
        query = (
            select(OrderModel)
            .where(OrderModel.user_id == user_id)
            .order_by(OrderModel.created_at.desc(), OrderModel.id.desc())
        )
        if limit:
            query = query.limit(limit)
        return list(self.db.execute(query).scalars())

    def save(self, order: OrderModel) -> OrderModel:
        self.db.commit()
        self.db.refresh(order)
        return order

    def rollback(self):
        self.db.rollback()
