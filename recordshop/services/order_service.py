# recordshop/services/order_service.py
from decimal import Decimal
from typing import List, Sequence, Tuple

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from recordshop.data.models.order import OrderModel, OrderItemModel
from recordshop.domain.errors import InvalidStatusTransition
from recordshop.domain.payment_metadata import CustomerSnapshot, PurchasedItem
from recordshop.repos.order_repo import OrderRepo
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

PENDING = "pending"
PAID = "paid"
SHIPPED = "shipped"
REFUNDED = "refunded"
FAILED = "failed"
EXPIRED = "expired"

ALLOWED_TRANSITIONS = {
    PENDING: {PAID, FAILED, EXPIRED},
    PAID: {SHIPPED, REFUNDED},
    SHIPPED: {REFUNDED},
    # nieudana platnosc moze jeszcze przejsc przy kolejnej probie
    FAILED: {PAID},
    REFUNDED: set(),
    EXPIRED: set(),
}


class OrderService:
    """
    Zamowienia tworzone z webhooka platnosci.
    Jedno zamowienie na payment_id (id sesji) - powtorzony webhook nic nie tworzy.
    """

    def __init__(self, db: Session):
        self.db = db
        self.repo = OrderRepo(db)

    def create_order(
        self,
        payment_id: str,
        items: Sequence[PurchasedItem],
        customer: CustomerSnapshot | None = None,
        user_id: str | None = None,
        status: str = PENDING,
        payment_intent_id: str | None = None,
        email: str | None = None,
    ) -> Tuple[OrderModel, bool]:
        existing = self.repo.get_by_payment_id(payment_id)
        if existing:
            logger.info(f"Order already exists for payment {payment_id}, returning order {existing.id}")
            return existing, False

        if status not in ALLOWED_TRANSITIONS:
            raise ValueError(f"Unknown order status: {status}")

        total = sum((item.price * item.quantity for item in items), Decimal("0.00"))
        customer = customer or CustomerSnapshot()

        order = OrderModel(
            user_id=user_id or customer.user_id,
            payment_id=payment_id,
            payment_intent_id=payment_intent_id,
            status=status,
            total=total,
            email=email or customer.email,
            shipping_address=customer.as_address() or None,
            billing_address=customer.billing_address,
            items=[
                OrderItemModel(
                    discogs_id=item.id,
                    title=item.title,
                    price=item.price,
                    quantity=item.quantity,
                    condition=item.condition,
                )
                for item in items
            ],
        )

        try:
            created = self.repo.create_order(order)
        except IntegrityError:
            # drugi webhook wygral wyscig o unique payment_id
            self.repo.rollback()
            existing = self.repo.get_by_payment_id(payment_id)
            if existing is None:
                raise
            return existing, False

        logger.info(f"Order {created.id} created for payment {payment_id}, total {total}, status {status}")
        return created, True

    def update_status(self, order: OrderModel, status: str) -> bool:
        if order.status == status:
            return False
        if status not in ALLOWED_TRANSITIONS.get(order.status, set()):
            raise InvalidStatusTransition(f"Order {order.id}: {order.status} -> {status} is not allowed")

        logger.info(f"Order {order.id} status {order.status} -> {status}")
        order.status = status
        self.repo.save(order)
        return True

    def find_by_payment(self, payment_id: str | None = None, payment_intent_id: str | None = None) -> OrderModel | None:
        if payment_id:
            order = self.repo.get_by_payment_id(payment_id)
            if order:
                return order
        if payment_intent_id:
            return self.repo.get_by_payment_intent(payment_intent_id)
        return None

    def get_order(self, order_id: int, user_id: str) -> OrderModel:
        order = self.repo.get_order(order_id)

        if not order:
            raise ValueError("Order does not exist")

        if order.user_id != user_id:
            raise PermissionError("No access to this order")

        return order

    def list_orders(self, user_id: str, limit: int | None = None) -> List[OrderModel]:
        return self.repo.list_for_user(user_id, limit)

