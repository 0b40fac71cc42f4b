# recordshop/services/payment_webhook_service.py
import json
from typing import Any, Callable, Dict

import stripe
from sqlalchemy.orm import Session

from recordshop.domain.errors import ConfigurationError, InvalidStatusTransition
from recordshop.domain.payment_metadata import PaymentMetadata, parse_payment_metadata
from recordshop.repos.cart_repo import CartRepo
from recordshop.services.inventory_service import InventoryReconciler
from recordshop.services.notification_service import NotificationService
from recordshop.services.order_service import EXPIRED, FAILED, PAID, PENDING, REFUNDED, OrderService
from recordshop.utils.settings import STRIPE_WEBHOOK_SECRET
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


class WebhookSignatureError(ValueError):
    pass


class PaymentWebhookService:
    """
    Obsluga eventow z procesora platnosci.

    Zamowienie powstaje raz na sesje checkoutu. Efekty uboczne (stan
    marketplace, czyszczenie koszyka, mail) odpalaja sie tylko przy
    pierwszym utworzeniu, wiec ponowna dostawa webhooka ich nie powtarza.
    Nieudana aktualizacja marketplace nigdy nie blokuje zamowienia.
    """

    def __init__(
        self,
        db: Session,
        reconciler: InventoryReconciler,
        notifications: NotificationService | None = None,
        webhook_secret: str | None = None,
    ):
        self.orders = OrderService(db)
        self.carts = CartRepo(db)
        self.reconciler = reconciler
        self.notifications = notifications or NotificationService()
        self.webhook_secret = webhook_secret if webhook_secret is not None else STRIPE_WEBHOOK_SECRET

        self._handlers: Dict[str, Callable[[Dict[str, Any]], Dict[str, Any]]] = {
            "checkout.session.completed": self._on_checkout_completed,
            "checkout.session.expired": self._on_checkout_expired,
            "payment_intent.succeeded": self._on_payment_succeeded,
            "payment_intent.payment_failed": self._on_payment_failed,
            "payment_intent.canceled": self._on_payment_failed,
            "charge.refunded": self._on_charge_refunded,
        }

    def verify(self, payload: bytes, signature: str | None) -> Dict[str, Any]:
        if not self.webhook_secret:
            raise ConfigurationError("STRIPE_WEBHOOK_SECRET is not configured")
        if not signature:
            raise WebhookSignatureError("Missing signature header")

        try:
            stripe.Webhook.construct_event(payload, signature, self.webhook_secret)
        except stripe.SignatureVerificationError as e:
            raise WebhookSignatureError(str(e)) from e
        except ValueError as e:
            raise WebhookSignatureError(f"Invalid payload: {e}") from e

        # podpis sprawdzony - dalej zwykly dict
        return json.loads(payload)

    def handle(self, payload: bytes, signature: str | None) -> Dict[str, Any]:
        return self.dispatch(self.verify(payload, signature))

    def dispatch(self, event: Dict[str, Any]) -> Dict[str, Any]:
        event_type = event.get("type")
        logger.info(f"Webhook event {event.get('id')} type {event_type}")

        handler = self._handlers.get(event_type)
        if handler is None:
            logger.info(f"Ignoring webhook event type {event_type}")
            return {"received": True, "type": event_type, "handled": False}

        result = handler(event["data"]["object"])
        return {"received": True, "type": event_type, "handled": True, **result}

    # --- zakup ---

    def _record_purchase(
        self,
        payment_id: str,
        metadata: PaymentMetadata,
        status: str,
        payment_intent_id: str | None = None,
        user_id: str | None = None,
        email: str | None = None,
    ) -> Dict[str, Any]:
        order, created = self.orders.create_order(
            payment_id=payment_id,
            items=metadata.items,
            customer=metadata.customer,
            user_id=user_id,
            status=status,
            payment_intent_id=payment_intent_id,
            email=email,
        )

        if not created:
            if status == PAID:
                self._transition(order, PAID)
            return {"order_id": order.id, "created": False}

        succeeded, failed = self.reconciler.reconcile_items((item.id, item.quantity) for item in metadata.items)
        if failed:
            logger.error(f"Order {order.id}: {failed} marketplace listing(s) not updated, check inventory manually")
        else:
            logger.info(f"Order {order.id}: {succeeded} marketplace listing(s) updated")

        self._clear_buyer_cart(order.user_id, metadata)
        self._queue_confirmation(order.id)

        return {"order_id": order.id, "created": True, "inventory_failures": failed}

    def _clear_buyer_cart(self, user_id: str | None, metadata: PaymentMetadata) -> None:
        guest_id = metadata.customer.guest_id
        carts = []
        if user_id:
            carts.append(self.carts.get_cart_by_user(user_id))
        if guest_id:
            carts.append(self.carts.get_cart_by_guest(guest_id))

        for cart in carts:
            if cart is not None:
                self.carts.clear_items(cart.id)
                logger.info(f"Cleared cart {cart.id} after purchase")

    def _queue_confirmation(self, order_id: int) -> None:
        try:
            self.notifications.send_order_confirmation(order_id)
        except Exception as e:
            # broker niedostepny - zamowienie i tak jest zapisane
            logger.error(f"Could not queue confirmation e-mail for order {order_id}: {e}")

    def _transition(self, order, status: str) -> bool:
        try:
            return self.orders.update_status(order, status)
        except InvalidStatusTransition as e:
            logger.warning(str(e))
            return False

    def _set_status(self, status: str, payment_id: str | None = None, payment_intent_id: str | None = None) -> Dict[str, Any]:
        order = self.orders.find_by_payment(payment_id, payment_intent_id)
        if order is None:
            logger.warning(f"No order for payment {payment_id or payment_intent_id}, status {status} not recorded")
            return {"order_id": None}
        changed = self._transition(order, status)
        return {"order_id": order.id, "status_changed": changed}

    # --- handlery ---

    def _on_checkout_completed(self, session: Dict[str, Any]) -> Dict[str, Any]:
        metadata = parse_payment_metadata(session.get("metadata"))
        status = PAID if session.get("payment_status") == "paid" else PENDING
        details = session.get("customer_details") or {}
        return self._record_purchase(
            payment_id=session["id"],
            metadata=metadata,
            status=status,
            payment_intent_id=session.get("payment_intent"),
            user_id=metadata.customer.user_id or session.get("client_reference_id"),
            email=metadata.customer.email or details.get("email"),
        )

    def _on_payment_succeeded(self, intent: Dict[str, Any]) -> Dict[str, Any]:
        raw = intent.get("metadata") or {}
        session_id = raw.get("session_id") or raw.get("sessionId")

        order = self.orders.find_by_payment(session_id, intent["id"])
        if order is not None:
            changed = self._transition(order, PAID)
            return {"order_id": order.id, "created": False, "status_changed": changed}

        if not raw.get("items"):
            logger.warning(f"Payment {intent['id']} succeeded but carries no items and no known order")
            return {"order_id": None}

        # platnosc bez sesji checkoutu (np. Apple Pay) - zamowienie z metadanych intentu
        metadata = parse_payment_metadata(raw)
        return self._record_purchase(
            payment_id=session_id or intent["id"],
            metadata=metadata,
            status=PAID,
            payment_intent_id=intent["id"],
            email=metadata.customer.email or intent.get("receipt_email"),
        )

    def _on_payment_failed(self, intent: Dict[str, Any]) -> Dict[str, Any]:
        raw = intent.get("metadata") or {}
        return self._set_status(FAILED, raw.get("session_id") or raw.get("sessionId"), intent["id"])

    def _on_checkout_expired(self, session: Dict[str, Any]) -> Dict[str, Any]:
        return self._set_status(EXPIRED, session["id"], session.get("payment_intent"))

    def _on_charge_refunded(self, charge: Dict[str, Any]) -> Dict[str, Any]:
        return self._set_status(REFUNDED, None, charge.get("payment_intent"))
