# recordshop/services/notification_service.py
import requests

from recordshop.celery_worker import celery_app
from recordshop.data.database import SessionLocal
from recordshop.repos.order_repo import OrderRepo
from recordshop.repos.user_repo import UserRepo
from recordshop.utils.retry import http_retry
from recordshop.utils.settings import EMAIL_FROM, RESEND_API_KEY, RESEND_API_URL, HTTP_TIMEOUT_SECONDS
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


class NotificationService:
    """
    Maile transakcyjne.
    Wysylka idzie przez Celery - nie blokuje webhooka platnosci.
    """

    @staticmethod
    def send_order_confirmation(order_id: int):
        send_order_confirmation_task.delay(order_id)


@http_retry()
def send_email(to: str, subject: str, text: str, api_key: str | None = None) -> dict:
    api_key = api_key or RESEND_API_KEY
    resp = requests.post(
        f"{RESEND_API_URL.rstrip('/')}/emails",
        headers={"Authorization": f"Bearer {api_key}"},
        json={"from": EMAIL_FROM, "to": [to], "subject": subject, "text": text},
        timeout=HTTP_TIMEOUT_SECONDS,
    )
    resp.raise_for_status()
    return resp.json()


def render_order_confirmation(order) -> str:
    lines = [f"Thank you for your order #{order.id}.", ""]
    for item in order.items:
        condition = f" ({item.condition})" if item.condition else ""
        lines.append(f"{item.quantity} x {item.title}{condition} - {item.price}")
    lines += ["", f"Total: {order.total}"]
    return "\n".join(lines)


def deliver_order_confirmation(db, order_id: int) -> dict:
    order = OrderRepo(db).get_order(order_id)
    if not order:
        logger.warning(f"[NOTIFICATION] Order {order_id} not found, nothing to send")
        return {"order_id": order_id, "status": "missing"}

    # konto uzytkownika ma pierwszenstwo przed mailem z checkoutu
    user = UserRepo(db).get_user(order.user_id) if order.user_id else None
    target = (user.email if user else None) or order.email

    if not target:
        logger.warning(f"[NOTIFICATION] No e-mail address for order {order_id}")
        return {"order_id": order_id, "status": "no_address"}

    if not RESEND_API_KEY:
        logger.warning(f"[NOTIFICATION] RESEND_API_KEY not set, skipping confirmation for order {order_id}")
        return {"order_id": order_id, "status": "skipped"}

    send_email(target, f"Order confirmation #{order.id}", render_order_confirmation(order))
    logger.info(f"[NOTIFICATION] Confirmation for order {order_id} sent to {target}")
    return {"order_id": order_id, "status": "sent"}


@celery_app.task(name="recordshop.services.notification_service.send_order_confirmation_task")
def send_order_confirmation_task(order_id: int):
    db = SessionLocal()
    try:
        return deliver_order_confirmation(db, order_id)
    finally:
        db.close()
