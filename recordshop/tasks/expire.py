# recordshop/tasks/expire.py
from datetime import datetime, timedelta, timezone

from recordshop.celery_worker import celery_app
from recordshop.data.database import SessionLocal
from recordshop.repos.cart_repo import CartRepo
from recordshop.utils.settings import GUEST_CART_TTL_DAYS
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


def expire_guest_carts(db, now: datetime | None = None, ttl_days: int = GUEST_CART_TTL_DAYS) -> int:
    # cookie goscia zyje 30 dni, koszyk nie dluzej
    now = now or datetime.now(timezone.utc)
    repo = CartRepo(db)
    carts = repo.get_stale_guest_carts(now - timedelta(days=ttl_days))

    logger.info(f"Found {len(carts)} guest carts to expire")

    for cart in carts:
        db.delete(cart)
    db.commit()
    return len(carts)


@celery_app.task(name="recordshop.tasks.expire.expire_guest_carts_task")
def expire_guest_carts_task():
    logger.info("Expire guest carts task started")

    db = SessionLocal()
    try:
        return expire_guest_carts(db)
    finally:
        db.close()
