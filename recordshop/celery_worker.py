# recordshop/celery_worker.py
from celery import Celery

from recordshop.utils.settings import CELERY_BROKER_URL, CELERY_RESULT_BACKEND

celery_app = Celery(
    "recordshop",
    broker=CELERY_BROKER_URL,
    backend=CELERY_RESULT_BACKEND,
)

# WAŻNE: Explicite importuj taski, żeby Celery je zarejestrował
celery_app.conf.imports = (
    "recordshop.tasks.expire",
    "recordshop.services.notification_service",
)

celery_app.conf.beat_schedule = {
    "expire-guest-carts-hourly": {
        "task": "recordshop.tasks.expire.expire_guest_carts_task",
        "schedule": 60.0 * 60,  # co godzine
    },
}

celery_app.conf.timezone = "UTC"
