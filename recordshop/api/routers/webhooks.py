# recordshop/api/routers/webhooks.py
from fastapi import APIRouter, Depends, Header, HTTPException
from sqlalchemy.orm import Session

from recordshop.api.deps import get_reconciler, raw_body
from recordshop.data.database import get_db
from recordshop.domain.errors import ConfigurationError, MetadataParseError
from recordshop.services.inventory_service import InventoryReconciler
from recordshop.services.payment_webhook_service import PaymentWebhookService, WebhookSignatureError
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/stripe")
def stripe_webhook(
    payload: bytes = Depends(raw_body),
    stripe_signature: str | None = Header(None),
    reconciler: InventoryReconciler = Depends(get_reconciler),
    db: Session = Depends(get_db),
):
    """
    Eventy platnosci. Podpis sprawdzany na surowym body.
    Ponowna dostawa tego samego eventu nie tworzy drugiego zamowienia.
    """
    svc = PaymentWebhookService(db, reconciler)
    try:
        return svc.handle(payload, stripe_signature)
    except WebhookSignatureError as e:
        logger.warning(f"Rejected webhook: {e}")
        raise HTTPException(status_code=400, detail="Invalid signature")
    except MetadataParseError as e:
        logger.error(f"Webhook metadata could not be parsed: {e}")
        raise HTTPException(status_code=400, detail=str(e))
    except ConfigurationError as e:
        logger.error(f"Webhook configuration error: {e}")
        raise HTTPException(status_code=500, detail="Webhook not configured")
