# recordshop/api/routers/orders.py
from typing import List

from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session

from recordshop.api.deps import require_user_id
from recordshop.data.database import get_db
from recordshop.domain.schemas import OrderOut
from recordshop.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


def get_service(db: Session):
    return OrderService(db)


@router.get("/", response_model=List[OrderOut])
def list_orders(
    limit: int | None = Query(None, gt=0, le=100),
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """Zamowienia uzytkownika, najnowsze pierwsze."""
    return get_service(db).list_orders(user_id, limit)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    user_id: str = Depends(require_user_id),
    db: Session = Depends(get_db),
):
    """
    Pobiera szczegóły zamówienia.
    """
    svc = get_service(db)
    try:
        return svc.get_order(order_id, user_id)
    except PermissionError as e:
        raise HTTPException(status_code=403, detail=str(e))
    except ValueError as e:
        raise HTTPException(status_code=404, detail=str(e))
