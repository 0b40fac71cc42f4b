# recordshop/api/deps.py
import secrets
from functools import lru_cache

from fastapi import Depends, Header, HTTPException, Request
from sqlalchemy.orm import Session

from recordshop.data.database import get_db
from recordshop.services.cache_service import CacheService, get_cache
from recordshop.services.discogs_client import DiscogsClient
from recordshop.services.inventory_service import InventoryReconciler, build_reconciler
from recordshop.services.record_service import RecordService
from recordshop.services.seller_auth_service import SellerAuthService
from recordshop.services.shipping_service import ShippingService
from recordshop.utils.settings import ADMIN_API_KEY
from recordshop.utils.logging import get_logger

logger = get_logger(__name__)


def get_cache_service() -> CacheService:
    return get_cache()


def get_discogs_client() -> DiscogsClient:
    return DiscogsClient()


def get_record_service(
    client: DiscogsClient = Depends(get_discogs_client),
    cache: CacheService = Depends(get_cache_service),
) -> RecordService:
    return RecordService(client, cache)


@lru_cache(maxsize=1)
def _shared_shipping_service() -> ShippingService:
    # jeden BatchProcessor na proces - wyceny z roznych requestow moga sie skleic
    return ShippingService(get_cache())


def get_shipping_service() -> ShippingService:
    return _shared_shipping_service()


def get_reconciler(
    db: Session = Depends(get_db),
    client: DiscogsClient = Depends(get_discogs_client),
    cache: CacheService = Depends(get_cache_service),
) -> InventoryReconciler:
    return build_reconciler(db, client, cache)


def get_seller_auth_service(
    db: Session = Depends(get_db),
    client: DiscogsClient = Depends(get_discogs_client),
) -> SellerAuthService:
    return SellerAuthService(db, client)


def get_user_id(x_user_id: str | None = Header(None)) -> str | None:
    """Id zalogowanego uzytkownika - naglowek ustawia warstwa auth."""
    return x_user_id or None


def require_user_id(user_id: str | None = Depends(get_user_id)) -> str:
    if not user_id:
        raise HTTPException(status_code=401, detail="User must be logged in")
    return user_id


def require_admin(x_admin_key: str | None = Header(None)) -> None:
    """Trasy zaplecza: naglowek X-Admin-Key musi pasowac do ADMIN_API_KEY."""
    if not x_admin_key:
        raise HTTPException(status_code=401, detail="Admin key required")
    # bez skonfigurowanego klucza zaplecze jest zamkniete
    if not ADMIN_API_KEY or not secrets.compare_digest(x_admin_key.encode(), ADMIN_API_KEY.encode()):
        logger.warning("Rejected admin request with invalid key")
        raise HTTPException(status_code=403, detail="Invalid admin key")


async def raw_body(request: Request) -> bytes:
    return await request.body()
