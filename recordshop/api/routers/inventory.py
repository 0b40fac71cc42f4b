# recordshop/api/routers/inventory.py
from fastapi import APIRouter, Depends

from recordshop.api.deps import get_cache_service, get_reconciler, require_admin
from recordshop.domain.schemas import CacheClearIn, CacheClearOut, InventoryUpdateIn, InventoryUpdateOut
from recordshop.services.cache_service import CacheService
from recordshop.services.inventory_service import InventoryReconciler

router = APIRouter(tags=["admin"], dependencies=[Depends(require_admin)])


@router.post("/inventory/update", response_model=InventoryUpdateOut)
def update_inventory(payload: InventoryUpdateIn, reconciler: InventoryReconciler = Depends(get_reconciler)):
    # reczne zdjecie sprzedanej sztuki z marketplace
    success = reconciler.update_inventory(payload.listing_id, payload.quantity)
    return InventoryUpdateOut(success=success, listing_id=payload.listing_id, quantity=payload.quantity)


@router.post("/cache/clear", response_model=CacheClearOut)
def clear_cache(payload: CacheClearIn | None = None, cache: CacheService = Depends(get_cache_service)):
    pattern = payload.pattern if payload else "*"
    return CacheClearOut(cleared=cache.clear(pattern))
