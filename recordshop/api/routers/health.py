from fastapi import APIRouter, Depends

from recordshop.api.deps import get_cache_service
from recordshop.services.cache_service import CacheService

router = APIRouter(tags=["health"])


@router.get("/health")
def health(cache: CacheService = Depends(get_cache_service)):
    return {"status": "ok", "cache": "up" if cache.available else "down"}
